"""
Command-line interface for the marketplace finance core.
"""
