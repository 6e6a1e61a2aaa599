"""
Policy configuration for the marketplace finance core.
"""
