"""
Core modules for the marketplace finance core.

This package contains pricing, escrow scheduling, price deviation checks,
ledger accounting and vendor payouts.
"""
