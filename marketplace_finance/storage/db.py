"""
Database connection management.

Provides SQLite connection for wallet and ledger persistence.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "marketplace_finance.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    The driver's implicit transactions are turned off (``isolation_level=None``)
    so writers open them explicitly with ``BEGIN IMMEDIATE``.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=30, isolation_level=None)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
