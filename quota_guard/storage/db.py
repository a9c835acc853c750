"""
Database connection management.

Provides SQLite connection for snapshot persistence.
"""

import sqlite3
from pathlib import Path

from quota_guard.config.loader import DEFAULT_DB_PATH


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with a short busy timeout
    """
    path = Path(db_path)
    return sqlite3.connect(str(path), timeout=5.0)
