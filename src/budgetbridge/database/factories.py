"""Database factory functions for creating database instances."""

import os
from pathlib import Path
from typing import Optional

from budgetbridge.database.sqlalchemy_db import SQLAlchemyDatabase


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. If None, checks
            BUDGETBRIDGE_DB_PATH environment variable, then defaults to
            ~/.budgetbridge/budgetbridge.db

    Returns:
        SQLAlchemyDatabase instance configured for SQLite via aiosqlite
    """
    if database_path is None:
        database_path = os.environ.get("BUDGETBRIDGE_DB_PATH")

    if database_path is None:
        db_dir = Path.home() / ".budgetbridge"
        db_dir.mkdir(exist_ok=True)
        database_path = str(db_dir / "budgetbridge.db")

    return SQLAlchemyDatabase(f"sqlite+aiosqlite:///{database_path}")
