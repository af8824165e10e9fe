"""Database layer for budgetbridge application."""

from budgetbridge.database.base import Database
from budgetbridge.database.factories import create_sqlite_database

__all__ = ["Database", "create_sqlite_database"]
