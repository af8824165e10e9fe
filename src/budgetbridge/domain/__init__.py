"""Domain layer for budgetbridge application."""

from budgetbridge.domain.transaction import TransactionService
from budgetbridge.domain.category import CategoryService
from budgetbridge.domain.tag import TagService
from budgetbridge.domain.csv_import import CSVImportService, ImportSession
from budgetbridge.domain.account import AccountService
from budgetbridge.domain.backup import BackupService

__all__ = [
    "TransactionService",
    "CategoryService",
    "TagService",
    "CSVImportService",
    "ImportSession",
    "AccountService",
    "BackupService",
]
