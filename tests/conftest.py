"""Shared pytest fixtures for budgetbridge tests."""

import asyncio
import tempfile
import os
from decimal import Decimal
from pathlib import Path
import pytest

from budgetbridge.config import ImportSettings
from budgetbridge.database.factories import create_sqlite_database
from budgetbridge.domain.account import AccountService
from budgetbridge.domain.backup import BackupService
from budgetbridge.domain.category import CategoryService
from budgetbridge.domain.csv_import import CSVImportService
from budgetbridge.domain.tag import TagService
from budgetbridge.domain.transaction import TransactionService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    asyncio.run(db.initialize_schema())

    yield db

    # Cleanup
    asyncio.run(db.disconnect())
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def settings():
    """Import settings with a small write concurrency."""
    return ImportSettings(write_concurrency=2)


@pytest.fixture
def account_service(temp_db):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db)


@pytest.fixture
def category_service(temp_db):
    """Create a CategoryService with a temporary database."""
    return CategoryService(temp_db)


@pytest.fixture
def tag_service(temp_db):
    """Create a TagService with a temporary database."""
    return TagService(temp_db)


@pytest.fixture
def transaction_service(temp_db):
    """Create a TransactionService with a temporary database."""
    return TransactionService(temp_db)


@pytest.fixture
def import_service(temp_db, settings):
    """Create a CSVImportService with a temporary database."""
    return CSVImportService(temp_db, settings)


@pytest.fixture
def backup_service(temp_db, settings):
    """Create a BackupService with a temporary database."""
    return BackupService(temp_db, settings)


@pytest.fixture
def sample_account(account_service):
    """Create a sample EUR account for testing."""
    account_id = asyncio.run(
        account_service.create_account(name="Checking", currency="EUR", balance=Decimal("100"))
    )
    return asyncio.run(account_service.get_account(account_id))


@pytest.fixture
def write_csv(tmp_path):
    """Write CSV text to a file and return its path."""

    def _write(text: str, name: str = "import.csv") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
