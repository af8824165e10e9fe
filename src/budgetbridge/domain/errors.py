"""Shared domain error messages and error types."""

from typing import Optional


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class ImportFileError(DomainError):
    """The import file cannot be read as a delimited file with a header row."""


class MappingError(ValidationError):
    """Required canonical fields are not mapped to CSV columns."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class RowError(ValidationError):
    """A single CSV row cannot be classified or committed."""

    def __init__(self, row_number: int, message: str, field: Optional[str] = None):
        super().__init__(f"Row {row_number}: {message}")
        self.row_number = row_number
        self.field = field
        self.reason = message


class ReconciliationError(DomainError):
    """Account create/update writes failed; transactions were not written."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class MetadataError(DomainError):
    """Category or tag creation failed; transactions were not written."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class ImportStateError(DomainError):
    """An import session operation was called in the wrong state."""


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def account_name_exists(name: str) -> str:
    """Return message for duplicate account name."""
    return f"Account with name '{name}' already exists"


def category_exists(name: str) -> str:
    """Return message for duplicate category name."""
    return f"Category '{name}' already exists"


def tag_exists(name: str) -> str:
    """Return message for duplicate tag name."""
    return f"Tag '{name}' already exists"


def missing_mappings(missing: list[str]) -> str:
    """Return message for required fields left unmapped."""
    return (
        f"Missing required column mappings: {', '.join(missing)}. "
        "Please map these fields."
    )


def unresolved_account(name: str, account_id: object = None) -> str:
    """Return message for an account name that has no usable ID."""
    if account_id is None:
        return f"Could not find account ID for '{name}'"
    return f"Invalid account ID '{account_id}' for '{name}'"


def same_account_transfer(name: str) -> str:
    """Return message for a transfer whose legs hit the same account."""
    return f"Transfer source and destination are the same account ('{name}')"


def illegal_transition(operation: str, state: str) -> str:
    """Return message for an import session call made in the wrong state."""
    return f"Cannot {operation} while import session is '{state}'"
