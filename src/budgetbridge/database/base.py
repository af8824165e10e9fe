"""Abstract database interface."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Sequence

# Import entities directly; the domain package only imports Database for typing
from budgetbridge.domain.entities import (
    Account,
    Category,
    NewAccount,
    NewTransaction,
    Tag,
    Transaction,
)


class Database(ABC):
    """Abstract asynchronous document-store interface for budgetbridge.

    Every method is a coroutine. Implementations must make
    ``create_transactions`` atomic: either every leg is stored and every
    affected account balance is adjusted, or nothing is.
    """

    @abstractmethod
    async def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release connections held by the database."""
        pass

    # Account operations
    @abstractmethod
    async def create_account(self, account: NewAccount) -> int:
        """Create a new account. Returns account ID."""
        pass

    @abstractmethod
    async def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """List all accounts."""
        pass

    @abstractmethod
    async def update_account(
        self,
        account_id: int,
        currency: Optional[str] = None,
        balance: Optional[Decimal] = None,
        category: Optional[str] = None,
    ) -> None:
        """Update account fields. ``None`` leaves a field untouched."""
        pass

    # Category operations
    @abstractmethod
    async def create_category(self, name: str) -> int:
        """Create a category. Returns category ID."""
        pass

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        """List all categories."""
        pass

    # Tag operations
    @abstractmethod
    async def create_tag(self, name: str) -> int:
        """Create a tag. Returns tag ID."""
        pass

    @abstractmethod
    async def list_tags(self) -> list[Tag]:
        """List all tags."""
        pass

    # Transaction operations
    @abstractmethod
    async def create_transactions(self, legs: Sequence[NewTransaction]) -> list[int]:
        """Store one or more ledger entries in a single transaction.

        Each leg adds its amount to its account balance and stamps the
        account's last activity. Returns the new transaction IDs in order.
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    async def list_transactions(self, account_id: Optional[int] = None) -> list[Transaction]:
        """List transactions, optionally filtered by account."""
        pass
