"""Transaction domain service."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional, Sequence

from budgetbridge.domain.entities import NewTransaction, Transaction as TransactionEntity
from budgetbridge.domain.errors import (
    NotFoundError,
    ValidationError,
    account_not_found,
)

if TYPE_CHECKING:
    from budgetbridge.database.base import Database


class TransactionService:
    """Service for managing transactions."""

    def __init__(self, db: Database):
        """Initialize transaction service.

        Args:
            db: Database instance
        """
        self.db = db

    async def create_transaction(
        self,
        account_id: int,
        date: date,
        amount: Decimal,
        currency: str,
        description: Optional[str] = None,
        category: str = "Uncategorized",
        tags: Sequence[str] = (),
        original_import_data: Optional[dict[str, Any]] = None,
    ) -> int:
        """Create a transaction and adjust the account balance.

        Args:
            account_id: Account ID
            date: Transaction date
            amount: Signed amount (negative leaves the account)
            currency: Transaction currency code
            description: Optional description
            category: Category name
            tags: Tag names
            original_import_data: Extra source data to keep with the entry

        Returns:
            Transaction ID

        Raises:
            NotFoundError: If the account doesn't exist
            ValidationError: If the amount or currency is invalid
        """
        leg = NewTransaction(
            account_id=account_id,
            date=date,
            amount=amount,
            transaction_currency=(currency or "").strip().upper(),
            description=description,
            category=category,
            tags=tuple(tags),
            original_import_data=original_import_data,
        )
        (transaction_id,) = await self.record(leg)
        return transaction_id

    async def record(self, *legs: NewTransaction) -> list[int]:
        """Write one or more legs atomically.

        A transfer passes its debit and credit legs together so both land
        or neither does.

        Raises:
            NotFoundError: If an account doesn't exist
            ValidationError: If a leg has no currency or a non-finite amount
        """
        if not legs:
            raise ValidationError("Nothing to record")
        for leg in legs:
            if not leg.transaction_currency:
                raise ValidationError("Transaction currency is required")
            if not leg.amount.is_finite():
                raise ValidationError(f"Invalid amount {leg.amount}")
            if await self.db.get_account(leg.account_id) is None:
                raise NotFoundError(account_not_found(leg.account_id))
        return await self.db.create_transactions(list(legs))

    async def get_transaction(self, transaction_id: int) -> Optional[TransactionEntity]:
        """Get transaction by ID."""
        return await self.db.get_transaction(transaction_id)

    async def list_transactions(self, account_id: Optional[int] = None) -> list[TransactionEntity]:
        """List transactions, oldest first.

        Args:
            account_id: Optional account ID filter
        """
        return await self.db.list_transactions(account_id=account_id)
