"""Account domain service."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Mapping, Optional

from budgetbridge.domain.entities import (
    ACCOUNT_CATEGORIES,
    CRYPTO,
    ASSET,
    Account as AccountEntity,
    NewAccount,
)
from budgetbridge.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    account_name_exists,
    account_not_found,
)
from budgetbridge.utils.account_resolver import build_name_index, normalize_account_name
from budgetbridge.utils.currency import convert_amount

if TYPE_CHECKING:
    from budgetbridge.database.base import Database

logger = logging.getLogger(__name__)


def default_account_type(category: str) -> str:
    """Account type used when none is given: wallets for crypto, else checking."""
    return "wallet" if category == CRYPTO else "checking"


class AccountService:
    """Service for managing accounts."""

    def __init__(self, db: Database):
        """Initialize account service.

        Args:
            db: Database instance
        """
        self.db = db

    async def create_account(
        self,
        name: str,
        currency: str,
        balance: Decimal = Decimal("0"),
        category: str = ASSET,
        type: Optional[str] = None,
        provider_name: Optional[str] = None,
    ) -> int:
        """Create a new account.

        Args:
            name: Account name
            currency: ISO-style currency code (stored uppercased)
            balance: Opening balance
            category: Either 'asset' or 'crypto'
            type: Account type; defaults from the category
            provider_name: Optional institution or provider label

        Returns:
            Account ID

        Raises:
            ValidationError: If name, currency, balance or category is invalid
            ConflictError: If an account with the same name already exists
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name cannot be empty")
        currency = (currency or "").strip().upper()
        if not currency:
            raise ValidationError(f"Account '{name}' needs a currency")
        if category not in ACCOUNT_CATEGORIES:
            raise ValidationError(
                f"Invalid account category '{category}'. Use one of: {', '.join(ACCOUNT_CATEGORIES)}"
            )
        if not balance.is_finite():
            raise ValidationError(f"Invalid balance for account '{name}'")

        # Check if account with same name exists
        if await self.find_by_name(name) is not None:
            raise ConflictError(account_name_exists(name))

        account_id = await self.db.create_account(
            NewAccount(
                name=name,
                currency=currency,
                balance=balance,
                category=category,
                type=type or default_account_type(category),
                provider_name=provider_name,
            )
        )
        logger.info("Created account '%s' (%s, %s)", name, currency, category)
        return account_id

    async def get_account(self, account_id: int) -> Optional[AccountEntity]:
        """Get account by ID.

        Args:
            account_id: Account ID

        Returns:
            Account entity or None if not found
        """
        return await self.db.get_account(account_id)

    async def list_accounts(self) -> list[AccountEntity]:
        """List all accounts."""
        return await self.db.list_accounts()

    async def find_by_name(self, name: str) -> Optional[AccountEntity]:
        """Find an account by name, ignoring case and surrounding spaces."""
        index = build_name_index(await self.db.list_accounts())
        return index.get(normalize_account_name(name))

    async def update_account(
        self,
        account_id: int,
        currency: Optional[str] = None,
        balance: Optional[Decimal] = None,
        category: Optional[str] = None,
    ) -> None:
        """Update currency, balance or category of an account.

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If a new value is invalid
        """
        account = await self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        if currency is not None:
            currency = currency.strip().upper()
            if not currency:
                raise ValidationError(f"Account '{account.name}' needs a currency")
        if category is not None and category not in ACCOUNT_CATEGORIES:
            raise ValidationError(f"Invalid account category '{category}'")
        if balance is not None and not balance.is_finite():
            raise ValidationError(f"Invalid balance for account '{account.name}'")

        await self.db.update_account(
            account_id, currency=currency, balance=balance, category=category
        )
        logger.info("Updated account '%s'", account.name)

    async def net_worth(self, target_currency: str, rates: Mapping[str, Decimal]) -> Decimal:
        """Sum the balances of active net-worth accounts in one currency.

        Raises:
            ValidationError: If a needed exchange rate is missing
        """
        total = Decimal("0")
        for account in await self.db.list_accounts():
            if not (account.is_active and account.include_in_net_worth):
                continue
            try:
                total += convert_amount(account.balance, account.currency, target_currency, rates)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        return total
