"""Domain model entities for budgetbridge.

These are pure data classes representing business concepts, independent of
the storage schema. The import engine only ever sees these types, so a
different document store can be plugged in behind the Database interface.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Optional

ASSET = "asset"
CRYPTO = "crypto"
ACCOUNT_CATEGORIES = (ASSET, CRYPTO)


@dataclass(frozen=True)
class Account:
    """Account domain entity."""

    id: int
    name: str
    currency: str
    balance: Decimal
    category: str
    type: str
    provider_name: Optional[str]
    is_active: bool
    last_activity: Optional[datetime]
    include_in_net_worth: bool
    created_at: datetime


@dataclass(frozen=True)
class NewAccount:
    """Values for an account that does not exist yet."""

    name: str
    currency: str
    balance: Decimal = Decimal("0")
    category: str = ASSET
    type: str = "checking"
    provider_name: Optional[str] = None
    is_active: bool = True
    include_in_net_worth: bool = True


@dataclass(frozen=True)
class Category:
    """Category domain entity."""

    id: int
    name: str
    created_at: datetime


@dataclass(frozen=True)
class Tag:
    """Tag domain entity."""

    id: int
    name: str
    created_at: datetime


@dataclass(frozen=True)
class Transaction:
    """Transaction domain entity."""

    id: int
    account_id: int
    date: date
    amount: Decimal
    transaction_currency: str
    description: Optional[str]
    category: str
    tags: tuple[str, ...]
    original_import_data: Optional[dict[str, Any]]
    created_at: datetime


@dataclass(frozen=True)
class NewTransaction:
    """One ledger entry to be written against a single account.

    A transfer is written as two of these (a debit and a credit leg).
    """

    account_id: int
    date: date
    amount: Decimal
    transaction_currency: str
    description: Optional[str] = None
    category: str = "Uncategorized"
    tags: tuple[str, ...] = field(default_factory=tuple)
    original_import_data: Optional[dict[str, Any]] = None
