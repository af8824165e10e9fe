"""Import-session records.

Raw rows and classified rows are kept as distinct types: a ``RawRecord``
is whatever the CSV held, a ``ClassifiedTransaction`` only exists once a
row has been through column mapping and classification. These records
live for one import session and are never persisted as-is.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

# One CSV row keyed by its original header
RawRecord = dict[str, Optional[str]]

# Transaction kinds
WITHDRAWAL = "withdrawal"
DEPOSIT = "deposit"
TRANSFER = "transfer"
OPENING_BALANCE = "opening_balance"

# Row statuses
PENDING = "pending"
SUCCESS = "success"
ERROR = "error"
SKIPPED = "skipped"

# Where a candidate's balance came from
FROM_OPENING_BALANCE = "opening_balance"
FROM_BALANCE_COLUMN = "initial_balance_column"

# Preview actions
CREATE = "create"
UPDATE = "update"
NO_CHANGE = "no_change"

UNCATEGORIZED = "Uncategorized"


@dataclass
class ClassifiedTransaction:
    """A CSV row after classification.

    Mutable: the orchestrator advances ``import_status`` in place as the
    row moves through the import phases.
    """

    row_number: int
    raw: RawRecord
    date: Optional[date] = None
    amount: Decimal = Decimal("NaN")
    currency: str = ""
    description: str = ""
    category: str = UNCATEGORIZED
    tags: list[str] = field(default_factory=list)
    kind: Optional[str] = None
    source_name: Optional[str] = None
    destination_name: Optional[str] = None
    source_type: Optional[str] = None
    destination_type: Optional[str] = None
    account_name: Optional[str] = None
    foreign_amount: Optional[Decimal] = None
    foreign_currency: Optional[str] = None
    initial_balance: Optional[Decimal] = None
    notes: Optional[str] = None
    import_status: str = PENDING
    error_message: Optional[str] = None

    def mark_error(self, message: str) -> None:
        self.import_status = ERROR
        self.error_message = message

    def mark_skipped(self, message: str) -> None:
        self.import_status = SKIPPED
        self.error_message = message

    @property
    def is_pending(self) -> bool:
        return self.import_status == PENDING


@dataclass
class AccountCandidate:
    """An account implied by the import file, before reconciliation."""

    name: str
    currency: str
    balance: Optional[Decimal] = None
    balance_source: Optional[str] = None
    category: str = "asset"


@dataclass(frozen=True)
class AccountPreview:
    """One line of the account preview shown before import."""

    name: str
    currency: str
    balance: Optional[Decimal]
    category: str
    action: str
    existing_id: Optional[int] = None
