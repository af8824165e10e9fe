"""Transaction materializer.

Expands classified rows into ledger legs against resolved account IDs,
creates the categories and tags those rows need, and writes the legs.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from budgetbridge.domain.category import CategoryService, is_reserved_category
from budgetbridge.domain.entities import NewTransaction
from budgetbridge.domain.errors import ConflictError, same_account_transfer, unresolved_account
from budgetbridge.domain.import_records import (
    DEPOSIT,
    OPENING_BALANCE,
    SUCCESS,
    TRANSFER,
    UNCATEGORIZED,
    WITHDRAWAL,
    ClassifiedTransaction,
)
from budgetbridge.domain.reconciliation import AccountRef, is_placeholder
from budgetbridge.domain.tag import TagService
from budgetbridge.domain.transaction import TransactionService
from budgetbridge.utils.account_resolver import normalize_account_name
from budgetbridge.utils.concurrency import run_bounded

logger = logging.getLogger(__name__)

TRANSFER_CATEGORY = "Transfer"
CANCELLED = "Import cancelled"

ProgressCallback = Callable[[int, int], None]


@dataclass
class PlannedRow:
    """A pending row and the legs it will be written as."""

    row: ClassifiedTransaction
    legs: list[NewTransaction]


def _resolve(
    row: ClassifiedTransaction, name: Optional[str], name_to_id: Mapping[str, AccountRef]
) -> Optional[int]:
    """Return the real account ID for a name, or mark the row as an error."""
    ref = name_to_id.get(normalize_account_name(name)) if name else None
    if ref is None:
        row.mark_error(f"Row {row.row_number}: {unresolved_account(name or '')}")
        return None
    if is_placeholder(ref) or not isinstance(ref, int):
        row.mark_error(f"Row {row.row_number}: {unresolved_account(name or '', ref)}")
        return None
    return ref


def _import_data(row: ClassifiedTransaction) -> dict:
    data = {"row_number": row.row_number, "kind": row.kind}
    if row.foreign_amount is not None:
        data["foreign_amount"] = str(row.foreign_amount)
    if row.foreign_currency:
        data["foreign_currency"] = row.foreign_currency
    return data


def plan_writes(
    rows: list[ClassifiedTransaction], name_to_id: Mapping[str, AccountRef]
) -> list[PlannedRow]:
    """Expand pending rows into legs.

    Opening balances and rows that are not pending produce nothing. Rows
    whose accounts do not resolve to real IDs are marked as errors, never
    booked against some other account.
    """
    planned = []
    for row in rows:
        if row.kind == OPENING_BALANCE or not row.is_pending:
            continue

        if row.kind == TRANSFER:
            source_id = _resolve(row, row.source_name, name_to_id)
            if source_id is None:
                continue
            destination_id = _resolve(row, row.destination_name, name_to_id)
            if destination_id is None:
                continue
            if source_id == destination_id:
                row.mark_error(f"Row {row.row_number}: {same_account_transfer(row.source_name)}")
                continue

            credit_amount, credit_currency = row.amount, row.currency
            if row.foreign_amount is not None and row.foreign_currency:
                credit_amount, credit_currency = abs(row.foreign_amount), row.foreign_currency

            category = row.category if row.category != UNCATEGORIZED else TRANSFER_CATEGORY
            common = dict(
                date=row.date,
                description=row.description,
                category=category,
                tags=tuple(row.tags),
                original_import_data=_import_data(row),
            )
            legs = [
                NewTransaction(
                    account_id=source_id,
                    amount=-row.amount,
                    transaction_currency=row.currency,
                    **common,
                ),
                NewTransaction(
                    account_id=destination_id,
                    amount=credit_amount,
                    transaction_currency=credit_currency,
                    **common,
                ),
            ]
            planned.append(PlannedRow(row, legs))
            continue

        if row.kind in (WITHDRAWAL, DEPOSIT):
            account_id = _resolve(row, row.account_name, name_to_id)
            if account_id is None:
                continue
            leg = NewTransaction(
                account_id=account_id,
                date=row.date,
                amount=row.amount,
                transaction_currency=row.currency,
                description=row.description,
                category=row.category,
                tags=tuple(row.tags),
                original_import_data=_import_data(row),
            )
            planned.append(PlannedRow(row, [leg]))
            continue

        row.mark_error(f"Row {row.row_number}: Unknown transaction kind '{row.kind}'")

    for item in planned:
        logger.debug("Row %d planned as %d leg(s)", item.row.row_number, len(item.legs))
    return planned


@dataclass
class MetadataResult:
    created_categories: list[str] = field(default_factory=list)
    created_tags: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _unique(names) -> list[str]:
    seen = set()
    result = []
    for name in names:
        key = name.strip().casefold()
        if key and key not in seen:
            seen.add(key)
            result.append(name.strip())
    return result


def missing_metadata(
    rows: list[ClassifiedTransaction], categories, tags
) -> tuple[list[str], list[str]]:
    """Categories and tags referenced by pending rows that do not exist yet.

    Names compare without regard to case; built-in categories are never
    returned.
    """
    pending = [row for row in rows if row.is_pending]
    known_categories = {c.name.casefold() for c in categories}
    known_tags = {t.name.casefold() for t in tags}
    new_categories = [
        name
        for name in _unique(row.category for row in pending)
        if not is_reserved_category(name) and name.casefold() not in known_categories
    ]
    new_tags = [
        name
        for name in _unique(tag for row in pending for tag in row.tags)
        if name.casefold() not in known_tags
    ]
    return new_categories, new_tags


class MetadataCreator:
    """Creates the categories and tags that pending rows reference."""

    def __init__(
        self,
        category_service: CategoryService,
        tag_service: TagService,
        write_concurrency: int = 4,
    ):
        self.category_service = category_service
        self.tag_service = tag_service
        self.write_concurrency = write_concurrency

    async def ensure(self, rows: list[ClassifiedTransaction]) -> MetadataResult:
        """Create missing categories and tags.

        Each creation is independent: one failure does not stop the
        others. A name that turns out to exist already is not a failure.
        """
        existing_categories, existing_tags = await asyncio.gather(
            self.category_service.list_categories(), self.tag_service.list_tags()
        )
        categories, tags = missing_metadata(rows, existing_categories, existing_tags)
        result = MetadataResult()

        async def create_category(name: str) -> None:
            try:
                await self.category_service.create_category(name)
                result.created_categories.append(name)
            except ConflictError:
                logger.debug("Category '%s' already exists", name)
            except Exception as e:
                logger.error("Failed to create category '%s': %s", name, e)
                result.errors.append(f"Failed to create category '{name}': {e}")

        async def create_tag(name: str) -> None:
            try:
                await self.tag_service.create_tag(name)
                result.created_tags.append(name)
            except ConflictError:
                logger.debug("Tag '%s' already exists", name)
            except Exception as e:
                logger.error("Failed to create tag '%s': %s", name, e)
                result.errors.append(f"Failed to create tag '{name}': {e}")

        await run_bounded(categories, create_category, self.write_concurrency)
        await run_bounded(tags, create_tag, self.write_concurrency)
        logger.info(
            "Metadata: %d categories and %d tags created, %d failed",
            len(result.created_categories),
            len(result.created_tags),
            len(result.errors),
        )
        return result


class TransactionMaterializer:
    """Writes planned rows, each row's legs in one atomic call."""

    def __init__(self, transaction_service: TransactionService, write_concurrency: int = 4):
        self.transaction_service = transaction_service
        self.write_concurrency = write_concurrency

    async def commit(
        self,
        planned: list[PlannedRow],
        cancel_event: Optional[asyncio.Event] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Write every planned row and set its status.

        Once ``cancel_event`` is set, rows not yet written are marked
        skipped with "Import cancelled".
        """
        total = len(planned)
        done = 0

        async def write(item: PlannedRow) -> None:
            nonlocal done
            row = item.row
            try:
                if cancel_event is not None and cancel_event.is_set():
                    row.mark_skipped(CANCELLED)
                    return
                try:
                    await self.transaction_service.record(*item.legs)
                except Exception as e:
                    logger.warning("Row %d: write failed: %s", row.row_number, e)
                    row.mark_error(f"Row {row.row_number}: {e}")
                    return
                row.import_status = SUCCESS
                row.error_message = None
            finally:
                done += 1
                if progress is not None:
                    progress(done, total)

        await run_bounded(planned, write, self.write_concurrency)
