"""Account inference and reconciliation.

Turns classified rows into the set of accounts the import implies, diffs
that set against persisted accounts for the preview, and then creates or
updates accounts. All account writes settle before any transaction is
written, since transaction legs reference resolved account IDs.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Union

from budgetbridge.domain.account import AccountService
from budgetbridge.domain.classifier import is_asset_type
from budgetbridge.domain.entities import ASSET, CRYPTO, Account
from budgetbridge.domain.errors import ConflictError
from budgetbridge.domain.import_records import (
    CREATE,
    DEPOSIT,
    ERROR,
    FROM_BALANCE_COLUMN,
    FROM_OPENING_BALANCE,
    NO_CHANGE,
    OPENING_BALANCE,
    TRANSFER,
    UPDATE,
    WITHDRAWAL,
    AccountCandidate,
    AccountPreview,
    ClassifiedTransaction,
)
from budgetbridge.utils.account_resolver import build_name_index, normalize_account_name
from budgetbridge.utils.concurrency import run_bounded

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "preview:"

CRYPTO_TOKENS = (
    "crypto",
    "wallet",
    "binance",
    "coinbase",
    "kraken",
    "okx",
    "kucoin",
    "bitstamp",
    "gate.io",
    "huobi",
    "htx",
    "bitfinex",
    "ledger",
    "trezor",
    "metamask",
    "trust wallet",
    "exodus",
    "phantom",
    "atomic wallet",
    "bluewallet",
)

AccountRef = Union[int, str]


def infer_category(name: str, account_type: Optional[str] = None) -> str:
    """Crypto when the name or type mentions crypto, a wallet or a known exchange."""
    text = f"{name} {account_type or ''}".lower()
    return CRYPTO if any(token in text for token in CRYPTO_TOKENS) else ASSET


def placeholder_id(name: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{name}"


def is_placeholder(account_ref: object) -> bool:
    return isinstance(account_ref, str) and account_ref.startswith(PLACEHOLDER_PREFIX)


def _asset_sides(row: ClassifiedTransaction) -> list[tuple[str, str, Optional[str]]]:
    """(name, currency, type) for each side of a row that books to an asset account."""
    if row.kind in (WITHDRAWAL, DEPOSIT):
        if row.kind == WITHDRAWAL:
            side_name, side_type = row.source_name, row.source_type
        else:
            side_name, side_type = row.destination_name, row.destination_type
        account_type = side_type if row.account_name == side_name else None
        return [(row.account_name, row.currency, account_type)]

    sides = []
    if row.source_name and (not row.source_type or is_asset_type(row.source_type)):
        sides.append((row.source_name, row.currency, row.source_type))
    if row.destination_name and (not row.destination_type or is_asset_type(row.destination_type)):
        currency = row.currency
        if row.foreign_currency and row.foreign_amount is not None:
            currency = row.foreign_currency
        sides.append((row.destination_name, currency, row.destination_type))
    return sides


def build_candidates(
    rows: Iterable[ClassifiedTransaction],
    existing_accounts: Iterable[Account],
) -> dict[str, AccountCandidate]:
    """Infer the accounts the rows refer to, keyed by normalized name.

    Opening-balance rows are read first and set balances (a later row for
    the same account replaces an earlier one). Other rows then add any
    asset account not yet seen; they never replace an opening balance.
    Neither the rows nor the accounts are modified.
    """
    rows = list(rows)
    existing = build_name_index(existing_accounts)
    candidates: dict[str, AccountCandidate] = {}

    for row in rows:
        if row.kind != OPENING_BALANCE or row.import_status == ERROR or not row.account_name:
            continue
        key = normalize_account_name(row.account_name)
        previous = candidates.get(key)
        if previous is not None:
            logger.warning(
                "Row %d: duplicate opening balance for '%s'; %s replaces %s",
                row.row_number,
                row.account_name,
                row.amount,
                previous.balance,
            )
        candidates[key] = AccountCandidate(
            name=previous.name if previous else row.account_name,
            currency=row.currency,
            balance=row.amount,
            balance_source=FROM_OPENING_BALANCE,
            category=infer_category(row.account_name, row.destination_type or row.source_type),
        )

    for row in rows:
        if row.kind not in (TRANSFER, WITHDRAWAL, DEPOSIT) or row.import_status == ERROR:
            continue
        for name, currency, account_type in _asset_sides(row):
            key = normalize_account_name(name)
            inferred = infer_category(name, account_type)
            candidate = candidates.get(key)
            column_balance = row.initial_balance if row.kind != TRANSFER else None
            if candidate is None:
                # Only opening balances may change a persisted account's currency
                known = existing.get(key)
                candidates[key] = AccountCandidate(
                    name=name,
                    currency=known.currency if known is not None else currency,
                    balance=column_balance,
                    balance_source=FROM_BALANCE_COLUMN if column_balance is not None else None,
                    category=inferred,
                )
                continue
            if candidate.balance is None and column_balance is not None:
                candidate.balance = column_balance
                candidate.balance_source = FROM_BALANCE_COLUMN
            if not candidate.currency:
                candidate.currency = currency
            if candidate.category == ASSET and inferred == CRYPTO:
                candidate.category = CRYPTO

    for key, candidate in candidates.items():
        account = existing.get(key)
        if account is not None:
            candidate.category = account.category

    return candidates


def diff_for_preview(
    candidates: dict[str, AccountCandidate],
    existing_accounts: Iterable[Account],
) -> list[AccountPreview]:
    """Compare candidates with persisted accounts.

    Every persisted account appears in the result; the ones the import
    does not touch are listed as no_change.
    """
    existing_accounts = list(existing_accounts)
    existing = build_name_index(existing_accounts)
    preview: list[AccountPreview] = []
    seen_ids = set()

    for key, candidate in candidates.items():
        account = existing.get(key)
        if account is None:
            preview.append(
                AccountPreview(
                    name=candidate.name,
                    currency=candidate.currency,
                    balance=candidate.balance if candidate.balance is not None else Decimal("0"),
                    category=candidate.category,
                    action=CREATE,
                )
            )
            continue

        seen_ids.add(account.id)
        currency_differs = bool(candidate.currency) and candidate.currency != account.currency
        balance_differs = candidate.balance is not None and candidate.balance != account.balance
        action = UPDATE if currency_differs or balance_differs else NO_CHANGE
        preview.append(
            AccountPreview(
                name=account.name,
                currency=candidate.currency or account.currency,
                balance=candidate.balance if candidate.balance is not None else account.balance,
                category=account.category,
                action=action,
                existing_id=account.id,
            )
        )

    for account in sorted(existing_accounts, key=lambda acc: acc.name.lower()):
        if account.id in seen_ids:
            continue
        seen_ids.add(account.id)
        preview.append(
            AccountPreview(
                name=account.name,
                currency=account.currency,
                balance=account.balance,
                category=account.category,
                action=NO_CHANGE,
                existing_id=account.id,
            )
        )
    return preview


@dataclass
class AccountResolution:
    """Outcome of account materialization: the name -> ID table plus failures."""

    name_to_id: dict[str, AccountRef] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def resolve(self, name: Optional[str]) -> Optional[AccountRef]:
        if not name:
            return None
        return self.name_to_id.get(normalize_account_name(name))


class AccountReconciler:
    """Creates and updates accounts from an account preview."""

    def __init__(self, account_service: AccountService, write_concurrency: int = 4):
        self.account_service = account_service
        self.write_concurrency = write_concurrency

    async def materialize_accounts(
        self, preview: list[AccountPreview], commit: bool
    ) -> AccountResolution:
        """Resolve every previewed account to an ID.

        Args:
            preview: Output of ``diff_for_preview``
            commit: False synthesizes placeholder IDs for new accounts and
                writes nothing; True creates and updates accounts

        Returns:
            AccountResolution. In commit mode, ``errors`` lists every
            account write that failed; the caller must not write
            transactions when it is non-empty.
        """
        resolution = AccountResolution()
        for entry in preview:
            if entry.existing_id is not None:
                resolution.name_to_id[normalize_account_name(entry.name)] = entry.existing_id

        if not commit:
            for entry in preview:
                if entry.action == CREATE:
                    resolution.name_to_id[normalize_account_name(entry.name)] = placeholder_id(entry.name)
            return resolution

        pending = [entry for entry in preview if entry.action in (CREATE, UPDATE)]

        async def write(entry: AccountPreview) -> None:
            try:
                if entry.action == CREATE:
                    account_id = await self._create(entry)
                    resolution.name_to_id[normalize_account_name(entry.name)] = account_id
                    resolution.created.append(entry.name)
                else:
                    await self.account_service.update_account(
                        entry.existing_id, currency=entry.currency, balance=entry.balance
                    )
                    resolution.updated.append(entry.name)
            except Exception as e:
                logger.error("Account '%s' (%s) failed: %s", entry.name, entry.action, e)
                resolution.errors.append(f"Failed to {entry.action} account '{entry.name}': {e}")

        await run_bounded(pending, write, self.write_concurrency)
        logger.info(
            "Accounts: %d created, %d updated, %d failed",
            len(resolution.created),
            len(resolution.updated),
            len(resolution.errors),
        )
        return resolution

    async def _create(self, entry: AccountPreview) -> int:
        try:
            return await self.account_service.create_account(
                name=entry.name,
                currency=entry.currency,
                balance=entry.balance if entry.balance is not None else Decimal("0"),
                category=entry.category,
                provider_name=f"Imported - {entry.name}",
            )
        except ConflictError:
            # Created since the preview was taken
            account = await self.account_service.find_by_name(entry.name)
            if account is None:
                raise
            return account.id

