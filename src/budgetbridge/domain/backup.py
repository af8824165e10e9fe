"""Backup export and restore.

A backup is a ZIP holding one CSV per collection plus ``manifest.json``.
Restore never trusts archive IDs: every record gets a new ID, the old ->
new maps re-link transactions to their accounts. Accounts created by the
restore end with their exported balance, so opening balances survive;
without a balance column the balance is rebuilt from the transactions.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from budgetbridge.config import ImportSettings
from budgetbridge.domain.account import AccountService
from budgetbridge.domain.category import CategoryService
from budgetbridge.domain.csv_import import APP_NAME, MANIFEST_NAME
from budgetbridge.domain.entities import ASSET, NewTransaction
from budgetbridge.domain.errors import ConflictError, ImportFileError, ValidationError
from budgetbridge.domain.tag import TagService
from budgetbridge.domain.transaction import TransactionService
from budgetbridge.utils.concurrency import run_bounded

if TYPE_CHECKING:
    from budgetbridge.database.base import Database

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1"
RESTORED_PROVIDER = "Restored"

CATEGORY_FIELDS = ["id", "name", "created_at"]
TAG_FIELDS = ["id", "name", "created_at"]
ACCOUNT_FIELDS = [
    "id",
    "name",
    "currency",
    "balance",
    "category",
    "type",
    "provider_name",
    "is_active",
    "include_in_net_worth",
    "created_at",
]
TRANSACTION_FIELDS = [
    "id",
    "account_id",
    "date",
    "amount",
    "transaction_currency",
    "description",
    "category",
    "tags",
    "original_import_data",
    "created_at",
]

RESTORED_COLLECTIONS = ("categories", "tags", "accounts", "transactions")
# Collections other tools put in the same archive format
OTHER_COLLECTIONS = (
    "preferences",
    "groups",
    "subscriptions",
    "loans",
    "credit_cards",
    "budgets",
)


@dataclass
class BackupSummary:
    """What an export wrote."""

    path: Path
    counts: dict[str, int] = field(default_factory=dict)


@dataclass
class RestoreResult:
    """Outcome of a restore, per collection."""

    restored: dict[str, int] = field(default_factory=dict)
    skipped_transactions: int = 0
    not_restored: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    id_maps: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def _to_csv(fieldnames: list[str], rows: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def _read_csv(archive: zipfile.ZipFile, members: dict[str, str], name: str) -> list[dict]:
    member = members.get(f"{name}.csv")
    if member is None:
        return []
    text = archive.read(member).decode("utf-8-sig")
    return list(csv.DictReader(io.StringIO(text)))


def _decimal(value: Optional[str]) -> Decimal:
    try:
        amount = Decimal((value or "").strip())
    except InvalidOperation as e:
        raise ValidationError(f"Invalid amount '{value}'") from e
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount '{value}'")
    return amount


class BackupService:
    """Service for exporting and restoring backup archives."""

    def __init__(self, db: Database, settings: Optional[ImportSettings] = None):
        """Initialize backup service.

        Args:
            db: Database instance
            settings: Settings; only write concurrency is used
        """
        self.db = db
        self.settings = settings or ImportSettings()
        self.account_service = AccountService(db)
        self.category_service = CategoryService(db)
        self.tag_service = TagService(db)
        self.transaction_service = TransactionService(db)

    async def export_to_zip(self, path: str | Path) -> BackupSummary:
        """Write categories, tags, accounts and transactions to a backup ZIP.

        Args:
            path: Output file; replaced if it exists

        Returns:
            BackupSummary with the number of records per collection
        """
        path = Path(path)
        categories = await self.category_service.list_categories()
        tags = await self.tag_service.list_tags()
        accounts = await self.account_service.list_accounts()
        transactions = await self.transaction_service.list_transactions()

        files = {
            "categories": _to_csv(
                CATEGORY_FIELDS,
                [{"id": c.id, "name": c.name, "created_at": c.created_at.isoformat()} for c in categories],
            ),
            "tags": _to_csv(
                TAG_FIELDS,
                [{"id": t.id, "name": t.name, "created_at": t.created_at.isoformat()} for t in tags],
            ),
            "accounts": _to_csv(
                ACCOUNT_FIELDS,
                [
                    {
                        "id": a.id,
                        "name": a.name,
                        "currency": a.currency,
                        "balance": str(a.balance),
                        "category": a.category,
                        "type": a.type,
                        "provider_name": a.provider_name or "",
                        "is_active": a.is_active,
                        "include_in_net_worth": a.include_in_net_worth,
                        "created_at": a.created_at.isoformat(),
                    }
                    for a in accounts
                ],
            ),
            "transactions": _to_csv(
                TRANSACTION_FIELDS,
                [
                    {
                        "id": t.id,
                        "account_id": t.account_id,
                        "date": t.date.isoformat(),
                        "amount": str(t.amount),
                        "transaction_currency": t.transaction_currency,
                        "description": t.description or "",
                        "category": t.category,
                        "tags": "|".join(t.tags),
                        "original_import_data": (
                            json.dumps(t.original_import_data) if t.original_import_data else ""
                        ),
                        "created_at": t.created_at.isoformat(),
                    }
                    for t in transactions
                ],
            ),
        }
        manifest = {
            "appName": APP_NAME,
            "backupVersion": BACKUP_VERSION,
            "exportedAt": datetime.now(timezone.utc).isoformat(),
            "contains": list(files),
        }

        path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr(MANIFEST_NAME, json.dumps(manifest, indent=2))
            for name, text in files.items():
                archive.writestr(f"{name}.csv", text)

        counts = {
            "categories": len(categories),
            "tags": len(tags),
            "accounts": len(accounts),
            "transactions": len(transactions),
        }
        logger.info("Exported backup to %s: %s", path, counts)
        return BackupSummary(path=path, counts=counts)

    async def restore_from_zip(self, path: str | Path) -> RestoreResult:
        """Restore a backup archive written by ``export_to_zip``.

        Collections are restored in dependency order: categories, tags,
        accounts, then transactions. A category, tag or account that
        already exists counts as restored and maps to the existing ID.
        Transactions whose account cannot be mapped are skipped.

        Raises:
            ImportFileError: If the file is not a readable backup archive
        """
        path = Path(path)
        if not path.exists():
            raise ImportFileError(f"File not found: {path}")
        try:
            with zipfile.ZipFile(path) as archive:
                members = {Path(name).name: name for name in archive.namelist()}
                manifest = self._read_manifest(archive, members, path.name)
                data = {name: _read_csv(archive, members, name) for name in RESTORED_COLLECTIONS}
                present = [
                    name
                    for name in OTHER_COLLECTIONS
                    if f"{name}.csv" in members or name in manifest.get("contains", [])
                ]
        except zipfile.BadZipFile as e:
            raise ImportFileError(f"Cannot read ZIP archive {path.name}: {e}") from e

        result = RestoreResult(not_restored=present)
        for name in present:
            logger.warning("Backup collection '%s' is not restored", name)

        result.id_maps["categories"] = await self._restore_categories(data["categories"], result)
        result.id_maps["tags"] = await self._restore_tags(data["tags"], result)
        balances: dict[int, Decimal] = {}
        result.id_maps["accounts"] = await self._restore_accounts(data["accounts"], result, balances)
        await self._restore_transactions(data["transactions"], result.id_maps["accounts"], result)
        await self._restore_balances(balances, result)

        logger.info(
            "Restored %s from %s (%d errors)", result.restored, path.name, len(result.errors)
        )
        return result

    def _read_manifest(self, archive: zipfile.ZipFile, members: dict[str, str], source: str) -> dict:
        if MANIFEST_NAME not in members:
            raise ImportFileError(f"{source} has no {MANIFEST_NAME}; it is not a backup archive")
        try:
            manifest = json.loads(archive.read(members[MANIFEST_NAME]).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise ImportFileError(f"{source} has an unreadable {MANIFEST_NAME}: {e}") from e
        if not isinstance(manifest, dict) or manifest.get("appName") != APP_NAME:
            raise ImportFileError(f"{source} is not a {APP_NAME} backup archive")
        return manifest

    async def _restore_categories(self, rows: list[dict], result: RestoreResult) -> dict[str, int]:
        id_map: dict[str, int] = {}

        async def restore(row: dict) -> None:
            name = (row.get("name") or "").strip()
            try:
                try:
                    new_id = await self.category_service.create_category(name)
                except ConflictError:
                    new_id = (await self.category_service.get_category_by_name(name)).id
            except Exception as e:
                message = f"Failed to restore category '{name}': {e}"
                logger.error(message)
                result.errors.append(message)
                return
            id_map[row.get("id") or name] = new_id

        await run_bounded(rows, restore, self.settings.write_concurrency)
        result.restored["categories"] = len(id_map)
        return id_map

    async def _restore_tags(self, rows: list[dict], result: RestoreResult) -> dict[str, int]:
        id_map: dict[str, int] = {}

        async def restore(row: dict) -> None:
            name = (row.get("name") or "").strip()
            try:
                try:
                    new_id = await self.tag_service.create_tag(name)
                except ConflictError:
                    key = name.casefold()
                    tags = await self.tag_service.list_tags()
                    new_id = next(tag.id for tag in tags if tag.name.casefold() == key)
            except Exception as e:
                message = f"Failed to restore tag '{name}': {e}"
                logger.error(message)
                result.errors.append(message)
                return
            id_map[row.get("id") or name] = new_id

        await run_bounded(rows, restore, self.settings.write_concurrency)
        result.restored["tags"] = len(id_map)
        return id_map

    async def _restore_accounts(
        self, rows: list[dict], result: RestoreResult, balances: dict[int, Decimal]
    ) -> dict[str, int]:
        id_map: dict[str, int] = {}

        async def restore(row: dict) -> None:
            name = (row.get("name") or "").strip()
            exported = (row.get("balance") or "").strip()
            try:
                balance = _decimal(exported) if exported else None
                try:
                    new_id = await self.account_service.create_account(
                        name=name,
                        currency=row.get("currency") or "",
                        balance=Decimal("0"),
                        category=row.get("category") or ASSET,
                        type=row.get("type") or None,
                        provider_name=row.get("provider_name") or RESTORED_PROVIDER,
                    )
                    if balance is not None:
                        balances[new_id] = balance
                except ConflictError:
                    existing = await self.account_service.find_by_name(name)
                    if existing is None:
                        raise
                    new_id = existing.id
            except Exception as e:
                message = f"Failed to restore account '{name}': {e}"
                logger.error(message)
                result.errors.append(message)
                return
            if row.get("id"):
                id_map[row["id"]] = new_id

        await run_bounded(rows, restore, self.settings.write_concurrency)
        result.restored["accounts"] = len(id_map)
        return id_map

    async def _restore_transactions(
        self, rows: list[dict], account_map: dict[str, int], result: RestoreResult
    ) -> None:
        restored = 0
        ordered = sorted(rows, key=lambda row: (row.get("date") or "").strip())

        async def restore(row: dict) -> None:
            nonlocal restored
            old_id = row.get("id") or "?"
            account_id = account_map.get(row.get("account_id") or "")
            if account_id is None:
                logger.warning(
                    "Skipping transaction %s: account %s was not restored", old_id, row.get("account_id")
                )
                result.skipped_transactions += 1
                return
            try:
                raw_import_data = row.get("original_import_data") or ""
                tags = tuple(tag for tag in (row.get("tags") or "").split("|") if tag)
                await self.transaction_service.record(
                    NewTransaction(
                        account_id=account_id,
                        date=date.fromisoformat((row.get("date") or "").strip()),
                        amount=_decimal(row.get("amount")),
                        transaction_currency=(row.get("transaction_currency") or "").strip().upper(),
                        description=row.get("description") or None,
                        category=row.get("category") or "Uncategorized",
                        tags=tags,
                        original_import_data=json.loads(raw_import_data) if raw_import_data else None,
                    )
                )
            except Exception as e:
                message = f"Failed to restore transaction {old_id}: {e}"
                logger.error(message)
                result.errors.append(message)
                return
            restored += 1

        await run_bounded(ordered, restore, self.settings.write_concurrency)
        result.restored["transactions"] = restored

    async def _restore_balances(self, balances: dict[int, Decimal], result: RestoreResult) -> None:
        # Runs after transactions so the exported balance is the final one
        async def restore(item: tuple[int, Decimal]) -> None:
            account_id, balance = item
            try:
                await self.account_service.update_account(account_id, balance=balance)
            except Exception as e:
                message = f"Failed to restore balance of account {account_id}: {e}"
                logger.error(message)
                result.errors.append(message)

        await run_bounded(list(balances.items()), restore, self.settings.write_concurrency)
