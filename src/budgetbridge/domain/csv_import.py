"""CSV import domain service.

An import runs as a session that moves through
``idle -> parsed -> mapped -> previewed -> importing -> done``:
the file is read, the user confirms the column mapping, rows are
classified and the implied accounts are previewed, and only then are
accounts, categories/tags and transactions written, in that order.
"""

from __future__ import annotations

import asyncio
import csv
import io
import json
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional

from budgetbridge.config import ImportSettings
from budgetbridge.domain.account import AccountService
from budgetbridge.domain.category import CategoryService
from budgetbridge.domain.classifier import classify_all
from budgetbridge.domain.column_mapping import ColumnMapping, guess_mapping, validate_mapping
from budgetbridge.domain.errors import (
    ImportFileError,
    ImportStateError,
    MappingError,
    MetadataError,
    ReconciliationError,
    illegal_transition,
    missing_mappings,
)
from budgetbridge.domain.import_records import (
    ERROR,
    PENDING,
    SKIPPED,
    SUCCESS,
    TRANSFER,
    AccountCandidate,
    AccountPreview,
    ClassifiedTransaction,
    RawRecord,
)
from budgetbridge.domain.materializer import (
    CANCELLED,
    MetadataCreator,
    ProgressCallback,
    TransactionMaterializer,
    missing_metadata,
    plan_writes,
)
from budgetbridge.domain.reconciliation import (
    AccountReconciler,
    AccountResolution,
    build_candidates,
    diff_for_preview,
)
from budgetbridge.domain.tag import TagService
from budgetbridge.domain.transaction import TransactionService

if TYPE_CHECKING:
    from budgetbridge.database.base import Database

logger = logging.getLogger(__name__)

APP_NAME = "budgetbridge"
MANIFEST_NAME = "manifest.json"
KNOWN_CSV_NAMES = ("transactions.csv", "firefly_export.csv", "export.csv")
SNIFF_DELIMITERS = ",;\t|"

# Session states
IDLE = "idle"
PARSED = "parsed"
MAPPED = "mapped"
PREVIEWED = "previewed"
IMPORTING = "importing"
DONE = "done"


@dataclass
class ParsedFile:
    """Header row and records of an import file."""

    source: str
    headers: list[str] = field(default_factory=list)
    records: list[RawRecord] = field(default_factory=list)
    is_backup: bool = False


def _sniff_delimiter(text: str) -> str:
    header = text.splitlines()[0]
    try:
        delimiter = csv.Sniffer().sniff(text[:4096], delimiters=SNIFF_DELIMITERS).delimiter
    except csv.Error:
        delimiter = None
    # The header row must contain the delimiter
    if delimiter is None or delimiter not in header:
        counts = {d: header.count(d) for d in SNIFF_DELIMITERS}
        best = max(counts, key=counts.get)
        delimiter = best if counts[best] else ","
    return delimiter


def parse_csv_text(text: str, source: str) -> ParsedFile:
    """Parse delimited text with a header row.

    Raises:
        ImportFileError: If the text is empty or has no usable header row
    """
    if not text.strip():
        raise ImportFileError(f"{source} is empty")

    reader = csv.DictReader(io.StringIO(text), delimiter=_sniff_delimiter(text))
    headers = reader.fieldnames
    if not headers or not any(h and h.strip() for h in headers):
        raise ImportFileError(f"{source} has no header row")

    records = []
    for row in reader:
        record = {key: value for key, value in row.items() if key is not None}
        if not any(value and value.strip() for value in record.values()):
            continue
        records.append(record)

    logger.info("Read %d records with %d columns from %s", len(records), len(headers), source)
    return ParsedFile(source=source, headers=list(headers), records=records)


def _decode(data: bytes, source: str) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ImportFileError(f"{source} is not UTF-8 text: {e}") from e


def _is_backup_manifest(archive: zipfile.ZipFile) -> bool:
    names = {Path(name).name: name for name in archive.namelist()}
    if MANIFEST_NAME not in names:
        return False
    try:
        manifest = json.loads(archive.read(names[MANIFEST_NAME]).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return False
    return isinstance(manifest, dict) and manifest.get("appName") == APP_NAME


def is_backup_archive(path: str | Path) -> bool:
    """Return True if path is a ZIP carrying this application's backup manifest."""
    path = Path(path)
    if not path.is_file() or not zipfile.is_zipfile(path):
        return False
    try:
        with zipfile.ZipFile(path) as archive:
            return _is_backup_manifest(archive)
    except zipfile.BadZipFile:
        return False


def _pick_csv(archive: zipfile.ZipFile) -> zipfile.ZipInfo:
    csv_members = [
        info
        for info in archive.infolist()
        if not info.is_dir() and info.filename.lower().endswith(".csv")
    ]
    if not csv_members:
        raise ImportFileError("ZIP archive contains no CSV file")
    for known in KNOWN_CSV_NAMES:
        for info in csv_members:
            if Path(info.filename).name.lower() == known:
                return info
    return max(csv_members, key=lambda info: info.file_size)


def read_import_file(path: str | Path) -> ParsedFile:
    """Read a CSV file, or the primary CSV inside a ZIP archive.

    A ZIP carrying this application's backup manifest is returned with
    ``is_backup`` set and no records; it should be restored, not imported.

    Raises:
        ImportFileError: If the file is missing, unreadable or has no header row
    """
    path = Path(path)
    if not path.exists():
        raise ImportFileError(f"File not found: {path}")

    if zipfile.is_zipfile(path):
        try:
            with zipfile.ZipFile(path) as archive:
                if _is_backup_manifest(archive):
                    logger.info("%s is a backup archive", path.name)
                    return ParsedFile(source=path.name, is_backup=True)
                member = _pick_csv(archive)
                logger.info("Using %s from %s", member.filename, path.name)
                text = _decode(archive.read(member), member.filename)
        except zipfile.BadZipFile as e:
            raise ImportFileError(f"Cannot read ZIP archive {path.name}: {e}") from e
        return parse_csv_text(text, member.filename)

    if path.suffix.lower() == ".zip":
        raise ImportFileError(f"Cannot read ZIP archive {path.name}")

    try:
        data = path.read_bytes()
    except OSError as e:
        raise ImportFileError(f"Cannot read {path}: {e}") from e
    return parse_csv_text(_decode(data, path.name), path.name)


@dataclass
class ImportResult:
    """Summary of one import run."""

    total_rows: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    transfers: int = 0
    accounts_created: list[str] = field(default_factory=list)
    accounts_updated: list[str] = field(default_factory=list)
    categories_created: list[str] = field(default_factory=list)
    tags_created: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False


class ImportSession:
    """One import run over one file.

    The session owns the classified rows and the name -> ID table for its
    lifetime; nothing is shared between sessions.
    """

    def __init__(self, db: Database, settings: Optional[ImportSettings] = None):
        """Initialize an import session.

        Args:
            db: Database instance
            settings: Import settings (write concurrency, default currency)
        """
        self.db = db
        self.settings = settings or ImportSettings()
        self.account_service = AccountService(db)
        self.category_service = CategoryService(db)
        self.tag_service = TagService(db)
        self.transaction_service = TransactionService(db)
        concurrency = self.settings.write_concurrency
        self.reconciler = AccountReconciler(self.account_service, concurrency)
        self.metadata_creator = MetadataCreator(self.category_service, self.tag_service, concurrency)
        self.materializer = TransactionMaterializer(self.transaction_service, concurrency)

        self.state = IDLE
        self.parsed: Optional[ParsedFile] = None
        self.guessed_mapping: Optional[ColumnMapping] = None
        self.mapping: Optional[ColumnMapping] = None
        self.default_currency = self.settings.default_currency
        self.rows: list[ClassifiedTransaction] = []
        self.candidates: dict[str, AccountCandidate] = {}
        self.account_preview: list[AccountPreview] = []
        self.resolution: Optional[AccountResolution] = None
        self.result: Optional[ImportResult] = None
        self.new_categories: list[str] = []
        self.new_tags: list[str] = []

    def _require(self, operation: str, *states: str) -> None:
        if self.state not in states:
            raise ImportStateError(illegal_transition(operation, self.state))

    def load(self, path: str | Path) -> ParsedFile:
        """Read the file and guess a column mapping.

        Raises:
            ImportFileError: If the file cannot be read; the session returns to idle
            ImportStateError: If an import is running
        """
        self._require("load a file", IDLE, PARSED, MAPPED, PREVIEWED, DONE)
        try:
            parsed = read_import_file(path)
        except ImportFileError:
            self.state = IDLE
            raise
        if parsed.is_backup:
            self.state = IDLE
            raise ImportFileError(
                f"{parsed.source} is a {APP_NAME} backup archive; restore it instead of importing"
            )

        self.parsed = parsed
        self.guessed_mapping = guess_mapping(parsed.headers)
        self.mapping = None
        self.rows = []
        self.candidates = {}
        self.account_preview = []
        self.resolution = None
        self.result = None
        self.new_categories = []
        self.new_tags = []
        self.state = PARSED
        return parsed

    def confirm_mapping(
        self,
        mapping: Optional[ColumnMapping] = None,
        overrides: Optional[Mapping[str, Optional[str]]] = None,
    ) -> ColumnMapping:
        """Confirm the column mapping, optionally with user overrides.

        Raises:
            MappingError: If required fields are unmapped; the session stays parsed
            ValidationError: If an override names an unknown field or column
        """
        self._require("confirm a mapping", PARSED, MAPPED, PREVIEWED)
        mapping = mapping or self.guessed_mapping or ColumnMapping()
        if overrides:
            mapping = mapping.with_overrides(overrides, self.parsed.headers)

        missing = validate_mapping(mapping)
        if missing:
            self.state = PARSED
            raise MappingError(missing_mappings(missing), missing)

        self.mapping = mapping
        self.state = MAPPED
        return mapping

    async def preview(self) -> list[AccountPreview]:
        """Classify rows and work out the account changes the import implies.

        Nothing is written. Rows that cannot be classified, or that refer
        to accounts the preview cannot resolve, are marked as errors.
        """
        self._require("preview", MAPPED, PREVIEWED)
        existing_accounts, categories, tags = await asyncio.gather(
            self.account_service.list_accounts(),
            self.category_service.list_categories(),
            self.tag_service.list_tags(),
        )

        self.rows = classify_all(self.parsed.records, self.mapping, self.default_currency)
        self.candidates = build_candidates(self.rows, existing_accounts)
        self.account_preview = diff_for_preview(self.candidates, existing_accounts)
        self.resolution = await self.reconciler.materialize_accounts(self.account_preview, commit=False)
        self._mark_unresolvable(self.resolution)
        self.new_categories, self.new_tags = missing_metadata(self.rows, categories, tags)

        self.state = PREVIEWED
        logger.info(
            "Preview: %d rows (%d pending), %d accounts",
            len(self.rows),
            self.pending_count,
            len(self.account_preview),
        )
        return self.account_preview

    def _mark_unresolvable(self, resolution: AccountResolution) -> None:
        for row in self.rows:
            if not row.is_pending:
                continue
            names = (
                [row.source_name, row.destination_name] if row.kind == TRANSFER else [row.account_name]
            )
            for name in names:
                if resolution.resolve(name) is None:
                    row.mark_error(
                        f"Row {row.row_number}: account '{name}' is not part of the import preview"
                    )
                    break

    @property
    def pending_count(self) -> int:
        return sum(1 for row in self.rows if row.import_status == PENDING)

    def _halt_pending(self, reason: str) -> None:
        for row in self.rows:
            if row.is_pending:
                row.mark_skipped(reason)

    async def run_import(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ImportResult:
        """Write accounts, then categories and tags, then transactions.

        Args:
            cancel_event: When set, rows not yet written are skipped
            progress: Called with (processed, total) after each row write

        Returns:
            ImportResult summarizing the run

        Raises:
            ImportStateError: If the session is not previewed or nothing is pending
            ReconciliationError: If any account write failed; no transaction was written
            MetadataError: If category or tag creation failed; no transaction was written
        """
        self._require("import", PREVIEWED)
        if self.pending_count == 0:
            raise ImportStateError("Nothing to import: no rows are pending")

        self.state = IMPORTING
        result = ImportResult()
        try:
            resolution = await self.reconciler.materialize_accounts(self.account_preview, commit=True)
            result.accounts_created = list(resolution.created)
            result.accounts_updated = list(resolution.updated)
            if not resolution.ok:
                self._halt_pending("Import halted: account reconciliation failed")
                self._finish(result, resolution.errors)
                raise ReconciliationError(
                    f"{len(resolution.errors)} account write(s) failed; no transactions were imported",
                    resolution.errors,
                )
            self.resolution = resolution

            if cancel_event is not None and cancel_event.is_set():
                self._halt_pending(CANCELLED)
                self._finish(result, [])
                return result

            planned = plan_writes(self.rows, resolution.name_to_id)

            metadata = await self.metadata_creator.ensure(self.rows)
            result.categories_created = metadata.created_categories
            result.tags_created = metadata.created_tags
            if not metadata.ok:
                self._halt_pending("Import halted: category or tag creation failed")
                self._finish(result, metadata.errors)
                raise MetadataError(
                    f"{len(metadata.errors)} category/tag creation(s) failed; "
                    "no transactions were imported",
                    metadata.errors,
                )

            await self.materializer.commit(planned, cancel_event, progress)
            self._finish(result, [])
            return result
        finally:
            self.state = DONE

    def _finish(self, result: ImportResult, phase_errors: list[str]) -> None:
        result.total_rows = len(self.rows)
        result.succeeded = sum(1 for row in self.rows if row.import_status == SUCCESS)
        result.failed = sum(1 for row in self.rows if row.import_status == ERROR)
        result.skipped = sum(1 for row in self.rows if row.import_status == SKIPPED)
        result.transfers = sum(
            1 for row in self.rows if row.kind == TRANSFER and row.import_status == SUCCESS
        )
        result.cancelled = any(
            row.import_status == SKIPPED and row.error_message == CANCELLED for row in self.rows
        )
        result.errors = list(phase_errors) + [
            row.error_message for row in self.rows if row.import_status == ERROR and row.error_message
        ]
        self.result = result
        logger.info(
            "Import finished: %d succeeded, %d failed, %d skipped",
            result.succeeded,
            result.failed,
            result.skipped,
        )


class CSVImportService:
    """Service for importing CSV files."""

    def __init__(self, db: Database, settings: Optional[ImportSettings] = None):
        """Initialize CSV import service.

        Args:
            db: Database instance
            settings: Import settings
        """
        self.db = db
        self.settings = settings or ImportSettings()

    def new_session(self) -> ImportSession:
        return ImportSession(self.db, self.settings)

    async def preview_file(
        self,
        path: str | Path,
        overrides: Optional[Mapping[str, Optional[str]]] = None,
        default_currency: Optional[str] = None,
    ) -> ImportSession:
        """Load a file, confirm the guessed mapping and preview it.

        Args:
            path: CSV or ZIP file
            overrides: Canonical field -> column choices replacing the guess
            default_currency: Currency for rows that have none

        Returns:
            The previewed session; call ``run_import`` on it to commit

        Raises:
            ImportFileError: If the file cannot be read
            MappingError: If required fields are unmapped
        """
        session = self.new_session()
        session.load(path)
        if default_currency:
            session.default_currency = default_currency.strip().upper()
        session.confirm_mapping(overrides=overrides)
        await session.preview()
        return session

    async def import_file(
        self,
        path: str | Path,
        overrides: Optional[Mapping[str, Optional[str]]] = None,
        default_currency: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportResult:
        """Preview and import a file in one call."""
        session = await self.preview_file(path, overrides, default_currency)
        return await session.run_import(cancel_event=cancel_event)
