"""Row classifier: turns a raw CSV record into a ClassifiedTransaction.

Classification never raises for bad data. A row that cannot be
classified comes back with status ``error`` and a message naming the row
and the offending field; the rest of the batch is unaffected.
"""

import logging
import re
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from budgetbridge.domain.column_mapping import ColumnMapping
from budgetbridge.domain.errors import RowError, same_account_transfer
from budgetbridge.domain.import_records import (
    DEPOSIT,
    ERROR,
    OPENING_BALANCE,
    TRANSFER,
    UNCATEGORIZED,
    WITHDRAWAL,
    ClassifiedTransaction,
    RawRecord,
)
from budgetbridge.utils.account_resolver import normalize_account_name
from budgetbridge.utils.amount_parser import parse_amount
from budgetbridge.utils.date_parser import parse_date

logger = logging.getLogger(__name__)

TYPE_VALUES = {
    "withdrawal": WITHDRAWAL,
    "deposit": DEPOSIT,
    "transfer": TRANSFER,
    "opening balance": OPENING_BALANCE,
}

OPENING_BALANCE_PHRASE = re.compile(
    r"^(?:opening balance for|initial balance for|saldo inicial(?: para| da conta| do| da| de)?)\b"
    r"\s*:?\s*[\"']?([^\"':\s][^\"']*?)[\"']?\s*$",
    re.IGNORECASE,
)

TAG_SEPARATORS = re.compile(r"[,|]")

OPENING_BALANCE_CATEGORY = "Opening Balance"


def parse_opening_balance_name(text: Optional[str]) -> Optional[str]:
    """Extract the account name from phrases like "Initial balance for 'Nubank'"."""
    if not text:
        return None
    match = OPENING_BALANCE_PHRASE.match(text.strip())
    if match is None:
        return None
    name = match.group(1).strip()
    return name or None


def is_asset_type(account_type: Optional[str]) -> bool:
    """True for 'asset account', 'default asset account' and similar."""
    return bool(account_type) and "asset" in account_type


def split_tags(value: Optional[str]) -> list[str]:
    """Split a tag cell on ',' or '|', dropping blanks and repeats."""
    if not value:
        return []
    tags: list[str] = []
    seen = set()
    for tag in TAG_SEPARATORS.split(value):
        tag = tag.strip()
        if tag and tag.casefold() not in seen:
            seen.add(tag.casefold())
            tags.append(tag)
    return tags


def _normalize_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return " ".join(value.replace("_", " ").split()).lower()


def _lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if value else None


def _parse_required_amount(row_number: int, field: str, value: Optional[str]) -> Decimal:
    if value is None:
        raise RowError(row_number, f"Missing '{field}' value", field=field)
    amount = parse_amount(value)
    if amount.is_nan():
        raise RowError(row_number, f"Could not parse amount '{value}'", field=field)
    return amount


def _populated(value: Optional[str]) -> bool:
    """A cell counts as populated when it holds a non-zero amount."""
    if value is None:
        return False
    amount = parse_amount(value)
    return amount.is_nan() or amount != 0


def _read_amount(row_number: int, record: RawRecord, mapping: ColumnMapping) -> Decimal:
    amount_value = mapping.value(record, "amount")
    if amount_value is not None or not (
        mapping.is_mapped("amount_income") and mapping.is_mapped("amount_expense")
    ):
        return _parse_required_amount(row_number, "amount", amount_value)

    income = mapping.value(record, "amount_income")
    expense = mapping.value(record, "amount_expense")
    if _populated(income) and _populated(expense):
        raise RowError(
            row_number,
            f"Both income ('{income}') and expense ('{expense}') are populated",
            field="amount_income",
        )
    if _populated(income):
        return abs(_parse_required_amount(row_number, "amount_income", income))
    if _populated(expense):
        return -abs(_parse_required_amount(row_number, "amount_expense", expense))
    if income is not None or expense is not None:
        return Decimal("0")
    raise RowError(row_number, "Missing amount", field="amount")


def _compose_description(description: str, notes: Optional[str]) -> str:
    if not notes:
        return description
    if description:
        return f"{description} (Notes: {notes})"
    return f"Notes: {notes}"


def classify(
    record: RawRecord,
    mapping: ColumnMapping,
    row_number: int,
    default_currency: Optional[str] = None,
) -> ClassifiedTransaction:
    """Classify one CSV record.

    Args:
        record: The raw row keyed by header
        mapping: Confirmed column mapping
        row_number: File row number (the header is row 1)
        default_currency: Currency to use when the row has none

    Returns:
        A ClassifiedTransaction with status pending, skipped (opening
        balances) or error
    """
    row = ClassifiedTransaction(row_number=row_number, raw=dict(record))
    try:
        _classify_into(row, record, mapping, default_currency)
    except RowError as e:
        logger.warning(
            "Row %d: %s (field=%s, value=%r)",
            row_number,
            e.reason,
            e.field,
            mapping.value(record, e.field) if e.field else None,
        )
        row.mark_error(str(e))
    return row


def _classify_into(
    row: ClassifiedTransaction,
    record: RawRecord,
    mapping: ColumnMapping,
    default_currency: Optional[str],
) -> None:
    number = row.row_number

    def value(name: str) -> Optional[str]:
        return mapping.value(record, name)

    type_text = value("transaction_type")
    type_key = _normalize_type(type_text)
    kind = None
    if type_key is not None:
        kind = TYPE_VALUES.get(type_key)
        if kind is None:
            raise RowError(
                number,
                f"Unknown transaction type '{type_text}'. "
                "Supported: withdrawal, deposit, transfer, opening balance",
                field="transaction_type",
            )

    row.source_name = value("source_name")
    row.destination_name = value("destination_name")
    row.source_type = _lower(value("source_type"))
    row.destination_type = _lower(value("destination_type"))
    account = value("account")
    description = value("description") or ""
    row.notes = value("notes")

    date_value = value("date")
    if date_value is None:
        raise RowError(number, "Missing date", field="date")
    row.date = parse_date(date_value)

    currency = value("currency_code") or default_currency or mapping.amount_header_currency()
    if not currency or not currency.strip():
        raise RowError(number, "Missing currency", field="currency_code")
    row.currency = currency.strip().upper()

    foreign_value = value("foreign_amount")
    if foreign_value is not None:
        foreign_amount = parse_amount(foreign_value)
        if foreign_amount.is_nan():
            logger.warning(
                "Row %d: could not parse foreign amount %r, ignoring it", number, foreign_value
            )
        else:
            row.foreign_amount = foreign_amount
    foreign_currency = value("foreign_currency_code")
    if foreign_currency:
        row.foreign_currency = foreign_currency.upper()

    balance_value = value("initial_balance")
    if balance_value is not None:
        balance = parse_amount(balance_value)
        if balance.is_finite():
            row.initial_balance = balance

    # Only untyped rows are recognized by their wording
    if kind is None:
        untyped_names = (account, row.source_name, row.destination_name, description)
        if any(parse_opening_balance_name(name) for name in untyped_names):
            kind = OPENING_BALANCE

    if kind == OPENING_BALANCE:
        _classify_opening_balance(row, record, mapping, account, description)
        return

    row.category = value("category") or UNCATEGORIZED
    row.tags = split_tags(value("tags"))
    amount = _read_amount(number, record, mapping)

    if kind is None:
        kind = _infer_kind(row, account, amount)

    if kind == TRANSFER:
        if not row.source_name or not row.destination_name:
            missing = "source_name" if not row.source_name else "destination_name"
            raise RowError(number, f"Transfer is missing '{missing}'", field=missing)
        if (
            normalize_account_name(row.source_name) == normalize_account_name(row.destination_name)
            and is_asset_type(row.source_type)
            and is_asset_type(row.destination_type)
        ):
            raise RowError(number, same_account_transfer(row.source_name), field="destination_name")
        row.amount = abs(amount)
        row.kind = TRANSFER
        default = f"Transfer: {row.source_name} to {row.destination_name}"
        row.description = _compose_description(description, row.notes) or default
        return

    if account:
        booked, booked_type, booked_field = account, None, "account"
    elif kind == WITHDRAWAL:
        booked, booked_type, booked_field = row.source_name, row.source_type, "source_name"
    else:
        booked, booked_type, booked_field = row.destination_name, row.destination_type, "destination_name"

    if not booked:
        raise RowError(number, f"Missing '{booked_field}' for {kind}", field=booked_field)
    if booked_type and not is_asset_type(booked_type):
        direction = "from" if kind == WITHDRAWAL else "to"
        raise RowError(
            number,
            f"{kind.capitalize()} {direction} non-asset account type '{booked_type}' for '{booked}'",
            field=booked_field.replace("_name", "_type"),
        )

    row.kind = kind
    row.account_name = booked
    row.amount = -abs(amount) if kind == WITHDRAWAL else abs(amount)

    text = _compose_description(description, row.notes)
    if not text and kind == WITHDRAWAL and row.destination_name:
        text = f"To: {row.destination_name}"
    if not text and kind == DEPOSIT and row.source_name:
        text = f"From: {row.source_name}"
    row.description = text or "Imported Transaction"


def _infer_kind(row: ClassifiedTransaction, account: Optional[str], amount: Decimal) -> str:
    if not account and row.source_name and row.destination_name:
        source_asset = is_asset_type(row.source_type)
        dest_asset = is_asset_type(row.destination_type)
        if source_asset and row.destination_type and not dest_asset:
            return WITHDRAWAL
        if dest_asset and row.source_type and not source_asset:
            return DEPOSIT
        return TRANSFER
    if not account and row.source_name and not row.destination_name:
        return WITHDRAWAL
    if not account and row.destination_name and not row.source_name:
        return DEPOSIT
    return WITHDRAWAL if amount < 0 else DEPOSIT


def _classify_opening_balance(
    row: ClassifiedTransaction,
    record: RawRecord,
    mapping: ColumnMapping,
    account: Optional[str],
    description: str,
) -> None:
    number = row.row_number
    balance_value = mapping.value(record, "initial_balance")
    if balance_value is not None:
        balance = _parse_required_amount(number, "initial_balance", balance_value)
    else:
        balance = _parse_required_amount(number, "amount", mapping.value(record, "amount"))

    if is_asset_type(row.destination_type) and row.destination_name:
        name = row.destination_name
    elif is_asset_type(row.source_type) and row.source_name:
        name = row.source_name
    elif account and not parse_opening_balance_name(account):
        name = account
    else:
        name = (
            parse_opening_balance_name(row.destination_name)
            or parse_opening_balance_name(row.source_name)
            or parse_opening_balance_name(account)
            or parse_opening_balance_name(description)
            or row.destination_name
            or row.source_name
        )
    if not name:
        raise RowError(number, "Could not determine account name for opening balance", field="destination_name")

    row.kind = OPENING_BALANCE
    row.account_name = name
    row.amount = balance
    row.description = f"Opening Balance: {name}"
    row.category = OPENING_BALANCE_CATEGORY
    row.tags = []
    row.mark_skipped(
        f"Opening balance for {name} ({balance} {row.currency}) is applied to the account balance"
    )


def classify_all(
    records: Iterable[Mapping[str, Optional[str]]],
    mapping: ColumnMapping,
    default_currency: Optional[str] = None,
) -> list[ClassifiedTransaction]:
    """Classify every record. The first data row is row 2 (after the header)."""
    rows = [
        classify(dict(record), mapping, row_number, default_currency)
        for row_number, record in enumerate(records, start=2)
    ]
    errors = sum(1 for row in rows if row.import_status == ERROR)
    logger.info("Classified %d rows (%d errors)", len(rows), errors)
    return rows
