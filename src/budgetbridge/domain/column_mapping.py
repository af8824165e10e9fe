"""Column mapping between CSV headers and canonical import fields."""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from budgetbridge.domain.errors import ValidationError

logger = logging.getLogger(__name__)

# Canonical field -> header aliases, tried in order, matched exactly
# after trimming and lowercasing.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("date", "transaction date", "booking date"),
    "amount": ("amount", "value"),
    "amount_income": ("amount income", "amount_income", "income", "credit"),
    "amount_expense": ("amount expense", "amount_expense", "expense", "debit"),
    "description": ("description", "details"),
    "account": ("asset account (name)", "account", "account name", "account_name"),
    "source_name": ("source_name", "source account (name)", "source account"),
    "destination_name": (
        "destination_name",
        "destination account (name)",
        "destination account",
    ),
    "source_type": ("source_type", "source account (type)", "source type"),
    "destination_type": (
        "destination_type",
        "destination account (type)",
        "destination type",
    ),
    "category": ("category", "category_name"),
    "currency_code": (
        "currency_code",
        "currency",
        "currency code",
        "amount currency",
        "source currency",
        "destination currency",
    ),
    "foreign_currency_code": ("foreign_currency_code", "foreign currency code", "foreign currency"),
    "foreign_amount": ("foreign_amount", "foreign amount"),
    "tags": ("tags",),
    "notes": ("notes", "memo"),
    "transaction_type": ("type", "transaction type", "transaction_type"),
    "initial_balance": (
        "initial_balance",
        "opening_balance",
        "initial balance",
        "starting balance",
        "account balance",
    ),
}

CANONICAL_FIELDS = tuple(FIELD_ALIASES)

AMOUNT_IN_HEADER = re.compile(r"^amount in (\w+)$", re.IGNORECASE)


@dataclass(frozen=True)
class ColumnMapping:
    """Canonical field -> CSV header.

    Fields that are not mapped are simply absent.
    """

    fields: Mapping[str, str] = field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        return self.fields.get(name)

    def is_mapped(self, name: str) -> bool:
        return bool(self.fields.get(name))

    def value(self, record: Mapping[str, Optional[str]], name: str) -> Optional[str]:
        """Return the trimmed cell for a canonical field, or None if empty."""
        header = self.fields.get(name)
        if not header:
            return None
        raw = record.get(header)
        if raw is None:
            return None
        raw = raw.strip()
        return raw or None

    def with_overrides(
        self, overrides: Mapping[str, Optional[str]], headers: Iterable[str]
    ) -> "ColumnMapping":
        """Return a copy with user choices applied.

        An empty or None header unmaps the field.

        Raises:
            ValidationError: If a field name is unknown or a header is not in the file
        """
        known_headers = set(headers)
        fields = dict(self.fields)
        for name, header in overrides.items():
            if name not in FIELD_ALIASES:
                raise ValidationError(
                    f"Unknown field '{name}'. Valid fields: {', '.join(CANONICAL_FIELDS)}"
                )
            if not header:
                fields.pop(name, None)
                continue
            if header not in known_headers:
                raise ValidationError(f"Column '{header}' not found in file")
            fields[name] = header
        return ColumnMapping(fields)

    def amount_header_currency(self) -> Optional[str]:
        """Currency code from an ``Amount in XXX`` amount header, if any."""
        header = self.fields.get("amount")
        if not header:
            return None
        match = AMOUNT_IN_HEADER.match(header.strip())
        return match.group(1).upper() if match else None


def _find_header(headers: list[str], alias: str) -> Optional[str]:
    for header in headers:
        if header is not None and header.strip().lower() == alias:
            return header
    return None


def guess_mapping(headers: Iterable[str]) -> ColumnMapping:
    """Produce a best-guess mapping from the file's header row.

    Matching is exact and case-insensitive against known aliases; nothing
    partial or fuzzy. The result is a starting point for the user to confirm.
    """
    headers = [h for h in headers if h is not None]
    fields: dict[str, str] = {}
    for name, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            header = _find_header(headers, alias)
            if header is not None:
                fields[name] = header
                break

    has_pair = "amount_income" in fields and "amount_expense" in fields
    if "amount" not in fields and not has_pair:
        for header in headers:
            if AMOUNT_IN_HEADER.match(header.strip()):
                logger.info("Using '%s' as the amount column", header)
                fields["amount"] = header
                break
        else:
            logger.warning("Could not detect an amount column; map one manually")

    return ColumnMapping(fields)


def validate_mapping(mapping: ColumnMapping) -> list[str]:
    """Return the required mappings that are missing (empty when complete)."""
    missing = []
    if not mapping.is_mapped("date"):
        missing.append("date")
    if not (
        mapping.is_mapped("amount")
        or (mapping.is_mapped("amount_income") and mapping.is_mapped("amount_expense"))
    ):
        missing.append("amount (or amount_income + amount_expense)")
    if not (
        mapping.is_mapped("account")
        or (mapping.is_mapped("source_name") and mapping.is_mapped("destination_name"))
    ):
        missing.append("account (or source_name + destination_name)")
    return missing
