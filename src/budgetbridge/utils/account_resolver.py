"""Utility for resolving account names to IDs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from budgetbridge.domain.entities import Account


def normalize_account_name(name: str | None) -> str:
    """Return the lookup key for an account name (trimmed, case-folded)."""
    if name is None:
        return ""
    return " ".join(name.split()).casefold()


def build_name_index(accounts: Iterable[Account]) -> dict[str, Account]:
    """Index accounts by normalized name. The first account wins on clashes."""
    index: dict[str, Account] = {}
    for acc in accounts:
        index.setdefault(normalize_account_name(acc.name), acc)
    return index

