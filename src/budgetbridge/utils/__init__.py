"""Utility functions for budgetbridge."""

from budgetbridge.utils.date_parser import parse_date, format_date
from budgetbridge.utils.amount_parser import parse_amount
from budgetbridge.utils.account_resolver import normalize_account_name
from budgetbridge.utils.currency import convert_amount

__all__ = [
    "parse_date",
    "format_date",
    "parse_amount",
    "normalize_account_name",
    "convert_amount",
]
