"""Tests for amount parsing."""

import pytest
from decimal import Decimal

from budgetbridge.utils.amount_parser import parse_amount


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("123.45", Decimal("123.45")),
        ("123,45", Decimal("123.45")),
        ("1,234.56", Decimal("1234.56")),
        ("1.234,56", Decimal("1234.56")),
        ("1.234.567", Decimal("1234567")),
        ("1,234,567", Decimal("1234567")),
        ("R$ -1.500,00", Decimal("-1500.00")),
        ("$123.45", Decimal("123.45")),
        ("-€12", Decimal("-12")),
        ("(123.45)", Decimal("-123.45")),
        ("12.", Decimal("12")),
        ("12,", Decimal("12")),
        ("  -50.00 ", Decimal("-50.00")),
        ("1500,00", Decimal("1500.00")),
    ],
)
def test_parse_amount(raw, expected):
    """Both decimal conventions and currency noise parse to the same value."""
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "", "   ", None, "--", "1-2"])
def test_parse_amount_invalid_returns_nan(raw):
    """Unparsable input gives NaN rather than raising."""
    assert parse_amount(raw).is_nan()


def test_last_separator_is_decimal_point():
    """The separator appearing last is the decimal point."""
    assert parse_amount("1.000,5") == Decimal("1000.5")
    assert parse_amount("1,000.5") == Decimal("1000.5")
