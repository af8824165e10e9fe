"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation
import re

NAN = Decimal("NaN")


def parse_amount(amount_str: str | None) -> Decimal:
    """Parse a locale-formatted amount string into a Decimal.

    Handles various formats:
    - "123.45" / "123,45"
    - "1,234.56" / "1.234,56"
    - "1.234.567" / "1,234,567" (thousands separators only)
    - "R$ -1.500,00", "$123.45", "-€12"
    - "(123.45)" (negative in parentheses)
    - "12." / "12," (trailing separator, zero fraction)

    When both separators appear, the one appearing last is the decimal
    point. When only one kind appears, a single occurrence is the decimal
    point and several occurrences are thousands separators.

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount, or Decimal("NaN") if the string cannot be parsed.
        Callers must check ``is_nan()`` before using the value.
    """
    if amount_str is None or not amount_str.strip():
        return NAN

    amount_str = amount_str.strip()

    # Handle parentheses notation (negative)
    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1]

    cleaned = re.sub(r"[^\d.,-]", "", amount_str)
    if not cleaned:
        return NAN

    last_comma = cleaned.rfind(",")
    last_period = cleaned.rfind(".")

    if last_comma >= 0 and last_period >= 0:
        if last_comma > last_period:
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif last_comma >= 0:
        cleaned = _single_separator(cleaned, ",")
    elif last_period >= 0:
        cleaned = _single_separator(cleaned, ".")

    if cleaned.endswith("."):
        cleaned += "0"

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return NAN

    if not amount.is_finite():
        return NAN
    return -amount if is_negative else amount


def _single_separator(cleaned: str, separator: str) -> str:
    """Normalize a string that uses only one kind of separator."""
    if cleaned.count(separator) == 1:
        return cleaned.replace(separator, ".")
    return cleaned.replace(separator, "")
