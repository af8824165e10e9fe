"""Currency conversion.

All conversion goes through ``convert_amount``. It takes explicit source
and target codes and a rate table; nothing here knows about a preferred
or display currency.
"""

from decimal import Decimal
from typing import Mapping


def convert_amount(
    amount: Decimal,
    source: str,
    target: str,
    rates: Mapping[str, Decimal],
) -> Decimal:
    """Convert an amount between currencies.

    Args:
        amount: Amount in the source currency
        source: Source currency code
        target: Target currency code
        rates: Units of a common base currency per one unit of each code,
            e.g. {"USD": Decimal("1"), "BRL": Decimal("0.18")}

    Returns:
        Amount in the target currency

    Raises:
        ValueError: If a rate is missing or not positive
    """
    source = source.strip().upper()
    target = target.strip().upper()
    if source == target:
        return amount

    normalized = {code.strip().upper(): rate for code, rate in rates.items()}
    missing = [code for code in (source, target) if code not in normalized]
    if missing:
        raise ValueError(f"No exchange rate for {', '.join(missing)}")

    source_rate = normalized[source]
    target_rate = normalized[target]
    if source_rate <= 0 or target_rate <= 0:
        raise ValueError("Exchange rates must be positive")

    return amount * source_rate / target_rate


def parse_rate(text: str) -> tuple[str, Decimal]:
    """Parse a ``CODE=RATE`` option value."""
    code, sep, value = text.partition("=")
    if not sep or not code.strip() or not value.strip():
        raise ValueError(f"Invalid rate '{text}', expected CODE=RATE")
    try:
        rate = Decimal(value.strip())
    except ArithmeticError:
        raise ValueError(f"Invalid rate value in '{text}'")
    return code.strip().upper(), rate
