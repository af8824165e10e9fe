"""Date parsing utilities."""

import logging
from datetime import date, datetime

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Tried in order after strict ISO-8601. Day-first wins over month-first
# when both are valid, matching the bank exports we see most.
DATE_FORMATS = [
    "%d/%m/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%m.%d.%Y",
    "%d-%m-%Y",
    "%m-%d-%Y",
    "%Y/%m/%d",
    "%Y/%d/%m",
    "%d/%m/%y",
    "%d.%m.%y",
]


def parse_date(date_str: str | None) -> date:
    """Parse a date string into a date object.

    Supports:
    - ISO-8601 dates and timestamps: "2024-01-15", "2024-01-15T10:30:00+02:00"
    - Common locale formats: "15/01/2024", "01/15/2024", "15.01.2024",
      "2024/01/15", each optionally followed by a time of day
    - Anything else dateutil can make sense of ("Jan 15, 2024")

    This function never raises. When nothing matches, today's date is
    returned and a warning is logged.

    Args:
        date_str: Date string in various formats

    Returns:
        Date object
    """
    if date_str is None or not date_str.strip():
        logger.warning("Empty date value, defaulting to today")
        return date.today()

    date_str = date_str.strip()

    try:
        return datetime.fromisoformat(date_str.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    # Date part only, for formats followed by an unexpected time component
    date_part = date_str.split("T")[0].split(" ")[0]
    if date_part != date_str:
        for fmt in DATE_FORMATS:
            if " " in fmt:
                continue
            try:
                return datetime.strptime(date_part, fmt).date()
            except ValueError:
                continue

    try:
        return date_parser.parse(date_str, dayfirst=True).date()
    except (ValueError, OverflowError, TypeError):
        pass

    logger.warning("Could not parse date '%s', defaulting to today", date_str)
    return date.today()


def format_date(value: date) -> str:
    """Return the normalized textual form (YYYY-MM-DD) of a date."""
    return value.strftime("%Y-%m-%d")
