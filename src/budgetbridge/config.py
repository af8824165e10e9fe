"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_WRITE_CONCURRENCY = 4


@dataclass(frozen=True)
class ImportSettings:
    """Settings for import and restore runs."""

    write_concurrency: int = DEFAULT_WRITE_CONCURRENCY
    default_currency: Optional[str] = None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> ImportSettings:
    """Build settings from BUDGETBRIDGE_* environment variables.

    Args:
        environ: Mapping to read instead of os.environ

    Raises:
        ValidationError: If BUDGETBRIDGE_WRITE_CONCURRENCY is not a positive integer
    """
    # Imported here; the domain package imports this module
    from budgetbridge.domain.errors import ValidationError

    if environ is None:
        environ = os.environ

    raw_concurrency = environ.get("BUDGETBRIDGE_WRITE_CONCURRENCY")
    write_concurrency = DEFAULT_WRITE_CONCURRENCY
    if raw_concurrency:
        try:
            write_concurrency = int(raw_concurrency)
        except ValueError:
            write_concurrency = 0
        if write_concurrency < 1:
            raise ValidationError(
                f"BUDGETBRIDGE_WRITE_CONCURRENCY must be a positive integer, got '{raw_concurrency}'"
            )

    default_currency = (environ.get("BUDGETBRIDGE_DEFAULT_CURRENCY") or "").strip().upper() or None
    return ImportSettings(write_concurrency=write_concurrency, default_currency=default_currency)
