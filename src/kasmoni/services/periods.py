"""Reference-month helpers (``YYYY-MM`` strings)."""

from __future__ import annotations

import re
from datetime import date

from kasmoni.services.errors import PaymentValidationError

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def current_month(today: date | None = None) -> str:
    """Current calendar month in YYYY-MM form."""
    today = today or date.today()
    return f"{today.year:04d}-{today.month:02d}"


def is_month(value: str | None) -> bool:
    """Check if a value is a well-formed YYYY-MM month."""
    return bool(value) and MONTH_PATTERN.match(value) is not None


def validate_month(value: str | None, field: str = "month") -> str:
    """Return the month unchanged, raising PaymentValidationError if malformed."""
    if not is_month(value):
        raise PaymentValidationError(f"{field} must be in YYYY-MM format", field=field)
    return value


def resolve_month(value: str | None) -> str:
    """Validate an optional reference month, defaulting to the current month."""
    if value is None:
        return current_month()
    return validate_month(value, "month")
