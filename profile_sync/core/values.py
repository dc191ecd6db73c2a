"""
Value normalization shared by the update planner and the remote query.

BLANKISH_TOKENS defines "effectively empty" strings; the remote query
builder embeds the same tuple in the script it generates.
"""

import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Final

from dateutil import parser as date_parser

from .mappings import is_date_field

BLANKISH_TOKENS: Final[tuple[str, ...]] = ("", "undefined", "null", "nan", "none", "n/a", "-")

# Epoch values above this are milliseconds, below it seconds
EPOCH_MILLIS_THRESHOLD: Final[float] = 1e12

# Fills date parts a free-form string leaves out (e.g. the day in "March 2024")
_PARSE_DEFAULT: Final[datetime] = datetime(1970, 1, 1)


def is_blankish(value: Any) -> bool:
    """
    Check whether a value is effectively empty.

    Args:
        value: Any profile or record value

    Returns:
        True for None and for strings that trim/lowercase to a blank token.
        Numbers and booleans (including 0 and False) are never blank.

    Examples:
        >>> is_blankish("  N/A ")
        True
        >>> is_blankish(0)
        False
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in BLANKISH_TOKENS
    return False


def to_canonical_date(value: Any) -> str | None:
    """
    Normalize a date-like value to an ISO-8601 UTC timestamp.

    Accepts datetime/date objects, ISO-like strings and numeric epochs
    (milliseconds when greater than 1e12, seconds otherwise). Naive values
    are read as UTC.

    Args:
        value: The value to normalize

    Returns:
        Timestamp like "2024-05-27T22:09:55.084Z", or None when the value is
        absent, empty or does not parse into a valid instant.
    """
    instant = _to_datetime(value)
    if instant is None:
        return None

    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    try:
        instant = instant.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None

    return f"{instant:%Y-%m-%dT%H:%M:%S}.{instant.microsecond // 1000:03d}Z"


def _to_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            return None
        seconds = number / 1000 if number > EPOCH_MILLIS_THRESHOLD else number
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date_parser.isoparse(text)
        except (ValueError, OverflowError):
            pass
        try:
            return date_parser.parse(text, default=_PARSE_DEFAULT)
        except (ValueError, OverflowError):
            return None

    return None


def as_text(value: Any) -> str:
    """String form used for equality, following JSON spelling for scalars."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _comparable_instant(value: Any) -> str | None:
    if value is None or value == "":
        return None
    canonical = to_canonical_date(value)
    return canonical if canonical is not None else as_text(value)


def values_equal(a: Any, b: Any, field_name: str) -> bool:
    """
    Compare a candidate value with an existing profile value.

    Date fields compare canonical instants, so "2024-01-01" equals
    "2024-01-01T00:00:00.000Z"; two identical unparsable strings still
    compare equal through their literal form. Other fields compare strings.

    Args:
        a: First value
        b: Second value
        field_name: Analytics field the values belong to

    Returns:
        True when the values are considered the same
    """
    if is_date_field(field_name):
        return _comparable_instant(a) == _comparable_instant(b)
    return as_text(a) == as_text(b)
