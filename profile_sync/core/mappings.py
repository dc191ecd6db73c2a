"""
Static field mapping between analytics profile fields and database columns.
"""

from typing import Final

REQUIRED_FIELDS: Final[tuple[str, ...]] = (
    "status",
    "plan",
    "endDate",
    "toleranceEndDate",
    "recurrence",
)

# analytics field -> database column
# e.g. the profile's endDate comes from the record's expireDate
TARGET_TO_SOURCE_FIELD: Final[dict[str, str]] = {
    "status": "status",
    "plan": "plan",
    "endDate": "expireDate",
    "toleranceEndDate": "toleranceDate",
    "recurrence": "recurrence",
}

SOURCE_TO_TARGET_FIELD: Final[dict[str, str]] = {
    source: target for target, source in TARGET_TO_SOURCE_FIELD.items()
}

DATE_FIELDS: Final[frozenset[str]] = frozenset({"endDate", "toleranceEndDate"})

# Audit marker written on every non-empty update
SYNC_TIMESTAMP_FIELD: Final[str] = "kyte_last_profile_sync_at"

DEFAULT_KEY_FIELDS: Final[tuple[str, ...]] = ("aid", "sourceId")


def source_field_for(field_name: str) -> str:
    """Return the database column backing an analytics field."""
    try:
        return TARGET_TO_SOURCE_FIELD[field_name]
    except KeyError:
        raise ValueError(f"Unknown profile field: {field_name}") from None


def is_date_field(field_name: str) -> bool:
    return field_name in DATE_FIELDS
