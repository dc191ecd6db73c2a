"""
Core reconciliation logic: field mapping, value normalization and planning.
"""

from .errors import (
    BatchDeliveryError,
    ConfigError,
    DatabaseError,
    ProfileSyncError,
    RemoteQueryError,
)
from .planner import UpdatePlanner
from .values import is_blankish, to_canonical_date, values_equal

__all__ = [
    "ProfileSyncError",
    "ConfigError",
    "RemoteQueryError",
    "DatabaseError",
    "BatchDeliveryError",
    "UpdatePlanner",
    "is_blankish",
    "to_canonical_date",
    "values_equal",
]
