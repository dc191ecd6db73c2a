"""
Data models for the reconciliation pipeline.

All models use Pydantic for runtime validation of remote responses.
"""

from typing import Any

from .planned_update import PlannedUpdate
from .profile_row import ProfileRow
from .results import PipelineResult, ResolutionResult

# A database row: source column name -> value
AuthoritativeRecord = dict[str, Any]

__all__ = [
    "AuthoritativeRecord",
    "ProfileRow",
    "PlannedUpdate",
    "ResolutionResult",
    "PipelineResult",
]
