"""
Result models for the resolution stage and the whole pipeline run.
"""

from typing import Any

from pydantic import BaseModel, Field


class ResolutionResult(BaseModel):
    """
    Outcome of resolving join keys against the database.

    Attributes:
        records_by_key: Key value -> representative database record
        requested: Number of keys asked for
        resolved: Number of distinct key values in records_by_key
        hits_by_field: Requested keys matched, per database key field
    """

    records_by_key: dict[str, dict[str, Any]] = Field(default_factory=dict)
    requested: int = 0
    resolved: int = 0
    hits_by_field: dict[str, int] = Field(default_factory=dict)


class PipelineResult(BaseModel):
    """
    Aggregate counters reported at the end of a reconciliation run.
    """

    run_id: str
    dry_run: bool = False
    profiles_queried: int = 0
    rows_without_join_key: int = 0
    keys_requested: int = 0
    keys_resolved: int = 0
    rows_not_found: int = 0
    rows_without_changes: int = 0
    updates_planned: int = 0
    updates_sent: int = 0
    failed_batches: int = 0
    stopped_early: bool = False
