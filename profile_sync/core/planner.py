"""
Update planning: the diff/merge step between a database record and a profile.

For each required field the planner decides whether the authoritative value
should be written, and stamps non-empty updates with the run identifier.
"""

from typing import Any

from .mappings import (
    REQUIRED_FIELDS,
    SYNC_TIMESTAMP_FIELD,
    is_date_field,
    source_field_for,
)
from .models import AuthoritativeRecord, PlannedUpdate, ProfileRow
from .values import is_blankish, to_canonical_date, values_equal

_NO_VALUE = object()


class UpdatePlanner:
    """
    Computes the minimal field-level update for one profile.

    A field is set when any of these holds:
    - the query reported it as missing
    - the profile has the field and its value is blank-ish
    - force_overwrite_if_different is on, the profile has a non-blank value
      and it differs from the authoritative one

    Authoritative values that are absent, None or "" carry no opinion and
    never overwrite anything, even in force mode.
    """

    def __init__(
        self,
        run_id: str,
        force_overwrite_if_different: bool = False,
        fields: tuple[str, ...] = REQUIRED_FIELDS,
    ):
        """
        Initialize planner.

        Args:
            run_id: Run identifier written to every non-empty update
            force_overwrite_if_different: Overwrite populated values that
                differ from the database
            fields: Analytics fields under consideration
        """
        self.run_id = run_id
        self.force_overwrite_if_different = force_overwrite_if_different
        self.fields = fields

    def plan(self, record: AuthoritativeRecord, row: ProfileRow) -> PlannedUpdate:
        """
        Plan the update for one profile.

        Args:
            record: Database record resolved for the profile
            row: Profile row from the missing-fields query

        Returns:
            PlannedUpdate, possibly with an empty field set
        """
        fields_to_set: dict[str, Any] = {}

        for field_name in self.fields:
            candidate = self._candidate_value(record, field_name)
            if candidate is _NO_VALUE:
                continue

            if self._should_set(field_name, candidate, row):
                fields_to_set[field_name] = candidate

        if fields_to_set:
            fields_to_set[SYNC_TIMESTAMP_FIELD] = self.run_id

        return PlannedUpdate(profile_id=row.profile_id, fields_to_set=fields_to_set)

    def _candidate_value(self, record: AuthoritativeRecord, field_name: str) -> Any:
        raw = record.get(source_field_for(field_name))
        if raw is None or raw == "":
            return _NO_VALUE

        if is_date_field(field_name):
            canonical = to_canonical_date(raw)
            return _NO_VALUE if canonical is None else canonical

        return raw

    def _should_set(self, field_name: str, candidate: Any, row: ProfileRow) -> bool:
        if field_name in row.missing_fields:
            return True

        if field_name not in row.existing_values:
            return False

        existing = row.existing_values[field_name]
        if is_blankish(existing):
            return True

        return self.force_overwrite_if_different and not values_equal(candidate, existing, field_name)
