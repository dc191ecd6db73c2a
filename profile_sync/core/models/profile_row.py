"""
ProfileRow model representing one profile returned by the missing-fields query.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..mappings import REQUIRED_FIELDS


class ProfileRow(BaseModel):
    """
    A profile that is missing at least one required field (ephemeral).

    Attributes:
        profile_id: Server-issued profile handle used to address the update
        join_key: Value of the configured join property (may be absent)
        missing_fields: Required fields absent or blank on the profile
        existing_values: Current values of the tracked fields; a key is only
            present when the profile actually has that property
    """

    profile_id: str = Field(..., alias="distinct_id", min_length=1)
    join_key: Any = Field(default=None, alias="aid_prop")
    missing_fields: list[str] = Field(default_factory=list, alias="missing")
    existing_values: dict[str, Any] = Field(default_factory=dict, alias="props")

    @field_validator("profile_id", mode="before")
    @classmethod
    def _coerce_profile_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("missing_fields")
    @classmethod
    def _known_fields_only(cls, value: list[str]) -> list[str]:
        unknown = [name for name in value if name not in REQUIRED_FIELDS]
        if unknown:
            raise ValueError(f"missing contains unknown fields: {unknown}")
        return value

    @field_validator("existing_values", mode="before")
    @classmethod
    def _null_props(cls, value: Any) -> Any:
        return {} if value is None else value

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "distinct_id": "$device:18c2f0a1",
                "aid_prop": "A1",
                "missing": ["endDate"],
                "props": {"status": "active", "plan": "gold", "endDate": "null"}
            }
        }
