"""
PlannedUpdate model representing the field-level change for one profile.
"""

from typing import Any

from pydantic import BaseModel, Field


class PlannedUpdate(BaseModel):
    """
    Fields to set on one analytics profile.

    An empty fields_to_set means "no update needed"; such updates are never
    dispatched.

    Attributes:
        profile_id: Target profile handle
        fields_to_set: Field name -> value to write
    """

    profile_id: str = Field(..., min_length=1)
    fields_to_set: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.fields_to_set

    def to_engage_entry(self, token: str) -> dict[str, Any]:
        """
        Build the profile-batch-update entry for this update.

        The zeroed $ip stops the platform from geo-enriching the profile
        from the caller's address.
        """
        return {
            "$token": token,
            "$distinct_id": self.profile_id,
            "$ip": "0",
            "$set": dict(self.fields_to_set),
        }

    class Config:
        json_schema_extra = {
            "example": {
                "profile_id": "$device:18c2f0a1",
                "fields_to_set": {
                    "endDate": "2024-01-01T00:00:00.000Z",
                    "kyte_last_profile_sync_at": "2025-11-17T10:00:00.000Z"
                }
            }
        }
