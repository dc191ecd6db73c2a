"""
Error taxonomy for the reconciliation pipeline.

Only BatchDeliveryError is recovered from (inside the dispatcher); every
other error aborts the run and is turned into a non-zero exit by the CLI.
"""


class ProfileSyncError(Exception):
    """Base class for all profile-sync errors."""
    pass


class ConfigError(ProfileSyncError):
    """Raised when mandatory settings are missing or a tunable is invalid."""

    def __init__(self, message: str, missing: list[str] | None = None):
        self.missing = missing or []
        super().__init__(message)


class RemoteQueryError(ProfileSyncError):
    """Raised when the query endpoint fails or returns an unusable response."""

    def __init__(self, status: int | None, body: str, message: str | None = None):
        self.status = status
        self.body = body
        super().__init__(message or f"JQL error {status}: {body}")


class DatabaseError(ProfileSyncError):
    """Raised when the database connection or a batch lookup fails."""
    pass


class BatchDeliveryError(ProfileSyncError):
    """Raised for a single update batch rejected by the update endpoint."""

    def __init__(self, batch_number: int, status: int, body: str):
        self.batch_number = batch_number
        self.status = status
        self.body = body
        super().__init__(f"Batch {batch_number} failed: HTTP {status} - {body}")
