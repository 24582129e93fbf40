from __future__ import annotations


class MissingCredentialsError(RuntimeError):
    """Raised when the required Salesforce env vars are not present."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__("Missing required environment variables: " + ", ".join(missing))


class BackupError(RuntimeError):
    """Base class for failures while exporting a single object."""


class SOQLParseError(BackupError):
    """Raised when a query cannot be split into fields and a FROM object."""


class JobCreationError(BackupError):
    """Raised when the Bulk API does not hand back a job id."""


class BatchProcessingError(BackupError):
    """Raised when a bulk batch ends in the Failed state."""

    def __init__(self, state_message: str | None):
        self.state_message = state_message or ""
        super().__init__(f"Bulk batch failed: {self.state_message}")


class BatchTimeoutError(BackupError):
    """Raised when a bulk batch is still running after the configured poll budget."""

    def __init__(self, batch_id: str, attempts: int):
        self.batch_id = batch_id
        self.attempts = attempts
        super().__init__(f"Bulk batch {batch_id} not finished after {attempts} polls")


class HookError(BackupError):
    """Raised when the before-export hook command exits with an error."""
