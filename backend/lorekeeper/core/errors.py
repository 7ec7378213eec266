"""Error taxonomy shared by connectors, ingestion, and answering."""

from __future__ import annotations


class LorekeeperError(Exception):
    """Base class for all domain errors."""


class FatalSyncError(LorekeeperError):
    """Marker for faults that must abort a whole sync run."""


class ConfigurationError(FatalSyncError):
    """A data source is missing a required configuration field."""


class SyncCancelledError(FatalSyncError):
    """The sync context was cancelled or its deadline passed."""


class UpstreamError(LorekeeperError):
    """An upstream API answered with an unexpected status or payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientUpstreamError(UpstreamError):
    """Rate limiting, 5xx, or other failures worth retrying."""


class UpstreamAuthError(UpstreamError, FatalSyncError):
    """Credentials were rejected; every later request would fail the same way."""


class RetryExhaustedError(LorekeeperError):
    """All retry attempts failed with retryable errors."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"max retries exceeded after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ItemProcessingError(LorekeeperError):
    """A single page, message, or file could not be turned into a document."""


class ValidationError(LorekeeperError):
    """Caller supplied invalid input."""


class DocumentValidationError(ValidationError):
    pass


class EmptyQuestionError(ValidationError):
    def __init__(self) -> None:
        super().__init__("question cannot be empty")


class NotFoundError(LorekeeperError):
    """Requested record does not exist or was deleted."""


class ConflictError(LorekeeperError):
    """Operation refused because of the record's current state."""


class StorageError(LorekeeperError):
    """A database write failed and was rolled back."""


__all__ = [
    "LorekeeperError",
    "FatalSyncError",
    "ConfigurationError",
    "SyncCancelledError",
    "UpstreamError",
    "TransientUpstreamError",
    "UpstreamAuthError",
    "RetryExhaustedError",
    "ItemProcessingError",
    "ValidationError",
    "DocumentValidationError",
    "EmptyQuestionError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
]
