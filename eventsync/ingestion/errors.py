"""
Ingestion error types.

Adapters convert every failure into a FetchResult, carrying one of these
as the cause; the coordinator and scheduler use the ``retryable`` flag to
decide between backoff-and-retry and giving up.
"""


class IngestionError(Exception):
    """Base class for ingestion failures."""

    retryable = False


class SourceFetchError(IngestionError):
    """Fetching from an upstream source failed."""

    def __init__(self, message: str, retryable: bool = True, status_code: int | None = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class SourceConfigurationError(IngestionError):
    """Source descriptor or calendar is missing required configuration."""


class NeedsReconnectError(IngestionError):
    """The owner's OAuth authorization is no longer valid."""


class DescriptorNotFound(IngestionError):
    """The source or calendar was deleted between scheduling and execution."""

    def __init__(self, kind: str, target_id: int):
        super().__init__(f"{kind} {target_id} not found")
        self.kind = kind
        self.target_id = target_id


class CalendarNotFound(IngestionError):
    """No calendar matches the given id or export token."""


class RecordValidationError(IngestionError):
    """A record failed write-time validation."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors
