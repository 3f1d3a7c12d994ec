"""Error types shared by the sync pipeline and the read cache."""

from typing import Any, Optional


class DashboardSyncError(Exception):
    """Base class for every error raised by this project."""


class ConfigurationError(DashboardSyncError):
    """A required setting is missing or malformed."""


class ValidationError(DashboardSyncError):
    """A spreadsheet row could not be turned into a ProjectRecord."""

    def __init__(self, field: str, message: str, row_index: Optional[int] = None, value: Any = None):
        self.field = field
        self.row_index = row_index
        self.value = value
        super().__init__(f"{field}: {message}")


class ConflictError(DashboardSyncError):
    """Two rows in one snapshot share a serial."""

    def __init__(self, serial: int, kept_row: Optional[int], dropped_row: Optional[int]):
        self.serial = serial
        self.kept_row = kept_row
        self.dropped_row = dropped_row
        super().__init__(
            f"duplicate serial {serial}: row {kept_row} kept, row {dropped_row} dropped"
        )


class SourceError(DashboardSyncError):
    """The spreadsheet source could not be read."""


class StoreError(DashboardSyncError):
    """
    Failure talking to the backing store.

    Attributes:
        status_code: HTTP status of the failed response, if there was one
        retryable: Whether repeating the same request can succeed
    """

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AuthError(StoreError):
    """Credential rejected (401/403). Retrying cannot help."""


class RejectedError(StoreError):
    """The store refused the request itself (4xx other than auth and rate limit)."""


class MalformedResponseError(StoreError):
    """The store answered with a payload we cannot interpret."""


class QueryError(StoreError):
    """Transient failure: 5xx response or network error."""

    retryable = True


class RequestTimeoutError(QueryError):
    """A store request exceeded its timeout."""


class RateLimitError(QueryError):
    """The store asked us to slow down (429)."""

    def __init__(self, message: str, status_code: Optional[int] = 429, retry_after: Optional[float] = None):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class SyncTimeoutError(DashboardSyncError, TimeoutError):
    """A sync run hit the configured run ceiling and was abandoned."""


class RefreshCancelledError(DashboardSyncError):
    """A cache refresh was abandoned because the cache was closed."""


class RunAbortedError(DashboardSyncError):
    """The run was cancelled before this row could be written."""
