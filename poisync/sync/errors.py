"""Failure taxonomy for the sync subsystem."""


class SyncError(Exception):
    """Base class for every failure a sync phase can classify.

    ``retryable`` marks transient failures the scheduler may retry.
    """

    retryable = False

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class AuthenticationError(SyncError):
    """No authenticated identity at call time."""


class SyncConnectionError(SyncError):
    """DNS, connect or timeout failure talking to the backend."""

    retryable = True


class ServerError(SyncError):
    """The backend answered with a non-2xx status."""

    def __init__(self, code: int, message: str | None = None, body: str = ""):
        super().__init__(message or f"HTTP {code}")
        self.code = code
        self.body = body

    @property
    def is_permission_error(self) -> bool:
        """401/403 point at configuration or permissions, not server health."""
        return self.code in (401, 403)


class EmptyResponseError(SyncError):
    """A 2xx pull response without a parsable body."""


class LocalStorageError(SyncError):
    """Local database read or write failed."""
