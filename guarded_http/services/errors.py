"""
Client layer exceptions.

Every failure surfaced to callers is an HttpClientError carrying the
normalized shape: message, optional status, optional response data.
"""

from typing import Any

STATUS_MESSAGES: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized. Please log in again.",
    403: "Forbidden",
    404: "Not found",
    500: "Server error. Try again later.",
}


class HttpClientError(Exception):
    """Base exception for client layer errors."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        data: Any = None,
    ):
        self.message = message
        self.status = status
        self.data = data
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Normalized error shape."""
        return {"message": self.message, "status": self.status, "data": self.data}


class TransportError(HttpClientError):
    """Network-level failure, no response received."""

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class HttpStatusError(HttpClientError):
    """Response received with a non-2xx status."""

    def __init__(self, status: int, data: Any = None, message: str | None = None):
        super().__init__(
            message or status_message(status),
            status=status,
            data=data,
        )


class CircuitOpenError(HttpClientError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            "Circuit breaker open - request blocked, "
            f"retry after {reset_after_seconds:.1f}s"
        )


class AuthRefreshError(HttpClientError):
    """Credential renewal failed."""

    def __init__(self, message: str = "Token refresh failed"):
        super().__init__(message, status=401)


class CancellationError(HttpClientError):
    """Request aborted by the caller."""

    def __init__(self, reason: str = "Request canceled"):
        super().__init__(reason)


class RequestTimeoutError(HttpClientError):
    """Request timed out."""

    def __init__(self, timeout: float | None):
        self.timeout = timeout
        super().__init__(f"Request timed out after {timeout}s")


def status_message(status: int) -> str:
    """Human-readable message for an HTTP status."""
    return STATUS_MESSAGES.get(status, f"Request failed with status code {status}")


def normalize_error(exc: BaseException) -> HttpClientError:
    """Coerce an arbitrary transport exception into the client error shape."""
    if isinstance(exc, HttpClientError):
        return exc
    error = TransportError(str(exc) or type(exc).__name__, retryable=False)
    error.__cause__ = exc
    return error
