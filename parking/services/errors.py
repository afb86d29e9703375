"""
Service layer exceptions.
"""

from typing import Any


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class UpstreamTransientError(ServiceError):
    """Retryable upstream failure: throttling, 5xx, transport error or timeout."""

    def __init__(
        self,
        url: str,
        status: int | None = None,
        body: str | None = None,
        message: str | None = None,
    ):
        self.url = url
        self.status = status
        self.body = body
        if message is None:
            message = f"Request to {url} failed with status {status}: {body}"
        super().__init__(message, service_id=url)


class RequestTimeoutError(UpstreamTransientError):
    """A single upstream attempt exceeded its timeout."""

    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(url, message=f"Request to {url} timed out after {timeout}s")


class UpstreamHardError(ServiceError):
    """Non-retryable, non-2xx upstream response."""

    def __init__(self, url: str, status: int, body: str):
        self.url = url
        self.status = status
        self.body = body
        super().__init__(
            f"Request failed with status {status}: {body}", service_id=url
        )


class ShapeError(ServiceError):
    """Upstream JSON did not have the expected top-level shape."""

    pass


class RequestCancelledError(ServiceError):
    """The caller's cancellation signal fired before the request completed."""

    def __init__(self, reason: str = "Aborted"):
        self.reason = reason
        super().__init__(reason)


class UpstreamServiceError(ServiceError):
    """A data source needed for a recommendation could not be loaded."""

    def __init__(self, service: str, cause: BaseException | None = None):
        self.service = service
        self.cause = cause
        msg = f"Upstream service '{service}' unavailable"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg, service_id=service)


class InvalidInputError(ServiceError):
    """Recommendation arguments failed validation."""

    def __init__(self, details: list[dict[str, Any]]):
        self.details = details
        super().__init__("Invalid input")
