"""
Service layer exceptions.

ResourceFault and its subclasses are raised where a fault happens.
ClassifiedError is the normalized shape produced by
``resource_server.services.classifier.classify`` and is what callers see.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Normalized error kinds and the HTTP status each one maps to."""

    INVALID_PARAMETERS = "invalid_parameters"
    MISSING_PARAMETER = "missing_parameter"
    RESOURCE_NOT_FOUND = "resource_not_found"
    VALIDATION_ERROR = "validation_error"
    REQUEST_ABORTED = "request_aborted"
    NETWORK_ERROR = "network_error"
    REQUEST_TIMEOUT = "request_timeout"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    UNEXPECTED_ERROR = "unexpected_error"

    @property
    def default_status(self) -> int:
        return _DEFAULT_STATUS[self]


_DEFAULT_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_PARAMETERS: 400,
    ErrorKind.MISSING_PARAMETER: 400,
    ErrorKind.RESOURCE_NOT_FOUND: 404,
    ErrorKind.VALIDATION_ERROR: 422,
    ErrorKind.REQUEST_ABORTED: 499,
    ErrorKind.NETWORK_ERROR: 503,
    ErrorKind.REQUEST_TIMEOUT: 504,
    ErrorKind.RATE_LIMIT_EXCEEDED: 429,
    ErrorKind.UNEXPECTED_ERROR: 500,
}


class ResourceFault(Exception):
    """Base exception for faults that already know their kind and status."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNEXPECTED_ERROR,
        http_status: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.kind = kind
        self.http_status = http_status or kind.default_status
        self.details = details
        super().__init__(message)


class UpstreamError(ResourceFault):
    """Upstream API answered with a non-success status."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.status_code = status_code
        self.code = code
        kind = (
            ErrorKind.RESOURCE_NOT_FOUND
            if status_code == 404
            else ErrorKind.UNEXPECTED_ERROR
        )
        super().__init__(
            message or f"Upstream API returned HTTP {status_code} ({code})",
            kind=kind,
            http_status=status_code,
            details={"code": code, **(details or {})},
        )


class RateLimitError(UpstreamError):
    """Rate limit exceeded upstream."""

    def __init__(self, retry_after: float | None = None):
        self.retry_after = retry_after
        msg = "Upstream API rate limit exceeded"
        if retry_after:
            msg += f", retry after {retry_after}s"
        details: dict[str, Any] = {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(429, "rate_limited", message=msg, details=details)
        self.kind = ErrorKind.RATE_LIMIT_EXCEEDED


class RequestAbortedError(Exception):
    """The caller aborted the request through its AbortSignal."""

    def __init__(self, message: str = "Request was aborted"):
        super().__init__(message)


class ClassifiedError(Exception):
    """
    Normalized error surfaced by the pipeline.

    Only ``classify()`` constructs these; everything else raises a
    ResourceFault (or lets a library exception propagate).
    """

    def __init__(
        self,
        kind: ErrorKind,
        http_status: int,
        message: str,
        resource_name: str,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.kind = kind
        self.http_status = http_status
        self.message = message
        self.resource_name = resource_name
        self.resource_id = resource_id
        self.details = details
        super().__init__(message)

    @property
    def retry_after(self) -> float | None:
        if self.details:
            return self.details.get("retry_after")
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "http_status": self.http_status,
            "message": self.message,
            "resource_name": self.resource_name,
        }
        if self.resource_id is not None:
            data["resource_id"] = self.resource_id
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(kind={self.kind.value}, "
            f"http_status={self.http_status}, message={self.message!r})"
        )
