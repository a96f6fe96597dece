"""
ErrorClassifier - maps any fault raised while serving a resource into a
ClassifiedError.

Rules, first match wins:
- Domain fault with status 404 and a known resource id -> resource_not_found
- Any other domain fault -> passed through (kind, status, message, details)
- Abort / cancellation -> request_aborted (499)
- Name resolution or refused connection -> network_error (503)
- Timeout -> request_timeout (504)
- Anything else -> unexpected_error (500)

classify() is pure: it reads nothing but its arguments.
"""

import asyncio
import socket
from collections.abc import Iterator
from dataclasses import dataclass

import httpx

from resource_server.services.errors import (
    ClassifiedError,
    ErrorKind,
    RequestAbortedError,
    ResourceFault,
)

_NETWORK_FAULTS: tuple[type[BaseException], ...] = (
    ConnectionRefusedError,
    socket.gaierror,
    httpx.ConnectError,
)

_TIMEOUT_FAULTS: tuple[type[BaseException], ...] = (
    TimeoutError,
    asyncio.TimeoutError,
    httpx.TimeoutException,
)

_ABORT_FAULTS: tuple[type[BaseException], ...] = (
    RequestAbortedError,
    asyncio.CancelledError,
)


@dataclass(frozen=True)
class FaultContext:
    """Which resource (and instance) a fault belongs to."""

    resource_name: str
    resource_id: str | None = None


def classify(fault: BaseException, context: FaultContext) -> ClassifiedError:
    """
    Classify a fault.

    Args:
        fault: Exception raised by any pipeline stage or collaborator
        context: Resource the request was for

    Returns:
        ClassifiedError describing the fault
    """
    name = context.resource_name
    resource_id = context.resource_id
    id_suffix = f" for {resource_id}" if resource_id else ""

    if isinstance(fault, (ClassifiedError, ResourceFault)):
        if fault.http_status == 404 and resource_id:
            return ClassifiedError(
                kind=ErrorKind.RESOURCE_NOT_FOUND,
                http_status=404,
                message=f"{name} '{resource_id}' not found",
                resource_name=name,
                resource_id=resource_id,
            )
        if isinstance(fault, ClassifiedError):
            return fault
        return ClassifiedError(
            kind=fault.kind,
            http_status=fault.http_status,
            message=fault.message,
            resource_name=name,
            resource_id=resource_id,
            details=fault.details,
        )

    if _matches(fault, _ABORT_FAULTS):
        return ClassifiedError(
            kind=ErrorKind.REQUEST_ABORTED,
            http_status=499,
            message=f"{name} request{id_suffix} was aborted by the client",
            resource_name=name,
            resource_id=resource_id,
        )

    if _matches(fault, _NETWORK_FAULTS):
        return ClassifiedError(
            kind=ErrorKind.NETWORK_ERROR,
            http_status=503,
            message="Failed to connect to upstream API: Network connectivity issue",
            resource_name=name,
            resource_id=resource_id,
            details={"original_error": str(fault)},
        )

    if _matches(fault, _TIMEOUT_FAULTS):
        return ClassifiedError(
            kind=ErrorKind.REQUEST_TIMEOUT,
            http_status=504,
            message=f"Upstream API request timed out while fetching {name}{id_suffix}",
            resource_name=name,
            resource_id=resource_id,
            details={"original_error": str(fault)},
        )

    text = str(fault) or type(fault).__name__
    return ClassifiedError(
        kind=ErrorKind.UNEXPECTED_ERROR,
        http_status=500,
        message=f"Could not fetch {name}{id_suffix}: {text}",
        resource_name=name,
        resource_id=resource_id,
        details={"original_error": text},
    )


def _matches(fault: BaseException, types: tuple[type[BaseException], ...]) -> bool:
    return any(isinstance(exc, types) for exc in _chain(fault))


def _chain(fault: BaseException) -> Iterator[BaseException]:
    """Walk the fault and its explicit causes, guarding against cycles."""
    seen: set[int] = set()
    current: BaseException | None = fault
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__
