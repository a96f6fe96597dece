"""
Audit trail for resource reads and cache operations.

Audit records go through loguru with ``audit=True`` bound on the record so a
dedicated sink can filter them, e.g.::

    logger.add("audit.log", filter=lambda r: r["extra"].get("audit"))
"""

import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Protocol

from loguru import logger
from pydantic import BaseModel, Field

CacheOperation = Literal[
    "hit", "miss", "set", "invalidate_all", "invalidate_by_id", "update_options"
]

MASK = "********"


class AuditEventType(str, Enum):
    RESOURCE_ACCESS = "resource_access"
    CACHE_OPERATION = "cache_operation"


class AuditSink(Protocol):
    """What the pipeline needs from an audit collaborator."""

    def log_access(
        self,
        resource: str,
        resource_id: str | None,
        action: str,
        request_id: str,
        user_id: str | None = None,
        ip_address: str | None = None,
        meta: dict[str, Any] | None = None,
        snapshot: Any = None,
    ) -> None: ...

    def log_failure(
        self,
        resource: str,
        resource_id: str | None,
        action: str,
        request_id: str,
        error: BaseException,
        user_id: str | None = None,
        ip_address: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None: ...

    def log_cache_op(
        self,
        resource: str,
        op: CacheOperation,
        request_id: str,
        resource_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None: ...


class AuditOptions(BaseModel):
    """Options for audit logging."""

    include_resource_state: bool = False
    mask_sensitive_fields: bool = True
    sensitive_fields: list[str] = Field(
        default_factory=lambda: ["password", "token", "secret", "key", "credential"]
    )


class AuditRecord(BaseModel):
    """A single audit event."""

    event_type: AuditEventType
    resource_type: str
    resource_id: str | None = None
    action: str
    status: Literal["success", "failure"]
    request_id: str
    user_id: str | None = None
    ip_address: str | None = None
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    details: dict[str, Any] | None = None
    after_state: Any = None
    error_details: dict[str, Any] | None = None

    def summary(self) -> str:
        target = self.resource_type
        if self.resource_id:
            target += f" ({self.resource_id})"
        return f"{self.event_type.value}: {self.action} {target} - {self.status}"


class AuditLogger:
    """
    Loguru-backed AuditSink.

    Usage:
        audit = AuditLogger(AuditOptions(include_resource_state=True))
        audit.log_access("Machine", "abc123", "read", request_id)
    """

    def __init__(self, options: AuditOptions | None = None):
        self.options = options or AuditOptions()
        self._logger = logger.bind(audit=True, module="AuditLog")

    def set_options(self, **updates: Any) -> None:
        self.options = self.options.model_copy(update=updates)
        logger.debug(f"Updated audit log options: {self.options.model_dump()}")

    def log_access(
        self,
        resource: str,
        resource_id: str | None,
        action: str,
        request_id: str,
        user_id: str | None = None,
        ip_address: str | None = None,
        meta: dict[str, Any] | None = None,
        snapshot: Any = None,
    ) -> None:
        self._emit(
            "INFO",
            AuditRecord(
                event_type=AuditEventType.RESOURCE_ACCESS,
                resource_type=resource,
                resource_id=resource_id,
                action=action,
                status="success",
                request_id=request_id,
                user_id=user_id,
                ip_address=ip_address,
                details=meta,
                after_state=self._prepare_state(snapshot),
            ),
        )

    def log_failure(
        self,
        resource: str,
        resource_id: str | None,
        action: str,
        request_id: str,
        error: BaseException,
        user_id: str | None = None,
        ip_address: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        error_details: dict[str, Any] = {
            "type": type(error).__name__,
            "message": str(error),
        }
        to_dict = getattr(error, "to_dict", None)
        if callable(to_dict):
            error_details.update(to_dict())

        self._emit(
            "ERROR",
            AuditRecord(
                event_type=AuditEventType.RESOURCE_ACCESS,
                resource_type=resource,
                resource_id=resource_id,
                action=action,
                status="failure",
                request_id=request_id,
                user_id=user_id,
                ip_address=ip_address,
                details=meta,
                error_details=error_details,
            ),
        )

    def log_cache_op(
        self,
        resource: str,
        op: CacheOperation,
        request_id: str,
        resource_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        self._emit(
            "INFO",
            AuditRecord(
                event_type=AuditEventType.CACHE_OPERATION,
                resource_type=resource,
                resource_id=resource_id,
                action=op,
                status="success",
                request_id=request_id,
                details=meta,
            ),
        )

    def _emit(self, level: str, record: AuditRecord) -> None:
        payload = record.model_dump(mode="json", exclude_none=True)
        self._logger.bind(audit_record=payload).log(level, record.summary())

    def _prepare_state(self, state: Any) -> Any:
        if not self.options.include_resource_state or state is None:
            return None
        if self.options.mask_sensitive_fields:
            return mask_sensitive(state, self.options.sensitive_fields)
        return copy.deepcopy(state)


def mask_sensitive(value: Any, sensitive_fields: list[str]) -> Any:
    """Return a copy of value with sensitive keys replaced by MASK."""
    lowered = [f.lower() for f in sensitive_fields]

    def walk(node: Any) -> Any:
        if isinstance(node, dict):
            return {
                k: MASK
                if any(f in str(k).lower() for f in lowered)
                else walk(v)
                for k, v in node.items()
            }
        if isinstance(node, list):
            return [walk(item) for item in node]
        return node

    return walk(value)
