"""Data models for orchestrated operations, batches and health reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from modguard.notifications.dispatcher import Notification

T = TypeVar("T")
I = TypeVar("I")


@dataclass
class OperationContext:
    """Who is doing what to which target."""

    actor_id: Optional[str]  # None = system
    action: str
    target_type: str = "system"
    target_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    actor_role: Optional[str] = None
    notification: Optional[Notification] = None  # sent once the operation succeeds
    notify_on_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "action": self.action,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "metadata": dict(self.metadata),
        }


@dataclass
class OperationResult(Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[BaseException] = None
    message: str = ""
    warnings: list[str] = field(default_factory=list)
    audit_id: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error_code": getattr(self.error, "code", None) if self.error else None,
            "warnings": list(self.warnings),
            "audit_id": self.audit_id,
            "duration_ms": self.duration_ms,
        }


@dataclass
class BatchItemResult(Generic[I, T]):
    item: I
    success: bool
    data: Optional[T] = None
    error: Optional[BaseException] = None
    audit_id: Optional[str] = None
    skipped: bool = False


@dataclass
class BatchSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass
class BatchResult(Generic[I, T]):
    results: list[BatchItemResult[I, T]]
    summary: BatchSummary
    chunks: list[int] = field(default_factory=list)  # sizes of the chunks that ran


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ServiceHealth:
    status: str  # "up" | "down"
    response_time_ms: Optional[int] = None
    error: Optional[str] = None


@dataclass
class HealthReport:
    overall: HealthStatus
    services: dict[str, ServiceHealth]

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall.value,
            "services": {
                name: {
                    "status": s.status,
                    "response_time_ms": s.response_time_ms,
                    "error": s.error,
                }
                for name, s in self.services.items()
            },
        }
