"""Audit trail records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class AuditLogEntry:
    """One audited action.

    Written once before the action runs; ``success``, ``duration_ms``,
    ``error_message`` and ``completed_at`` are filled by a single result patch.
    """

    id: str
    actor_id: Optional[str]  # None = system
    action_type: str
    target_type: str
    target_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    success: Optional[bool] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    created_at: str = ""
    completed_at: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.success is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditLogEntry":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class AuditFilters:
    actor_id: Optional[str] = None
    action_type: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None


@dataclass
class AuditPage:
    entries: list[AuditLogEntry]
    count: int
