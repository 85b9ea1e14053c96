"""Data models for the moderation queue."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from modguard.errors import ModGuardError


class ModerationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"

    @property
    def terminal(self) -> bool:
        return self in (ModerationStatus.APPROVED, ModerationStatus.REJECTED)


# Allowed transitions; terminal states have none.
TRANSITIONS: dict[ModerationStatus, frozenset[ModerationStatus]] = {
    ModerationStatus.PENDING: frozenset(
        {ModerationStatus.APPROVED, ModerationStatus.REJECTED, ModerationStatus.ESCALATED}
    ),
    ModerationStatus.ESCALATED: frozenset(
        {ModerationStatus.APPROVED, ModerationStatus.REJECTED, ModerationStatus.ESCALATED}
    ),
    ModerationStatus.APPROVED: frozenset(),
    ModerationStatus.REJECTED: frozenset(),
}

MAX_PRIORITY = 5
HIGH_PRIORITY = 4

SORT_FIELDS = ("created_at", "priority", "risk_score", "updated_at")


@dataclass
class ModerationQueueItem:
    """A flagged piece of content awaiting (or past) a moderation decision."""

    id: str
    content_type: str
    content_id: str
    user_id: str
    flag_reason: str = ""
    flagged_by: Optional[str] = None  # None = system / auto-flag
    status: ModerationStatus = ModerationStatus.PENDING
    priority: int = 1
    risk_score: float = 0.0
    moderator_id: Optional[str] = None
    moderator_notes: Optional[str] = None
    auto_flagged: bool = False
    flagging_details: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""
    moderated_at: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, ModerationStatus):
            self.status = ModerationStatus(self.status)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModerationQueueItem":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class FlagOptions:
    """Optional arguments of ``ModerationQueue.flag_content``."""

    flagged_by: Optional[str] = None
    flag_reason: str = ""
    priority: Optional[int] = None
    risk_score: float = 0.0
    auto_flagged: bool = False
    flagging_details: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransitionResult:
    """Outcome of a state transition; failures are reported, not raised."""

    success: bool
    item: Optional[ModerationQueueItem] = None
    error: Optional[ModGuardError] = None


@dataclass
class BulkModerationResult:
    success: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.success) + len(self.failed)


@dataclass
class QueueFilters:
    status: Optional[ModerationStatus] = None
    content_type: Optional[str] = None
    priority_min: Optional[int] = None
    risk_score_min: Optional[float] = None
    auto_flagged: Optional[bool] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    user_id: Optional[str] = None
    moderator_id: Optional[str] = None


@dataclass
class QueuePage:
    """Pagination and ordering for queue listings."""

    limit: int = 50
    offset: int = 0
    sort_by: str = "priority"
    sort_order: str = "desc"


@dataclass
class ModerationStats:
    pending_count: int = 0
    approved_count: int = 0
    rejected_count: int = 0
    escalated_count: int = 0
    total_processed_today: int = 0
    avg_processing_time_hours: float = 0.0
    high_priority_count: int = 0
