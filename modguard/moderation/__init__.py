"""Moderation queue: item lifecycle, persistence and statistics."""

from modguard.moderation.models import (
    BulkModerationResult,
    FlagOptions,
    ModerationQueueItem,
    ModerationStats,
    ModerationStatus,
    QueueFilters,
    QueuePage,
    TransitionResult,
)
from modguard.moderation.queue import ModerationQueue, priority_for_score
from modguard.moderation.store import QueueStore

__all__ = [
    "BulkModerationResult",
    "FlagOptions",
    "ModerationQueue",
    "ModerationQueueItem",
    "ModerationStats",
    "ModerationStatus",
    "QueueFilters",
    "QueuePage",
    "QueueStore",
    "TransitionResult",
    "priority_for_score",
]
