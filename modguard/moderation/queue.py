"""Moderation queue state machine.

Items move ``pending -> approved | rejected | escalated`` and
``escalated -> approved | rejected | escalated``; approved and rejected are
terminal.  Expected failures (unknown id, terminal item, lost race, bad
input) come back inside a :class:`TransitionResult`; only dependency
failures raise.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from modguard.errors import ModGuardError, NotFoundError, StateConflictError, ValidationError
from modguard.moderation.models import (
    HIGH_PRIORITY,
    MAX_PRIORITY,
    TRANSITIONS,
    BulkModerationResult,
    FlagOptions,
    ModerationQueueItem,
    ModerationStats,
    ModerationStatus,
    QueueFilters,
    QueuePage,
    TransitionResult,
)
from modguard.moderation.store import QueueStore
from modguard.storage import call_store, isoformat, utcnow

logger = logging.getLogger(__name__)


def priority_for_score(risk_score: float) -> int:
    """Default priority: one step per 20 points of risk, capped at 5."""
    return min(math.floor(risk_score / 20) + 1, MAX_PRIORITY)


class ModerationQueue:
    """Async facade over :class:`QueueStore` enforcing the transition rules."""

    def __init__(
        self,
        store: QueueStore,
        store_timeout: float = 5.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._timeout = store_timeout
        self._clock = clock or utcnow

    async def _call(self, fn, *args, **kwargs):
        return await call_store(fn, *args, timeout=self._timeout, **kwargs)

    def _stamp_after(self, earlier: str) -> str:
        # Clocks can repeat; every change lands strictly after the previous one.
        now = self._clock()
        try:
            floor = datetime.fromisoformat(earlier)
        except ValueError:
            return isoformat(now)
        if now <= floor:
            now = floor + timedelta(microseconds=1)
        return isoformat(now)

    # ------------------------------------------------------------------
    # Flagging
    # ------------------------------------------------------------------

    async def flag_content(
        self,
        content_type: str,
        content_id: str,
        user_id: str,
        options: Optional[FlagOptions] = None,
    ) -> ModerationQueueItem:
        """Create a new pending entry.  Duplicate flags create new entries."""
        opts = options or FlagOptions()
        content_type = getattr(content_type, "value", content_type)
        if not content_type or not content_id or not user_id:
            raise ValidationError("content_type, content_id and user_id are required")
        if not 0 <= opts.risk_score <= 100:
            raise ValidationError(
                "Risk score must be between 0 and 100", {"risk_score": opts.risk_score}
            )
        priority = opts.priority if opts.priority is not None else priority_for_score(opts.risk_score)
        if not 1 <= priority <= MAX_PRIORITY:
            raise ValidationError("Priority must be between 1 and 5", {"priority": priority})
        reason = (opts.flag_reason or "").strip()
        if not opts.auto_flagged and not reason:
            raise ValidationError("A reason is required when flagging content manually")

        now = isoformat(self._clock())
        item = ModerationQueueItem(
            id=str(uuid.uuid4()),
            content_type=content_type,
            content_id=content_id,
            user_id=user_id,
            flag_reason=reason,
            flagged_by=opts.flagged_by,
            status=ModerationStatus.PENDING,
            priority=priority,
            risk_score=float(opts.risk_score),
            auto_flagged=opts.auto_flagged,
            flagging_details=dict(opts.flagging_details),
            created_at=now,
            updated_at=now,
        )
        await self._call(self._store.insert, item, write=True)
        logger.info(
            "Flagged %s %s (queue id %s, priority %d)", content_type, content_id, item.id, priority
        )
        return item

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _load_for_transition(
        self, queue_id: str, target: ModerationStatus
    ) -> ModerationQueueItem | TransitionResult:
        item = await self._call(self._store.get, queue_id)
        if item is None:
            return TransitionResult(
                False, error=NotFoundError(f"Queue item {queue_id} not found", {"queue_id": queue_id})
            )
        if target not in TRANSITIONS[item.status]:
            return TransitionResult(
                False,
                item=item,
                error=StateConflictError(
                    f"Cannot move item {queue_id} from {item.status.value} to {target.value}",
                    {"queue_id": queue_id, "status": item.status.value},
                ),
            )
        return item

    async def _swap(
        self, item: ModerationQueueItem, updates: dict
    ) -> TransitionResult:
        try:
            updated = await self._call(
                self._store.compare_and_swap, item.id, item.status, updates, write=True
            )
        except NotFoundError as exc:
            return TransitionResult(False, error=exc)
        if updated is None:
            return TransitionResult(
                False,
                item=item,
                error=StateConflictError(
                    f"Queue item {item.id} was modified concurrently", {"queue_id": item.id}
                ),
            )
        return TransitionResult(True, item=updated)

    async def moderate_content(
        self,
        queue_id: str,
        moderator_id: str,
        new_status: ModerationStatus | str,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Approve, reject or escalate one item."""
        try:
            status = ModerationStatus(new_status)
        except ValueError:
            return TransitionResult(False, error=ValidationError(f"Unknown status '{new_status}'"))
        if status == ModerationStatus.ESCALATED:
            return await self.escalate_content(queue_id, moderator_id, notes or "")
        if status == ModerationStatus.PENDING:
            return TransitionResult(
                False, error=ValidationError("Items cannot be moved back to pending")
            )
        if not moderator_id:
            return TransitionResult(False, error=ValidationError("moderator_id is required"))

        loaded = await self._load_for_transition(queue_id, status)
        if isinstance(loaded, TransitionResult):
            return loaded
        stamp = self._stamp_after(loaded.updated_at or loaded.created_at)
        result = await self._swap(
            loaded,
            {
                "status": status,
                "moderator_id": moderator_id,
                "moderator_notes": notes,
                "updated_at": stamp,
                "moderated_at": stamp,
            },
        )
        if result.success:
            logger.info("Item %s %s by %s", queue_id, status.value, moderator_id)
        return result

    async def escalate_content(
        self, queue_id: str, moderator_id: str, reason: str
    ) -> TransitionResult:
        """Escalate to senior review; priority is forced to the maximum."""
        if not reason or not reason.strip():
            return TransitionResult(False, error=ValidationError("An escalation reason is required"))
        if not moderator_id:
            return TransitionResult(False, error=ValidationError("moderator_id is required"))

        loaded = await self._load_for_transition(queue_id, ModerationStatus.ESCALATED)
        if isinstance(loaded, TransitionResult):
            return loaded
        result = await self._swap(
            loaded,
            {
                "status": ModerationStatus.ESCALATED,
                "priority": MAX_PRIORITY,
                "moderator_id": moderator_id,
                "moderator_notes": reason.strip(),
                "updated_at": self._stamp_after(loaded.updated_at or loaded.created_at),
            },
        )
        if result.success:
            logger.info("Item %s escalated by %s", queue_id, moderator_id)
        return result

    async def bulk_moderate(
        self,
        queue_ids: list[str],
        moderator_id: str,
        status: ModerationStatus | str,
        notes: Optional[str] = None,
    ) -> BulkModerationResult:
        """Apply one decision to many items, recording each outcome."""
        outcome = BulkModerationResult()
        for queue_id in queue_ids:
            try:
                result = await self.moderate_content(queue_id, moderator_id, status, notes)
            except ModGuardError as exc:
                logger.warning("Bulk moderation of %s failed: %s", queue_id, exc)
                outcome.failed.append(queue_id)
                continue
            (outcome.success if result.success else outcome.failed).append(queue_id)
        return outcome

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_item(self, queue_id: str) -> Optional[ModerationQueueItem]:
        return await self._call(self._store.get, queue_id)

    async def list_queue(
        self,
        filters: Optional[QueueFilters] = None,
        page: Optional[QueuePage] = None,
    ) -> tuple[list[ModerationQueueItem], int]:
        return await self._call(
            self._store.list_items, filters or QueueFilters(), page or QueuePage()
        )

    async def find(self, filters: QueueFilters) -> list[ModerationQueueItem]:
        return await self._call(self._store.find, filters)

    async def get_content_history(
        self, content_type: str, content_id: str
    ) -> list[ModerationQueueItem]:
        content_type = getattr(content_type, "value", content_type)
        return await self._call(self._store.list_for_content, content_type, content_id)

    async def count_for_user(self, user_id: str) -> int:
        return await self._call(self._store.count_for_user, user_id)

    async def get_stats(self) -> ModerationStats:
        items = await self._call(self._store.all)
        stats = ModerationStats()
        today = self._clock().astimezone(timezone.utc).date()
        durations: list[float] = []

        for item in items:
            if item.status == ModerationStatus.PENDING:
                stats.pending_count += 1
                if item.priority >= HIGH_PRIORITY:
                    stats.high_priority_count += 1
            elif item.status == ModerationStatus.APPROVED:
                stats.approved_count += 1
            elif item.status == ModerationStatus.REJECTED:
                stats.rejected_count += 1
            elif item.status == ModerationStatus.ESCALATED:
                stats.escalated_count += 1

            if item.status.terminal and item.moderated_at:
                moderated = datetime.fromisoformat(item.moderated_at)
                if moderated.astimezone(timezone.utc).date() == today:
                    stats.total_processed_today += 1
                created = datetime.fromisoformat(item.created_at)
                durations.append((moderated - created).total_seconds() / 3600)

        if durations:
            stats.avg_processing_time_hours = round(sum(durations) / len(durations), 2)
        return stats

    async def health_check(self) -> None:
        await self._call(self._store.ping)
