"""Moderation actions as hosts invoke them.

Each action runs inside :meth:`OperationOrchestrator.execute_operation`, so
it is audited even when it is refused: the permission check and the queue
transition both happen inside the wrapped operation, and a failed transition
is raised there so the audit entry records the failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from modguard.auth.permissions import Actor, Permission, require_permission
from modguard.errors import NotFoundError, ValidationError
from modguard.events.bus import EventName
from modguard.moderation.models import FlagOptions, ModerationQueueItem, ModerationStatus
from modguard.moderation.queue import ModerationQueue
from modguard.notifications.dispatcher import Notification
from modguard.orchestrator.models import BatchResult, OperationContext, OperationResult
from modguard.orchestrator.orchestrator import OperationOrchestrator, ProgressCallback

logger = logging.getLogger(__name__)

_STATUS_EVENTS = {
    ModerationStatus.APPROVED: EventName.CONTENT_APPROVED,
    ModerationStatus.REJECTED: EventName.CONTENT_REJECTED,
    ModerationStatus.ESCALATED: EventName.CONTENT_ESCALATED,
}


def _event_data(item: ModerationQueueItem, **extra) -> dict:
    data = {
        "queue_id": item.id,
        "content_type": item.content_type,
        "content_id": item.content_id,
        "user_id": item.user_id,
        "status": item.status.value,
        "priority": item.priority,
        "risk_score": item.risk_score,
    }
    data.update(extra)
    return data


def _parse_status(value: ModerationStatus | str) -> ModerationStatus:
    try:
        return ModerationStatus(value)
    except ValueError:
        raise ValidationError(
            f"Unknown status '{value}'", {"allowed": [s.value for s in ModerationStatus]}
        ) from None


class ModerationActions:
    def __init__(self, orchestrator: OperationOrchestrator, queue: ModerationQueue) -> None:
        self._orchestrator = orchestrator
        self._queue = queue

    # ------------------------------------------------------------------
    # Flag
    # ------------------------------------------------------------------

    async def flag(
        self,
        actor: Actor,
        content_type: str,
        content_id: str,
        user_id: str,
        reason: str,
        priority: Optional[int] = None,
        risk_score: float = 0.0,
    ) -> OperationResult[ModerationQueueItem]:
        """Manually report a piece of content for review."""

        async def op() -> ModerationQueueItem:
            require_permission(actor.role, Permission.flag_content)
            return await self._queue.flag_content(
                content_type,
                content_id,
                user_id,
                FlagOptions(
                    flagged_by=actor.id,
                    flag_reason=reason,
                    priority=priority,
                    risk_score=risk_score,
                ),
            )

        context = OperationContext(
            actor_id=actor.id,
            actor_role=actor.role.value,
            action="flag_content",
            target_type=getattr(content_type, "value", content_type),
            target_id=content_id,
            metadata={"user_id": user_id, "reason": reason},
        )
        result = await self._orchestrator.execute_operation(op, context)
        if result.success:
            item = result.data
            self._orchestrator.emit(
                EventName.CONTENT_FLAGGED.value,
                _event_data(item, reason=item.flag_reason, flagged_by=actor.id),
            )
        return result

    # ------------------------------------------------------------------
    # Moderate / escalate
    # ------------------------------------------------------------------

    async def _decide(
        self,
        actor: Actor,
        queue_id: str,
        status: ModerationStatus,
        notes: Optional[str],
    ) -> ModerationQueueItem:
        require_permission(actor.role, Permission.moderate_content)
        item = await self._queue.get_item(queue_id)
        if item is None:
            raise NotFoundError(f"Queue item {queue_id} not found", {"queue_id": queue_id})
        if item.status == ModerationStatus.ESCALATED and status != ModerationStatus.ESCALATED:
            require_permission(actor.role, Permission.review_escalated)

        if status == ModerationStatus.ESCALATED:
            outcome = await self._queue.escalate_content(queue_id, actor.id, notes or "")
        else:
            outcome = await self._queue.moderate_content(queue_id, actor.id, status, notes)
        if not outcome.success:
            raise outcome.error
        return outcome.item

    def _after_decision(self, actor: Actor, item: ModerationQueueItem, notes: Optional[str]) -> None:
        event = _STATUS_EVENTS.get(item.status)
        if event is not None:
            self._orchestrator.emit(
                event.value, _event_data(item, moderator_id=actor.id, notes=notes)
            )
        if item.status == ModerationStatus.ESCALATED:
            self._orchestrator.notify(
                Notification(
                    type="content_moderation",
                    title="Content Escalated",
                    message=f"{item.content_type} content {item.content_id} needs senior review",
                    recipients=["admin", "super_admin"],
                    priority="high",
                    data={"queue_id": item.id},
                )
            )
        elif item.status.terminal:
            self._orchestrator.notify(
                Notification(
                    type="moderation_decision",
                    title=f"Content {item.status.value}",
                    message=f"Your {item.content_type} has been {item.status.value} by a moderator",
                    user_id=item.user_id,
                    data={"queue_id": item.id, "content_id": item.content_id},
                )
            )

    async def moderate(
        self,
        actor: Actor,
        queue_id: str,
        status: ModerationStatus | str,
        notes: Optional[str] = None,
    ) -> OperationResult[ModerationQueueItem]:
        """Approve, reject or escalate one queue item."""
        status = _parse_status(status)
        context = OperationContext(
            actor_id=actor.id,
            actor_role=actor.role.value,
            action="moderate_content",
            target_type="moderation_queue",
            target_id=queue_id,
            metadata={"status": status.value, "notes": notes},
        )
        result = await self._orchestrator.execute_operation(
            lambda: self._decide(actor, queue_id, status, notes), context
        )
        if result.success:
            self._after_decision(actor, result.data, notes)
        return result

    async def escalate(
        self, actor: Actor, queue_id: str, reason: str
    ) -> OperationResult[ModerationQueueItem]:
        context = OperationContext(
            actor_id=actor.id,
            actor_role=actor.role.value,
            action="escalate_content",
            target_type="moderation_queue",
            target_id=queue_id,
            metadata={"reason": reason},
        )
        result = await self._orchestrator.execute_operation(
            lambda: self._decide(actor, queue_id, ModerationStatus.ESCALATED, reason), context
        )
        if result.success:
            self._after_decision(actor, result.data, reason)
        return result

    async def bulk_moderate(
        self,
        actor: Actor,
        queue_ids: list[str],
        status: ModerationStatus | str,
        notes: Optional[str] = None,
        batch_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> BatchResult[str, ModerationQueueItem]:
        """Apply one decision to many items; each item is audited separately."""
        status = _parse_status(status)
        context = OperationContext(
            actor_id=actor.id,
            actor_role=actor.role.value,
            action="bulk_moderate_content",
            target_type="moderation_queue",
            metadata={"status": status.value, "notes": notes, "batch_total": len(queue_ids)},
        )
        batch = await self._orchestrator.execute_batch_operation(
            queue_ids,
            lambda queue_id: self._decide(actor, queue_id, status, notes),
            context,
            batch_size=batch_size,
            on_progress=on_progress,
            abort=abort,
        )
        for r in batch.results:
            if r.success:
                self._after_decision(actor, r.data, notes)
        logger.info(
            "Bulk %s by %s: %d ok, %d failed, %d skipped",
            status.value, actor.id, batch.summary.successful, batch.summary.failed, batch.summary.skipped,
        )
        return batch
