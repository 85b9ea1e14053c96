"""Moderation router -- queue listing, flagging and moderator decisions.

Every state-changing endpoint goes through ``ModerationActions``, so the
attempt is audited whether or not the caller was allowed to make it.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from modguard.auth.permissions import Actor, Permission
from modguard.container import Services
from modguard.errors import user_message
from modguard.moderation.models import ModerationQueueItem, ModerationStatus, QueueFilters, QueuePage
from web.backend.app.deps import get_services, raise_for_result
from web.backend.app.middleware.auth import get_current_actor, require
from web.backend.app.models.api import (
    BulkItemResponse,
    BulkModerateRequest,
    BulkModerateResponse,
    ContentTypeName,
    EscalateRequest,
    FlagRequest,
    ModerateRequest,
    OperationResponse,
    QueueItemResponse,
    QueueListResponse,
    QueueStatsResponse,
)

router = APIRouter(prefix="/api/moderation", tags=["moderation"])


def _item(item: ModerationQueueItem) -> QueueItemResponse:
    return QueueItemResponse(**item.to_dict())


def _operation(result, actor: Actor) -> OperationResponse:
    raise_for_result(result, actor)
    return OperationResponse(
        success=True,
        message=result.message,
        warnings=result.warnings,
        audit_id=result.audit_id,
        duration_ms=result.duration_ms,
        item=_item(result.data) if result.data is not None else None,
    )


# ---------------------------------------------------------------------------
# Queue reads
# ---------------------------------------------------------------------------


@router.get("/queue", response_model=QueueListResponse, summary="List queue items")
async def list_queue(
    status_filter: Optional[ModerationStatus] = Query(None, alias="status"),
    content_type: Optional[ContentTypeName] = Query(None),
    priority_min: Optional[int] = Query(None, ge=1, le=5),
    risk_score_min: Optional[float] = Query(None, ge=0, le=100),
    auto_flagged: Optional[bool] = Query(None),
    user_id: Optional[str] = Query(None),
    sort_by: str = Query("priority"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(require(Permission.moderate_content)),
    services: Services = Depends(get_services),
):
    """Filtered, sorted page of the moderation queue."""
    items, total = await services.queue.list_queue(
        QueueFilters(
            status=status_filter,
            content_type=content_type,
            priority_min=priority_min,
            risk_score_min=risk_score_min,
            auto_flagged=auto_flagged,
            user_id=user_id,
        ),
        QueuePage(limit=limit, offset=offset, sort_by=sort_by, sort_order=sort_order),
    )
    return QueueListResponse(items=[_item(i) for i in items], total=total, limit=limit, offset=offset)


@router.get("/queue/stats", response_model=QueueStatsResponse, summary="Queue statistics")
async def queue_stats(
    actor: Actor = Depends(require(Permission.view_analytics)),
    services: Services = Depends(get_services),
):
    stats = await services.queue.get_stats()
    return QueueStatsResponse(**vars(stats))


@router.get("/queue/{queue_id}", response_model=QueueItemResponse, summary="Get one queue item")
async def get_queue_item(
    queue_id: str,
    actor: Actor = Depends(require(Permission.moderate_content)),
    services: Services = Depends(get_services),
):
    item = await services.queue.get_item(queue_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Queue item '{queue_id}' not found.")
    return _item(item)


@router.get(
    "/content/{content_type}/{content_id}/history",
    response_model=list[QueueItemResponse],
    summary="Moderation history of one piece of content",
)
async def content_history(
    content_type: ContentTypeName,
    content_id: str,
    actor: Actor = Depends(require(Permission.moderate_content)),
    services: Services = Depends(get_services),
):
    items = await services.queue.get_content_history(content_type, content_id)
    return [_item(i) for i in items]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@router.post(
    "/flag",
    response_model=OperationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Flag content for review",
)
async def flag_content(
    request: FlagRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    result = await services.actions.flag(
        actor,
        request.content_type,
        request.content_id,
        request.user_id,
        request.reason,
        priority=request.priority,
        risk_score=request.risk_score,
    )
    return _operation(result, actor)


@router.post("/queue/{queue_id}/moderate", response_model=OperationResponse, summary="Decide a queue item")
async def moderate(
    queue_id: str,
    request: ModerateRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    result = await services.actions.moderate(actor, queue_id, request.status, request.notes)
    return _operation(result, actor)


@router.post("/queue/{queue_id}/escalate", response_model=OperationResponse, summary="Escalate a queue item")
async def escalate(
    queue_id: str,
    request: EscalateRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    result = await services.actions.escalate(actor, queue_id, request.reason)
    return _operation(result, actor)


@router.post("/bulk", response_model=BulkModerateResponse, summary="Apply one decision to many items")
async def bulk_moderate(
    request: BulkModerateRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    """Each item succeeds or fails on its own; the response lists both."""
    batch = await services.actions.bulk_moderate(
        actor, request.queue_ids, request.status, request.notes, batch_size=request.batch_size
    )
    admin = actor.role.is_admin
    return BulkModerateResponse(
        results=[
            BulkItemResponse(
                queue_id=r.item,
                success=r.success,
                skipped=r.skipped,
                error=user_message(r.error, admin=admin) if r.error is not None else None,
                audit_id=r.audit_id,
            )
            for r in batch.results
        ],
        total=batch.summary.total,
        successful=batch.summary.successful,
        failed=batch.summary.failed,
        skipped=batch.summary.skipped,
        warnings=batch.summary.warnings,
        chunks=batch.chunks,
    )
