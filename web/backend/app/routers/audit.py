"""Audit router -- read and export the audit trail (admins only)."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from modguard.audit.models import AuditFilters
from modguard.auth.permissions import Actor, Permission
from modguard.container import Services
from web.backend.app.deps import get_services
from web.backend.app.middleware.auth import require
from web.backend.app.models.api import AuditEntryResponse, AuditListResponse

router = APIRouter(prefix="/api/audit", tags=["audit"])

_can_view = require(Permission.view_audit_logs)


def _filters(
    actor_id: Optional[str] = Query(None),
    action_type: Optional[str] = Query(None),
    target_type: Optional[str] = Query(None),
    target_id: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None, description="ISO timestamp lower bound"),
    date_to: Optional[str] = Query(None, description="ISO timestamp upper bound"),
) -> AuditFilters:
    return AuditFilters(
        actor_id=actor_id,
        action_type=action_type,
        target_type=target_type,
        target_id=target_id,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("", response_model=AuditListResponse, summary="List audit entries")
async def list_entries(
    filters: AuditFilters = Depends(_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=1000),
    actor: Actor = Depends(_can_view),
    services: Services = Depends(get_services),
):
    """Newest first, with the total number of matching entries."""
    result = await services.audit.get_audit_log(filters, page=page, limit=limit)
    return AuditListResponse(
        entries=[AuditEntryResponse(**e.to_dict()) for e in result.entries],
        count=result.count,
        page=page,
        limit=limit,
    )


@router.get("/incomplete", response_model=list[AuditEntryResponse], summary="Actions with no recorded outcome")
async def incomplete_entries(
    older_than: float = Query(0, ge=0, description="Seconds"),
    actor: Actor = Depends(_can_view),
    services: Services = Depends(get_services),
):
    entries = await services.audit.get_incomplete_actions(older_than)
    return [AuditEntryResponse(**e.to_dict()) for e in entries]


@router.get("/export", summary="Export audit entries")
async def export_entries(
    fmt: Literal["json", "csv"] = Query("json", alias="format"),
    filters: AuditFilters = Depends(_filters),
    actor: Actor = Depends(_can_view),
    services: Services = Depends(get_services),
):
    text = await services.audit.export(fmt, filters)
    media_type = "text/csv" if fmt == "csv" else "application/json"
    return Response(
        content=text,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="audit.{fmt}"'},
    )


@router.get("/{entry_id}", response_model=AuditEntryResponse, summary="Get one audit entry")
async def get_entry(
    entry_id: str,
    actor: Actor = Depends(_can_view),
    services: Services = Depends(get_services),
):
    entry = await services.audit.get_entry(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Audit entry '{entry_id}' not found.")
    return AuditEntryResponse(**entry.to_dict())
