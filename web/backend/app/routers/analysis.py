"""Analysis router -- risk scoring, automatic flagging and analytics."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from modguard.analysis.models import ContentAnalysisInput, ContentType, UserHistory
from modguard.auth.permissions import Actor, Permission
from modguard.container import Services
from web.backend.app.deps import get_services
from web.backend.app.middleware.auth import get_current_actor, require
from web.backend.app.models.api import (
    AnalyzeRequest,
    AutoFlagRequest,
    AutoFlagResponse,
    AutoFlagStatsResponse,
    RiskScoreResponse,
)

router = APIRouter(prefix="/api/analysis", tags=["analysis"])


@router.post("/analyze", response_model=RiskScoreResponse, summary="Score content without storing it")
async def analyze_content(
    request: AnalyzeRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    history = request.user_history
    score = services.analyzer.analyze_content(
        ContentAnalysisInput(
            content_type=ContentType(request.content_type),
            user_id=request.user_id,
            title=request.title,
            description=request.description,
            content_data=request.content_data,
            user_history=UserHistory(**history.model_dump()) if history is not None else None,
        )
    )
    return RiskScoreResponse(**score.to_dict())


@router.post("/autoflag", response_model=AutoFlagResponse, summary="Analyze stored content and queue it if risky")
async def autoflag_content(
    request: AutoFlagRequest,
    actor: Actor = Depends(require(Permission.moderate_content)),
    services: Services = Depends(get_services),
):
    result = await services.autoflagger.analyze(request.content_type, request.content_id, request.user_id)
    return AutoFlagResponse(**result.to_dict())


@router.get("/autoflag/stats", response_model=AutoFlagStatsResponse, summary="Automatic flagging statistics")
async def autoflag_stats(
    days: int = Query(30, ge=1, le=365),
    actor: Actor = Depends(require(Permission.view_analytics)),
    services: Services = Depends(get_services),
):
    stats = await services.autoflagger.get_auto_flagging_stats(days)
    return AutoFlagStatsResponse(**vars(stats))


@router.get("/events", response_model=dict[str, int], summary="Analytics event counts")
async def event_counts(
    period: Literal["today", "week", "month", "all"] = Query("all"),
    category: Optional[str] = Query(None),
    actor: Actor = Depends(require(Permission.view_analytics)),
    services: Services = Depends(get_services),
):
    """Number of recorded events per name, e.g. ``content_flagged``."""
    return await services.analytics.get_counts(period, category)
