"""Pydantic models for API request/response serialization.

These models mirror the modguard dataclasses and provide JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

ContentTypeName = Literal["brand", "cv"]
DecisionName = Literal["approved", "rejected", "escalated"]


# ---------------------------------------------------------------------------
# Moderation queue models
# ---------------------------------------------------------------------------


class QueueItemResponse(BaseModel):
    """Mirrors modguard.moderation.models.ModerationQueueItem."""

    id: str
    content_type: str
    content_id: str
    user_id: str
    flag_reason: str = ""
    flagged_by: Optional[str] = None
    status: str
    priority: int
    risk_score: float
    moderator_id: Optional[str] = None
    moderator_notes: Optional[str] = None
    auto_flagged: bool = False
    flagging_details: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str
    moderated_at: Optional[str] = None


class QueueListResponse(BaseModel):
    items: list[QueueItemResponse]
    total: int
    limit: int
    offset: int


class QueueStatsResponse(BaseModel):
    """Mirrors modguard.moderation.models.ModerationStats."""

    pending_count: int = 0
    approved_count: int = 0
    rejected_count: int = 0
    escalated_count: int = 0
    total_processed_today: int = 0
    avg_processing_time_hours: float = 0.0
    high_priority_count: int = 0


class FlagRequest(BaseModel):
    content_type: ContentTypeName
    content_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1, description="Author of the content")
    reason: str = Field(..., min_length=1)
    priority: Optional[int] = Field(None, ge=1, le=5)
    risk_score: float = Field(0.0, ge=0, le=100)


class ModerateRequest(BaseModel):
    status: DecisionName
    notes: Optional[str] = None


class EscalateRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class BulkModerateRequest(BaseModel):
    queue_ids: list[str] = Field(..., min_length=1)
    status: DecisionName
    notes: Optional[str] = None
    batch_size: Optional[int] = Field(None, ge=1)


class OperationResponse(BaseModel):
    """Outcome of a single audited action."""

    success: bool
    message: str = ""
    warnings: list[str] = Field(default_factory=list)
    audit_id: Optional[str] = None
    duration_ms: int = 0
    item: Optional[QueueItemResponse] = None


class BulkItemResponse(BaseModel):
    queue_id: str
    success: bool
    skipped: bool = False
    error: Optional[str] = None
    audit_id: Optional[str] = None


class BulkModerateResponse(BaseModel):
    results: list[BulkItemResponse]
    total: int
    successful: int
    failed: int
    skipped: int
    warnings: list[str] = Field(default_factory=list)
    chunks: list[int] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Audit models
# ---------------------------------------------------------------------------


class AuditEntryResponse(BaseModel):
    """Mirrors modguard.audit.models.AuditLogEntry."""

    id: str
    actor_id: Optional[str] = None
    action_type: str
    target_type: str
    target_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    success: Optional[bool] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    created_at: str
    completed_at: Optional[str] = None


class AuditListResponse(BaseModel):
    entries: list[AuditEntryResponse]
    count: int
    page: int
    limit: int


# ---------------------------------------------------------------------------
# Analysis models
# ---------------------------------------------------------------------------


class UserHistoryModel(BaseModel):
    previous_flags: int = Field(0, ge=0)
    account_age_days: int = Field(0, ge=0)
    content_count: int = Field(0, ge=0)


class AnalyzeRequest(BaseModel):
    content_type: ContentTypeName
    user_id: str = "anonymous"
    title: str = ""
    description: str = ""
    content_data: Optional[dict[str, Any]] = None
    user_history: Optional[UserHistoryModel] = None


class RiskFactorResponse(BaseModel):
    type: str
    severity: str
    score: float
    description: str


class RiskScoreResponse(BaseModel):
    """Mirrors modguard.analysis.models.ContentRiskScore."""

    overall_score: float
    risk_factors: list[RiskFactorResponse] = Field(default_factory=list)
    confidence: float
    auto_flag: bool
    degraded: bool = False
    warnings: list[str] = Field(default_factory=list)


class AutoFlagRequest(BaseModel):
    content_type: ContentTypeName
    content_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class AutoFlagResponse(BaseModel):
    flagged: bool
    risk_score: RiskScoreResponse
    moderation_queue_id: Optional[str] = None


class AutoFlagStatsResponse(BaseModel):
    days: int
    total_analyzed: int = 0
    total_flagged: int = 0
    flag_rate: float = 0.0
    avg_risk_score: float = 0.0
    risk_factor_breakdown: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# System models
# ---------------------------------------------------------------------------


class ServiceHealthResponse(BaseModel):
    status: str
    response_time_ms: Optional[int] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    overall: str
    services: dict[str, ServiceHealthResponse]


class ConfigUpdateRequest(BaseModel):
    """Runtime-adjustable settings; the data directory is fixed at startup."""

    batch_size: Optional[int] = None
    store_timeout: Optional[float] = None
    operation_timeout: Optional[float] = None
    health_check_timeout: Optional[float] = None
    notification_timeout: Optional[float] = None
    enable_audit_logging: Optional[bool] = None
    enable_events: Optional[bool] = None
    enable_notifications: Optional[bool] = None
    log_level: Optional[str] = None
