"""Analyze stored brands and CVs and queue the risky ones.

The flagging step runs through the orchestrator as a system action
(``auto_flag_content``), so every automatic flag has an audit entry.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from modguard.analysis.analyzer import RiskAnalyzer
from modguard.analysis.models import ContentAnalysisInput, ContentRiskScore, ContentType, UserHistory
from modguard.analytics.recorder import AnalyticsRecorder
from modguard.content.store import ContentStore
from modguard.errors import NotFoundError, ValidationError
from modguard.events.bus import EventName
from modguard.moderation.models import FlagOptions, ModerationStatus, QueueFilters
from modguard.moderation.queue import ModerationQueue
from modguard.notifications.dispatcher import Notification
from modguard.orchestrator.models import BatchResult, OperationContext
from modguard.orchestrator.orchestrator import OperationOrchestrator, ProgressCallback
from modguard.storage import call_store, isoformat, utcnow

logger = logging.getLogger(__name__)

AUTO_FLAG_REASON = "Automatically flagged by content analysis system"
AUTO_FLAG_ACTION = "auto_flag_content"


@dataclass
class AutoFlagResult:
    flagged: bool
    risk_score: ContentRiskScore
    moderation_queue_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "flagged": self.flagged,
            "risk_score": self.risk_score.to_dict(),
            "moderation_queue_id": self.moderation_queue_id,
        }


@dataclass
class AnalysisTarget:
    """One item for :meth:`AutoFlagger.batch_analyze`."""

    content_type: ContentType
    content_id: str
    user_id: str

    def __post_init__(self) -> None:
        self.content_type = ContentType(self.content_type)


@dataclass
class AutoFlagStats:
    days: int
    total_analyzed: int = 0
    total_flagged: int = 0
    flag_rate: float = 0.0
    avg_risk_score: float = 0.0
    risk_factor_breakdown: dict[str, int] = field(default_factory=dict)


class AutoFlagger:
    def __init__(
        self,
        analyzer: RiskAnalyzer,
        queue: ModerationQueue,
        content: ContentStore,
        orchestrator: OperationOrchestrator,
        analytics: Optional[AnalyticsRecorder] = None,
        store_timeout: float = 5.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._analyzer = analyzer
        self._queue = queue
        self._content = content
        self._orchestrator = orchestrator
        self._analytics = analytics
        self._timeout = store_timeout
        self._clock = clock or utcnow

    async def _call(self, fn, *args, **kwargs):
        return await call_store(fn, *args, timeout=self._timeout, **kwargs)

    async def get_user_history(self, user_id: str) -> Optional[UserHistory]:
        """Build the author's history, or None when the user has no profile."""
        profile = await self._call(self._content.get_profile, user_id)
        if profile is None:
            return None
        created = datetime.fromisoformat(profile["created_at"])
        now = self._clock()
        if created.tzinfo is None:
            created = created.replace(tzinfo=now.tzinfo)
        previous_flags, content_count = await asyncio.gather(
            self._queue.count_for_user(user_id),
            self._call(self._content.count_for_user, user_id),
        )
        return UserHistory(
            previous_flags=previous_flags,
            account_age_days=max((now - created).days, 0),
            content_count=content_count,
        )

    # ------------------------------------------------------------------
    # Single items
    # ------------------------------------------------------------------

    async def analyze_brand(self, brand_id: str, user_id: str) -> AutoFlagResult:
        brand = await self._call(self._content.get_content, ContentType.BRAND, brand_id)
        if brand is None:
            raise NotFoundError(f"Brand {brand_id} not found", {"content_id": brand_id})
        data = {
            "tagline": brand.get("tagline"),
            "description": brand.get("description"),
            "values": brand.get("values"),
            "style": brand.get("style"),
        }
        return await self._analyze(
            ContentType.BRAND, brand_id, user_id, brand.get("name") or "", brand.get("description") or "", data
        )

    async def analyze_cv(self, cv_id: str, user_id: str) -> AutoFlagResult:
        cv = await self._call(self._content.get_content, ContentType.CV, cv_id)
        if cv is None:
            raise NotFoundError(f"CV {cv_id} not found", {"content_id": cv_id})
        return await self._analyze(ContentType.CV, cv_id, user_id, cv.get("title") or "", "", cv.get("content") or {})

    async def analyze(self, content_type: ContentType | str, content_id: str, user_id: str) -> AutoFlagResult:
        content_type = ContentType(content_type)
        if content_type == ContentType.BRAND:
            return await self.analyze_brand(content_id, user_id)
        return await self.analyze_cv(content_id, user_id)

    async def _analyze(
        self,
        content_type: ContentType,
        content_id: str,
        user_id: str,
        title: str,
        description: str,
        content_data: Any,
    ) -> AutoFlagResult:
        history = await self.get_user_history(user_id)
        score = self._analyzer.analyze_content(
            ContentAnalysisInput(
                content_type=content_type,
                user_id=user_id,
                title=title,
                description=description,
                content_data=content_data,
                user_history=history,
            )
        )
        self._orchestrator.emit(
            EventName.CONTENT_ANALYZED.value,
            {
                "content_type": content_type.value,
                "content_id": content_id,
                "user_id": user_id,
                "risk_score": score.overall_score,
                "auto_flag": score.auto_flag,
                "degraded": score.degraded,
            },
        )
        if not score.auto_flag:
            return AutoFlagResult(flagged=False, risk_score=score)
        queue_id = await self._flag(content_type, content_id, user_id, score)
        return AutoFlagResult(flagged=True, risk_score=score, moderation_queue_id=queue_id)

    async def _flag(
        self, content_type: ContentType, content_id: str, user_id: str, score: ContentRiskScore
    ) -> str:
        # An open entry for the same content is reused instead of stacking duplicates.
        for existing in await self._queue.get_content_history(content_type, content_id):
            if existing.auto_flagged and not existing.status.terminal:
                logger.info("%s %s already queued as %s", content_type.value, content_id, existing.id)
                return existing.id

        details = {
            "user_id": user_id,
            "risk_score": score.overall_score,
            "confidence": score.confidence,
            "risk_factors": [
                {"type": f.type.value, "severity": f.severity.value, "score": f.score}
                for f in score.risk_factors
            ],
        }
        context = OperationContext(
            actor_id=None,
            action=AUTO_FLAG_ACTION,
            target_type=content_type.value,
            target_id=content_id,
            metadata=details,
            notification=Notification(
                type="content_moderation",
                title="Content Flagged",
                message=f"{content_type.value} content has been flagged for review",
                recipients=["moderator", "admin"],
                data={"content_id": content_id, "risk_score": score.overall_score},
            ),
        )
        result = await self._orchestrator.execute_operation(
            lambda: self._queue.flag_content(
                content_type,
                content_id,
                user_id,
                FlagOptions(
                    flagged_by=None,
                    flag_reason=AUTO_FLAG_REASON,
                    risk_score=score.overall_score,
                    auto_flagged=True,
                    flagging_details=details,
                ),
            ),
            context,
        )
        if not result.success:
            raise result.error
        item = result.data
        self._orchestrator.emit(
            EventName.CONTENT_FLAGGED.value,
            {
                "queue_id": item.id,
                "content_type": item.content_type,
                "content_id": item.content_id,
                "user_id": item.user_id,
                "status": ModerationStatus.PENDING.value,
                "priority": item.priority,
                "risk_score": item.risk_score,
                "reason": AUTO_FLAG_REASON,
                "auto_flagged": True,
            },
        )
        return item.id

    # ------------------------------------------------------------------
    # Batches and statistics
    # ------------------------------------------------------------------

    async def batch_analyze(
        self,
        items: list[AnalysisTarget],
        batch_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> BatchResult[AnalysisTarget, AutoFlagResult]:
        """Analyze many items; one failure never stops the rest."""
        for item in items:
            if not item.content_id or not item.user_id:
                raise ValidationError("Every batch item needs a content_id and user_id")
        context = OperationContext(actor_id=None, action="batch_analyze_content", target_type="content")
        return await self._orchestrator.execute_batch_operation(
            items,
            lambda item: self.analyze(item.content_type, item.content_id, item.user_id),
            context,
            batch_size=batch_size,
            get_target_id=lambda item: f"{item.content_type.value}:{item.content_id}",
            on_progress=on_progress,
            abort=abort,
        )

    async def get_auto_flagging_stats(self, days: int = 30) -> AutoFlagStats:
        if days < 1:
            raise ValidationError("days must be at least 1", {"days": days})
        since = isoformat(self._clock() - timedelta(days=days))
        flagged = await self._queue.find(QueueFilters(auto_flagged=True, date_from=since))

        stats = AutoFlagStats(days=days, total_flagged=len(flagged))
        if flagged:
            stats.avg_risk_score = round(sum(i.risk_score for i in flagged) / len(flagged), 2)
        breakdown: Counter[str] = Counter()
        for item in flagged:
            for factor in item.flagging_details.get("risk_factors", []):
                if isinstance(factor, dict) and factor.get("type"):
                    breakdown[factor["type"]] += 1
        stats.risk_factor_breakdown = dict(breakdown)

        if self._analytics is not None:
            analyzed = await self._call(self._analytics.get_events, name="content_analyzed", since=since)
            stats.total_analyzed = len(analyzed)
        if stats.total_analyzed:
            stats.flag_rate = round(stats.total_flagged / stats.total_analyzed * 100, 2)
        return stats
