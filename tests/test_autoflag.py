"""Tests for automatic flagging of stored content."""

import asyncio
import tempfile
from datetime import timedelta
from pathlib import Path

import pytest

from modguard.analysis.autoflag import AUTO_FLAG_ACTION, AUTO_FLAG_REASON, AnalysisTarget
from modguard.audit.models import AuditFilters
from modguard.config import Settings
from modguard.container import build_services
from modguard.errors import NotFoundError
from modguard.storage import isoformat, utcnow

ABUSIVE = {
    "name": "Acme",
    "tagline": "fuck this shit, damn crap",
    "description": "Buy now! Click here! Free money! Guaranteed!",
}


def _services(tmpdir: str):
    return build_services(Settings(data_dir=Path(tmpdir)))


def _run(services, coro):
    async def runner():
        try:
            return await coro
        finally:
            await services.orchestrator.drain(timeout=2)

    return asyncio.run(runner())


def test_clean_brand_is_not_flagged():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        services.content.add_brand(
            "u1", "Acme Coffee", tagline="Fresh coffee every morning",
            description="Roasting ethically sourced beans since 1999", brand_id="b1",
        )
        result = _run(services, services.autoflagger.analyze_brand("b1", "u1"))
        assert not result.flagged
        assert result.moderation_queue_id is None
        items, total = _run(services, services.queue.list_queue())
        assert total == 0
        assert services.analytics.counts()["content_analyzed"] == 1


def test_abusive_brand_is_queued_and_audited():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        services.content.add_brand("u1", brand_id="b1", **ABUSIVE)
        result = _run(services, services.autoflagger.analyze_brand("b1", "u1"))

        assert result.flagged
        item = _run(services, services.queue.get_item(result.moderation_queue_id))
        assert item.auto_flagged
        assert item.flagged_by is None
        assert item.flag_reason == AUTO_FLAG_REASON
        assert item.risk_score == result.risk_score.overall_score
        assert item.priority == 5
        assert {f["type"] for f in item.flagging_details["risk_factors"]} >= {"profanity", "spam"}

        log = _run(services, services.audit.get_audit_log(AuditFilters(action_type=AUTO_FLAG_ACTION)))
        assert log.count == 1
        assert log.entries[0].actor_id is None
        assert log.entries[0].success is True

        titles = [n.title for n in services.notifier.outbox]
        assert titles == ["Content Flagged"]


def test_open_auto_flag_is_reused():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        services.content.add_brand("u1", brand_id="b1", **ABUSIVE)
        first = _run(services, services.autoflagger.analyze_brand("b1", "u1"))
        second = _run(services, services.autoflagger.analyze_brand("b1", "u1"))
        assert second.moderation_queue_id == first.moderation_queue_id
        _, total = _run(services, services.queue.list_queue())
        assert total == 1


def test_cv_analysis_uses_profile_history():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        services.content.add_profile("u2", created_at=isoformat(utcnow() - timedelta(hours=2)))
        services.content.add_cv(
            "u2",
            "Senior Engineer",
            {"summary": "Ten years building payment systems", "skills": ["python", "go"]},
            cv_id="c1",
        )
        history = _run(services, services.autoflagger.get_user_history("u2"))
        assert history.account_age_days == 0
        assert history.content_count == 1
        assert history.previous_flags == 0

        result = _run(services, services.autoflagger.analyze("cv", "c1", "u2"))
        types = [f.type.value for f in result.risk_score.risk_factors]
        assert types == ["suspicious_patterns"]
        assert result.risk_score.overall_score == 25.0
        assert not result.flagged


def test_user_without_profile_has_no_history():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        assert _run(services, services.autoflagger.get_user_history("ghost")) is None


def test_missing_content_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        with pytest.raises(NotFoundError):
            _run(services, services.autoflagger.analyze_cv("nope", "u1"))


def test_batch_analyze_and_stats():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        services.content.add_brand("u1", brand_id="bad", **ABUSIVE)
        services.content.add_brand("u1", "Calm Co", description="We make quiet furniture", brand_id="good")

        progress = []
        batch = _run(
            services,
            services.autoflagger.batch_analyze(
                [
                    AnalysisTarget("brand", "bad", "u1"),
                    AnalysisTarget("brand", "good", "u1"),
                    AnalysisTarget("cv", "missing", "u1"),
                ],
                batch_size=2,
                on_progress=lambda done, total: progress.append(done),
            ),
        )
        assert batch.chunks == [2, 1]
        assert progress == [2, 3]
        assert [r.success for r in batch.results] == [True, True, False]
        assert batch.results[0].data.flagged
        assert not batch.results[1].data.flagged
        assert batch.summary.warnings == ["1 out of 3 items failed to process"]

        stats = _run(services, services.autoflagger.get_auto_flagging_stats(days=7))
        assert stats.total_analyzed == 2
        assert stats.total_flagged == 1
        assert stats.flag_rate == 50.0
        assert stats.avg_risk_score == 100.0
        assert stats.risk_factor_breakdown["profanity"] == 1
