"""Tests for audited moderation actions wired through the container."""

import asyncio
import tempfile
import time
from pathlib import Path

import pytest

from modguard.audit.models import AuditFilters
from modguard.auth.permissions import Actor
from modguard.config import Settings
from modguard.container import build_services
from modguard.errors import NotFoundError, PermissionDeniedError, StateConflictError, ValidationError
from modguard.moderation.models import ModerationStatus
from modguard.moderation.store import QueueStore

MOD = Actor("mod1", "moderator")
ADMIN = Actor("admin1", "admin")
USER = Actor("user9", "user")


def _services(tmpdir: str, **settings):
    return build_services(Settings(data_dir=Path(tmpdir), **settings))


def _run(services, coro):
    async def runner():
        try:
            return await coro
        finally:
            await services.orchestrator.drain(timeout=2)

    return asyncio.run(runner())


def _flag(services, actor=MOD, content_id="b1", **kwargs):
    result = _run(
        services,
        services.actions.flag(actor, "brand", content_id, "author1", "Offensive tagline", **kwargs),
    )
    assert result.success, result.message
    return result.data


def test_flag_is_audited_and_recorded():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        item = _flag(services, priority=3)
        assert item.priority == 3
        assert item.flagged_by == "mod1"

        log = _run(services, services.audit.get_audit_log(AuditFilters(action_type="flag_content")))
        assert log.count == 1
        assert log.entries[0].success is True
        assert log.entries[0].target_id == "b1"

        assert services.analytics.counts()["content_flagged"] == 1
        assert [n.title for n in services.notifier.outbox] == ["Content Flagged"]


def test_plain_users_may_flag_but_not_moderate():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        item = _flag(services, actor=USER)

        result = _run(services, services.actions.moderate(USER, item.id, "approved"))
        assert not result.success
        assert isinstance(result.error, PermissionDeniedError)

        denied = _run(services, services.audit.get_entry(result.audit_id))
        assert denied.action_type == "moderate_content"
        assert denied.success is False
        still = _run(services, services.queue.get_item(item.id))
        assert still.status == ModerationStatus.PENDING


def test_approval_notifies_owner_and_publishes_event():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        item = _flag(services)
        seen = []
        services.events.add_event_listener("content:approved", lambda e: seen.append(e.data))

        result = _run(services, services.actions.moderate(MOD, item.id, "approved", "fine"))
        assert result.success
        assert result.data.status == ModerationStatus.APPROVED
        assert seen[0]["queue_id"] == item.id
        assert seen[0]["moderator_id"] == "mod1"
        owner = [n for n in services.notifier.outbox if n.user_id == "author1"]
        assert owner[0].title == "Content approved"


def test_escalated_items_need_senior_review():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        item = _flag(services)

        escalated = _run(services, services.actions.escalate(MOD, item.id, "Possible legal issue"))
        assert escalated.success
        assert escalated.data.priority == 5
        assert "Content Escalated" in [n.title for n in services.notifier.outbox]

        refused = _run(services, services.actions.moderate(MOD, item.id, "rejected"))
        assert isinstance(refused.error, PermissionDeniedError)

        decided = _run(services, services.actions.moderate(ADMIN, item.id, "rejected", "Confirmed"))
        assert decided.success
        assert decided.data.status == ModerationStatus.REJECTED

        again = _run(services, services.actions.moderate(ADMIN, item.id, "approved"))
        assert isinstance(again.error, StateConflictError)


def test_moderating_unknown_item():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        result = _run(services, services.actions.moderate(MOD, "missing", "approved"))
        assert isinstance(result.error, NotFoundError)
        assert result.message == NotFoundError.public_message


def test_unknown_status_is_rejected_up_front():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        with pytest.raises(ValidationError):
            _run(services, services.actions.moderate(MOD, "q1", "deleted"))


def test_bulk_moderation_in_chunks():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir)
        ids = [_flag(services, content_id=f"b{i}").id for i in range(4)]
        ids.insert(2, "missing")

        batch = _run(services, services.actions.bulk_moderate(MOD, ids, "rejected", batch_size=2))
        assert batch.chunks == [2, 2, 1]
        assert batch.summary.successful == 4
        assert batch.summary.failed == 1
        assert batch.summary.warnings == ["1 out of 5 items failed to process"]
        failed = [r for r in batch.results if not r.success]
        assert failed[0].item == "missing"
        assert isinstance(failed[0].error, NotFoundError)

        log = _run(services, services.audit.get_audit_log(AuditFilters(action_type="bulk_moderate_content")))
        assert log.count == 5
        stats = _run(services, services.queue.get_stats())
        assert stats.rejected_count == 4


def test_slow_transition_is_audited_as_success(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _services(tmpdir, store_timeout=0.2)
        item = _flag(services)

        original = QueueStore.compare_and_swap

        def slow_swap(self, *args, **kwargs):
            time.sleep(0.5)
            return original(self, *args, **kwargs)

        monkeypatch.setattr(QueueStore, "compare_and_swap", slow_swap)
        result = _run(services, services.actions.moderate(MOD, item.id, "approved"))
        assert result.success
        entry = _run(services, services.audit.get_entry(result.audit_id))
        assert entry.success is True
        stored = _run(services, services.queue.get_item(item.id))
        assert stored.status == ModerationStatus.APPROVED
