"""Tests for the operation orchestrator: auditing, events, batches and health."""

import asyncio
import tempfile
from pathlib import Path

import pytest

from modguard.audit.models import AuditFilters
from modguard.audit.store import AuditStore
from modguard.audit.trail import AuditTrail
from modguard.config import ConfigService, Settings
from modguard.errors import DependencyError, NotFoundError, ValidationError
from modguard.events.bus import EventBus
from modguard.notifications.dispatcher import LoggingNotifier, Notification
from modguard.orchestrator.health import HealthChecker, overall_status
from modguard.orchestrator.models import HealthStatus, OperationContext
from modguard.orchestrator.orchestrator import OperationOrchestrator


class Harness:
    def __init__(self, tmpdir: str, audit=None, notifier=None, **settings):
        self.config = ConfigService(Settings(data_dir=Path(tmpdir), **settings))
        self.audit = audit or AuditTrail(AuditStore(Path(tmpdir) / "audit"))
        self.bus = EventBus()
        self.notifier = notifier or LoggingNotifier()
        self.orchestrator = OperationOrchestrator(self.audit, self.bus, self.notifier, self.config)
        self.events = []

    def listen(self, name: str) -> None:
        self.bus.add_event_listener(name, lambda e: self.events.append((e.name, e.data)))


class BrokenAudit:
    """Audit trail whose writes always fail."""

    def __init__(self, fail_log=True):
        self.fail_log = fail_log
        self.logged = 0

    async def log_action(self, *args, **kwargs):
        if self.fail_log:
            raise DependencyError("audit disk full")
        self.logged += 1
        return f"a{self.logged}"

    async def update_action_result(self, *args, **kwargs):
        raise DependencyError("audit disk full")


class FailingNotifier:
    async def send_admin_notification(self, notification):
        raise DependencyError("webhook down")

    async def send_user_notification(self, user_id, notification):
        raise DependencyError("webhook down")


def _ctx(**overrides) -> OperationContext:
    data = {"actor_id": "mod1", "action": "do_thing", "target_type": "widget", "target_id": "w1"}
    data.update(overrides)
    return OperationContext(**data)


async def _value(value):
    return value


async def _fail(error):
    raise error


# ── Single operations ────────────────────────────────────────────────


def test_success_is_audited_and_published():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        h.listen("do_thing:success")
        result = asyncio.run(h.orchestrator.execute_operation(lambda: _value(7), _ctx(metadata={"k": "v"})))

        assert result.success
        assert result.data == 7
        assert result.warnings == []
        entry = asyncio.run(h.audit.get_entry(result.audit_id))
        assert entry.success is True
        assert entry.actor_id == "mod1"
        assert entry.details == {"k": "v"}
        assert entry.duration_ms is not None
        name, data = h.events[0]
        assert name == "do_thing:success"
        assert data["result"] == 7
        assert data["audit_id"] == result.audit_id


def test_failure_is_audited_and_returned():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        h.listen("do_thing:error")
        err = NotFoundError("widget w1 does not exist")
        result = asyncio.run(h.orchestrator.execute_operation(lambda: _fail(err), _ctx(actor_role="moderator")))

        assert not result.success
        assert result.error is err
        assert result.message == NotFoundError.public_message
        entry = asyncio.run(h.audit.get_entry(result.audit_id))
        assert entry.success is False
        assert entry.error_message == "widget w1 does not exist"
        assert h.events[0][1]["error_code"] == "NOT_FOUND"


def test_admins_see_concrete_error_text():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        result = asyncio.run(
            h.orchestrator.execute_operation(
                lambda: _fail(ValidationError("priority 9 out of range")), _ctx(actor_role="admin")
            )
        )
        assert result.message == "priority 9 out of range"


def test_unexpected_exceptions_become_results():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        result = asyncio.run(h.orchestrator.execute_operation(lambda: _fail(KeyError("x")), _ctx()))
        assert not result.success
        assert isinstance(result.error, KeyError)


def test_audit_write_failure_blocks_operation():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, audit=BrokenAudit())
        ran = []

        async def op():
            ran.append(True)

        result = asyncio.run(h.orchestrator.execute_operation(op, _ctx()))
        assert ran == []
        assert not result.success
        assert isinstance(result.error, DependencyError)
        assert result.audit_id is None


def test_audit_patch_failure_is_a_warning():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, audit=BrokenAudit(fail_log=False))
        result = asyncio.run(h.orchestrator.execute_operation(lambda: _value("ok"), _ctx()))
        assert result.success
        assert result.audit_id == "a1"
        assert result.warnings == ["Audit result for a1 could not be recorded"]


def test_audit_can_be_disabled():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, audit=BrokenAudit(), enable_audit_logging=False)
        result = asyncio.run(h.orchestrator.execute_operation(lambda: _value(1), _ctx()))
        assert result.success
        assert result.audit_id is None


def test_operation_timeout():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, operation_timeout=0.05)

        async def slow():
            await asyncio.sleep(1)

        result = asyncio.run(h.orchestrator.execute_operation(slow, _ctx()))
        assert not result.success
        assert isinstance(result.error, DependencyError)
        entry = asyncio.run(h.audit.get_entry(result.audit_id))
        assert entry.success is False


def test_events_can_be_disabled():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, enable_events=False)
        h.listen("do_thing:success")
        asyncio.run(h.orchestrator.execute_operation(lambda: _value(1), _ctx()))
        assert h.events == []


# ── Notifications ────────────────────────────────────────────────────


def test_success_notification_is_sent_in_background():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        note = Notification(type="content_moderation", title="Done", message="thing done")

        async def main():
            result = await h.orchestrator.execute_operation(lambda: _value(1), _ctx(notification=note))
            assert await h.orchestrator.drain(timeout=1)
            return result

        assert asyncio.run(main()).success
        assert [n.title for n in h.notifier.outbox] == ["Done"]


def test_error_notification_only_when_requested():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)

        async def main():
            await h.orchestrator.execute_operation(lambda: _fail(ValidationError("a")), _ctx())
            await h.orchestrator.execute_operation(
                lambda: _fail(ValidationError("b")), _ctx(notify_on_error=True)
            )
            await h.orchestrator.drain(timeout=1)

        asyncio.run(main())
        assert len(h.notifier.outbox) == 1
        assert h.notifier.outbox[0].title == "do_thing failed"
        assert h.notifier.outbox[0].message == "b"


def test_notifier_failure_does_not_fail_operation():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, notifier=FailingNotifier())
        note = Notification(type="x", title="Done", message="m")

        async def main():
            result = await h.orchestrator.execute_operation(lambda: _value(1), _ctx(notification=note))
            await h.orchestrator.drain(timeout=1)
            return result

        assert asyncio.run(main()).success


def test_notifications_can_be_disabled():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, enable_notifications=False)
        note = Notification(type="x", title="Done", message="m")

        async def main():
            await h.orchestrator.execute_operation(lambda: _value(1), _ctx(notification=note))
            await h.orchestrator.drain(timeout=1)

        asyncio.run(main())
        assert h.notifier.outbox == []


# ── Batches ──────────────────────────────────────────────────────────


def test_batch_runs_in_chunks_with_progress():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        progress = []
        batch = asyncio.run(
            h.orchestrator.execute_batch_operation(
                ["a", "b", "c", "d", "e"],
                _value,
                _ctx(action="touch", target_id=None),
                batch_size=2,
                on_progress=lambda done, total: progress.append((done, total)),
            )
        )
        assert batch.chunks == [2, 2, 1]
        assert progress == [(2, 5), (4, 5), (5, 5)]
        assert [r.data for r in batch.results] == ["a", "b", "c", "d", "e"]
        assert batch.summary.successful == 5
        assert batch.summary.warnings == []

        entries = asyncio.run(h.audit.get_audit_log(AuditFilters(action_type="touch")))
        assert entries.count == 5
        assert sorted(e.target_id for e in entries.entries) == ["a", "b", "c", "d", "e"]


def test_batch_uses_configured_size():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, batch_size=3)
        batch = asyncio.run(h.orchestrator.execute_batch_operation(range(7), _value, _ctx()))
        assert batch.chunks == [3, 3, 1]


def test_batch_partial_failure():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)

        async def op(n):
            if n == 2:
                raise ValidationError("two is not allowed")
            return n * 10

        batch = asyncio.run(h.orchestrator.execute_batch_operation([1, 2, 3], op, _ctx(), batch_size=3))
        assert [r.success for r in batch.results] == [True, False, True]
        assert batch.results[2].data == 30
        assert batch.summary.failed == 1
        assert batch.summary.warnings == ["1 out of 3 items failed to process"]


def test_batch_target_id_failure_only_fails_that_item():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)

        def target_of(item):
            return item["id"]

        batch = asyncio.run(
            h.orchestrator.execute_batch_operation(
                [{"id": "a"}, {}, {"id": "c"}],
                _value,
                _ctx(action="touch"),
                batch_size=3,
                get_target_id=target_of,
            )
        )
        assert [r.success for r in batch.results] == [True, False, True]
        assert isinstance(batch.results[1].error, KeyError)
        assert batch.results[1].audit_id is None
        assert batch.summary.warnings == ["1 out of 3 items failed to process"]


def test_batch_all_failed():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        batch = asyncio.run(
            h.orchestrator.execute_batch_operation(
                [1, 2], lambda n: _fail(ValidationError("no")), _ctx(), batch_size=1
            )
        )
        assert batch.summary.failed == 2
        assert batch.summary.warnings == ["All 2 items failed to process"]


def test_batch_abort_skips_remaining_chunks():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)

        async def main():
            abort = asyncio.Event()
            return await h.orchestrator.execute_batch_operation(
                [1, 2, 3, 4, 5],
                _value,
                _ctx(),
                batch_size=2,
                on_progress=lambda done, total: abort.set(),
                abort=abort,
            )

        batch = asyncio.run(main())
        assert batch.chunks == [2]
        assert batch.summary.successful == 2
        assert batch.summary.skipped == 3
        assert [r.skipped for r in batch.results] == [False, False, True, True, True]
        assert batch.summary.warnings == ["3 items were skipped after abort"]


def test_batch_rejects_bad_size():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        with pytest.raises(ValidationError):
            asyncio.run(h.orchestrator.execute_batch_operation([1], _value, _ctx(), batch_size=-1))


# ── Health and configuration ─────────────────────────────────────────


class Probe:
    def __init__(self, error=None, delay=0.0):
        self.error = error
        self.delay = delay

    async def health_check(self):
        await asyncio.sleep(self.delay)
        if self.error:
            raise self.error


def test_overall_status_thresholds():
    assert overall_status(0, 0) == HealthStatus.HEALTHY
    assert overall_status(5, 5) == HealthStatus.HEALTHY
    assert overall_status(7, 10) == HealthStatus.DEGRADED
    assert overall_status(6, 10) == HealthStatus.UNHEALTHY


def test_health_checker_marks_failures_down():
    checker = HealthChecker(
        {
            "audit": Probe(),
            "plain": object(),
            "broken": Probe(error=DependencyError("disk gone")),
            "slow": Probe(delay=1),
        },
        timeout=0.05,
    )
    report = asyncio.run(checker.run())
    assert report.services["audit"].status == "up"
    assert report.services["plain"].status == "up"
    assert report.services["broken"].error == "disk gone"
    assert report.services["slow"].status == "down"
    assert report.overall == HealthStatus.UNHEALTHY
    assert report.to_dict()["overall"] == "unhealthy"


def test_health_degraded():
    checker = HealthChecker(
        {"a": Probe(), "b": Probe(), "c": Probe(), "d": Probe(error=RuntimeError("x"))}, timeout=1
    )
    assert asyncio.run(checker.run()).overall == HealthStatus.DEGRADED


def test_update_config_emits_only_changed_keys():
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        h.listen("system:config_changed")
        settings = h.orchestrator.update_config(actor_id="root", batch_size=4, enable_events=True)
        assert settings.batch_size == 4
        assert h.orchestrator.get_config()["batch_size"] == 4
        assert len(h.events) == 1
        assert h.events[0][1] == {"key": "batch_size", "old_value": 10, "new_value": 4, "admin_id": "root"}
