"""Wraps administrative operations with auditing, events and notifications.

Every call to :meth:`OperationOrchestrator.execute_operation` runs the same
sequence:

1. write the pre-action audit record (the operation does not run if this
   fails)
2. run the operation, bounded by ``operation_timeout``
3. patch the audit record with the outcome
4. emit ``{action}:success`` or ``{action}:error``
5. dispatch the notification in the background

The orchestrator never raises for a failed operation; errors come back in
the :class:`OperationResult`.  There is a crash window between steps 1 and 3;
records left without an outcome are listed by
``AuditTrail.get_incomplete_actions``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, TypeVar

from modguard.audit.trail import AuditTrail
from modguard.auth.permissions import Role
from modguard.config import ConfigService, Settings
from modguard.errors import DependencyError, ValidationError, user_message
from modguard.events.bus import EventBus, EventName
from modguard.notifications.dispatcher import Notification
from modguard.orchestrator.health import HealthChecker
from modguard.orchestrator.models import (
    BatchItemResult,
    BatchResult,
    BatchSummary,
    HealthReport,
    OperationContext,
    OperationResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
I = TypeVar("I")

ProgressCallback = Callable[[int, int], None]


def _is_admin(role: Optional[str]) -> bool:
    try:
        return role is not None and Role(role).is_admin
    except ValueError:
        return False


class OperationOrchestrator:
    def __init__(
        self,
        audit: AuditTrail,
        events: EventBus,
        notifier: Any,
        config: ConfigService,
        health_services: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._audit = audit
        self._events = events
        self._notifier = notifier
        self._config = config
        self._health_services = dict(health_services or {})
        self._tasks: set[asyncio.Task] = set()

    @property
    def settings(self) -> Settings:
        return self._config.settings

    # ------------------------------------------------------------------
    # Single operations
    # ------------------------------------------------------------------

    async def execute_operation(
        self,
        operation: Callable[[], Awaitable[T]],
        context: OperationContext,
    ) -> OperationResult[T]:
        settings = self.settings
        start = time.monotonic()
        audit_id: Optional[str] = None
        warnings: list[str] = []

        if settings.enable_audit_logging:
            try:
                audit_id = await self._audit.log_action(
                    context.actor_id,
                    context.action,
                    context.target_type,
                    context.target_id,
                    context.metadata,
                )
            except Exception as exc:
                logger.error("Audit write failed for %s; operation not executed: %s", context.action, exc)
                error = DependencyError(
                    f"Audit log unavailable, {context.action} was not executed: {exc}",
                    {"action": context.action},
                )
                return self._finish_failure(context, error, None, start, warnings)

        try:
            data = await asyncio.wait_for(operation(), timeout=settings.operation_timeout)
        except asyncio.TimeoutError:
            error = DependencyError(
                f"{context.action} timed out after {settings.operation_timeout}s",
                {"action": context.action},
            )
        except Exception as exc:
            error = exc
        else:
            duration_ms = self._elapsed_ms(start)
            await self._patch_audit(audit_id, True, duration_ms, None, warnings)
            self.emit(
                f"{context.action}:success",
                {"context": context.to_dict(), "result": data, "duration_ms": duration_ms, "audit_id": audit_id},
            )
            if context.notification is not None:
                self.notify(context.notification)
            return OperationResult(
                success=True,
                data=data,
                message=f"{context.action} completed successfully",
                warnings=warnings,
                audit_id=audit_id,
                duration_ms=duration_ms,
            )

        error_message = str(error) or error.__class__.__name__
        await self._patch_audit(audit_id, False, self._elapsed_ms(start), error_message, warnings)
        return self._finish_failure(context, error, audit_id, start, warnings)

    def _finish_failure(
        self,
        context: OperationContext,
        error: BaseException,
        audit_id: Optional[str],
        start: float,
        warnings: list[str],
    ) -> OperationResult:
        duration_ms = self._elapsed_ms(start)
        logger.warning("%s failed: %s", context.action, error)
        self.emit(
            f"{context.action}:error",
            {
                "context": context.to_dict(),
                "error": str(error),
                "error_code": getattr(error, "code", error.__class__.__name__),
                "duration_ms": duration_ms,
                "audit_id": audit_id,
            },
        )
        if context.notify_on_error:
            self.notify(
                Notification(
                    type="operation_failed",
                    title=f"{context.action} failed",
                    message=user_message(error, admin=True),
                    recipients=["admin", "super_admin"],
                    priority="high",
                    data=context.to_dict(),
                )
            )
        return OperationResult(
            success=False,
            error=error,
            message=user_message(error, admin=_is_admin(context.actor_role)),
            warnings=warnings,
            audit_id=audit_id,
            duration_ms=duration_ms,
        )

    async def _patch_audit(
        self,
        audit_id: Optional[str],
        success: bool,
        duration_ms: int,
        error_message: Optional[str],
        warnings: list[str],
    ) -> None:
        if audit_id is None:
            return
        try:
            await self._audit.update_action_result(audit_id, success, duration_ms, error_message)
        except Exception as exc:
            logger.error("Could not record outcome for audit entry %s: %s", audit_id, exc)
            warnings.append(f"Audit result for {audit_id} could not be recorded")

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)

    def emit(self, name: str, data: dict[str, Any]) -> None:
        if self.settings.enable_events:
            self._events.emit_event(name, data)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notify(self, notification: Notification) -> None:
        if not self.settings.enable_notifications:
            return
        task = asyncio.get_running_loop().create_task(self._dispatch(notification))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, notification: Notification) -> None:
        timeout = self.settings.notification_timeout
        try:
            if notification.user_id:
                send = self._notifier.send_user_notification(notification.user_id, notification)
            else:
                send = self._notifier.send_admin_notification(notification)
            await asyncio.wait_for(send, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Notification '%s' timed out after %ss", notification.title, timeout)
        except Exception as exc:
            logger.warning("Notification '%s' failed: %s", notification.title, exc)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for background notifications and event listeners."""
        ok = True
        if self._tasks:
            _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
            ok = not pending
        return await self._events.drain(timeout) and ok

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def execute_batch_operation(
        self,
        items: Iterable[I],
        operation: Callable[[I], Awaitable[T]],
        context: OperationContext,
        batch_size: Optional[int] = None,
        get_target_id: Optional[Callable[[I], str]] = None,
        on_progress: Optional[ProgressCallback] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> BatchResult[I, T]:
        """Run *operation* for each item in sequential, internally concurrent chunks.

        Every item is wrapped by :meth:`execute_operation`, so each gets its
        own audit entry and events.  A failed item never cancels its
        siblings.  When *abort* is set, chunks that have not started are
        skipped and their items reported as skipped.
        """
        items = list(items)
        size = batch_size or self.settings.batch_size
        if size < 1:
            raise ValidationError("batch_size must be at least 1", {"batch_size": size})
        total = len(items)
        results: list[BatchItemResult[I, T]] = []
        chunks: list[int] = []

        for offset in range(0, total, size):
            chunk = items[offset : offset + size]
            if abort is not None and abort.is_set():
                results.extend(BatchItemResult(item=item, success=False, skipped=True) for item in chunk)
                continue

            async def run(item: I) -> BatchItemResult[I, T]:
                try:
                    target = get_target_id(item) if get_target_id else str(item)
                except Exception as exc:
                    logger.warning("Could not resolve target id for batch item %r: %s", item, exc)
                    return BatchItemResult(item=item, success=False, error=exc)
                item_ctx = replace(context, target_id=target, metadata=dict(context.metadata))
                outcome = await self.execute_operation(lambda: operation(item), item_ctx)
                return BatchItemResult(
                    item=item,
                    success=outcome.success,
                    data=outcome.data,
                    error=outcome.error,
                    audit_id=outcome.audit_id,
                )

            results.extend(await asyncio.gather(*(run(item) for item in chunk)))
            chunks.append(len(chunk))
            if on_progress is not None:
                try:
                    on_progress(min(offset + size, total), total)
                except Exception:
                    logger.exception("Progress callback failed")

        summary = BatchSummary(total=total)
        for r in results:
            if r.skipped:
                summary.skipped += 1
            elif r.success:
                summary.successful += 1
            else:
                summary.failed += 1
        if summary.failed and summary.failed < total:
            summary.warnings.append(f"{summary.failed} out of {total} items failed to process")
        elif summary.failed and summary.failed == total:
            summary.warnings.append(f"All {total} items failed to process")
        if summary.skipped:
            summary.warnings.append(f"{summary.skipped} items were skipped after abort")
        return BatchResult(results=results, summary=summary, chunks=chunks)

    # ------------------------------------------------------------------
    # Health and configuration
    # ------------------------------------------------------------------

    async def perform_health_check(self) -> HealthReport:
        checker = HealthChecker(self._health_services, timeout=self.settings.health_check_timeout)
        report = await checker.run()
        if report.overall.value != "healthy":
            down = [n for n, s in report.services.items() if s.status == "down"]
            logger.warning("Health check %s; down: %s", report.overall.value, ", ".join(down))
        return report

    def get_config(self) -> dict[str, Any]:
        return self.settings.to_dict()

    def update_config(self, actor_id: Optional[str] = None, **changes: Any) -> Settings:
        before = self.settings.to_dict()
        settings = self._config.update(**changes)
        after = settings.to_dict()
        for key in changes:
            if before.get(key) != after.get(key):
                self.emit(
                    EventName.SYSTEM_CONFIG_CHANGED.value,
                    {"key": key, "old_value": before.get(key), "new_value": after.get(key), "admin_id": actor_id},
                )
        return settings
