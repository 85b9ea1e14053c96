"""Explicit wiring of the pipeline's services.

Hosts call :func:`build_services` once and pass the resulting
:class:`Services` around; nothing in the package keeps module-level
instances.

Layout under ``settings.data_dir``::

    queue/queue.json        moderation queue
    audit/YYYY-MM-DD.jsonl  audit trail
    analytics/YYYY-MM.jsonl analytics events
    content/*.json          brands, CVs and profiles
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from modguard.analysis.analyzer import RiskAnalyzer
from modguard.analysis.autoflag import AutoFlagger
from modguard.analytics.recorder import AnalyticsRecorder
from modguard.audit.store import AuditStore
from modguard.audit.trail import AuditTrail
from modguard.config import ConfigService, Settings, load_settings
from modguard.content.store import ContentStore
from modguard.events.bus import EventBus
from modguard.events.subscribers import register_default_subscribers
from modguard.moderation.queue import ModerationQueue
from modguard.moderation.store import QueueStore
from modguard.notifications.dispatcher import LoggingNotifier, WebhookNotifier
from modguard.orchestrator.actions import ModerationActions
from modguard.orchestrator.orchestrator import OperationOrchestrator


@dataclass
class Services:
    config: ConfigService
    analyzer: RiskAnalyzer
    queue: ModerationQueue
    audit: AuditTrail
    events: EventBus
    notifier: Any
    analytics: AnalyticsRecorder
    content: ContentStore
    orchestrator: OperationOrchestrator
    actions: ModerationActions
    autoflagger: AutoFlagger

    @property
    def settings(self) -> Settings:
        return self.config.settings


def build_notifier(settings: Settings) -> Any:
    if settings.webhook_url:
        return WebhookNotifier(
            settings.webhook_url,
            secret=settings.webhook_secret,
            timeout=settings.notification_timeout,
        )
    return LoggingNotifier()


def build_services(settings: Optional[Settings] = None, notifier: Any = None) -> Services:
    """Create every service for one process from *settings*."""
    settings = settings or load_settings()
    config = ConfigService(settings)
    data_dir = settings.data_dir
    timeout = settings.store_timeout

    queue = ModerationQueue(QueueStore(data_dir / "queue"), store_timeout=timeout)
    audit = AuditTrail(AuditStore(data_dir / "audit"), store_timeout=timeout)
    analytics = AnalyticsRecorder(data_dir / "analytics", store_timeout=timeout)
    content = ContentStore(data_dir / "content")
    notifier = notifier if notifier is not None else build_notifier(settings)
    events = EventBus(enabled=settings.enable_events)

    orchestrator = OperationOrchestrator(
        audit,
        events,
        notifier,
        config,
        health_services={
            "audit": audit,
            "moderation": queue,
            "analytics": analytics,
            "config": config,
            "notification": notifier,
        },
    )
    register_default_subscribers(
        events, analytics, notifier, notifications_enabled=lambda: config.settings.enable_notifications
    )
    analyzer = RiskAnalyzer()
    return Services(
        config=config,
        analyzer=analyzer,
        queue=queue,
        audit=audit,
        events=events,
        notifier=notifier,
        analytics=analytics,
        content=content,
        orchestrator=orchestrator,
        actions=ModerationActions(orchestrator, queue),
        autoflagger=AutoFlagger(
            analyzer, queue, content, orchestrator, analytics=analytics, store_timeout=timeout
        ),
    )
