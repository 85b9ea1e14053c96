"""Default cross-service reactions to pipeline events.

Content events are recorded in analytics; flag, escalation and alert events
also notify staff.  Every handler is async so the publisher never waits on
disk or network.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from modguard.analytics.recorder import AnalyticsRecorder
from modguard.events.bus import Event, EventBus, EventName
from modguard.notifications.dispatcher import Notification

logger = logging.getLogger(__name__)

_CONTENT_EVENTS = (
    EventName.CONTENT_ANALYZED,
    EventName.CONTENT_FLAGGED,
    EventName.CONTENT_APPROVED,
    EventName.CONTENT_REJECTED,
    EventName.CONTENT_ESCALATED,
)


def _analytics_name(event: Event) -> str:
    # "content:flagged" -> "content_flagged"
    return event.name.replace(":", "_")


def register_default_subscribers(
    bus: EventBus,
    analytics: AnalyticsRecorder,
    notifier: Any,
    notifications_enabled: Callable[[], bool] = lambda: True,
) -> list[tuple[EventName, Callable[[Event], Any]]]:
    """Wire analytics and notifications to the bus.

    Returns the registrations so callers can remove them again.
    """
    registrations: list[tuple[EventName, Callable[[Event], Any]]] = []

    async def record_content(event: Event) -> None:
        await analytics.record("content", _analytics_name(event), event.data)

    async def record_system(event: Event) -> None:
        await analytics.record("system", _analytics_name(event), event.data)

    async def notify_flagged(event: Event) -> None:
        if not notifications_enabled() or event.data.get("auto_flagged"):
            # Automatic flags carry their own notification through the orchestrator.
            return
        await notifier.send_admin_notification(
            Notification(
                type="content_moderation",
                title="Content Flagged",
                message=f"{event.data.get('content_type', 'Content')} content has been flagged for review",
                recipients=["moderator", "admin"],
                data={"queue_id": event.data.get("queue_id")},
            )
        )

    async def notify_config_changed(event: Event) -> None:
        if not notifications_enabled():
            return
        await notifier.send_admin_notification(
            Notification(
                type="system_config",
                title="Configuration Changed",
                message=f'System configuration "{event.data.get("key")}" has been updated',
                recipients=["admin", "super_admin"],
            )
        )

    async def notify_alert(event: Event) -> None:
        level = event.data.get("level", "info")
        if not notifications_enabled() or level not in ("warning", "error"):
            return
        await notifier.send_admin_notification(
            Notification(
                type="system_alert",
                title=f"System {level.upper()}",
                message=str(event.data.get("message", "")),
                recipients=["admin", "super_admin"],
                priority="high" if level == "error" else "medium",
                data={"details": event.data.get("details")},
            )
        )

    for name in _CONTENT_EVENTS:
        registrations.append((name, record_content))
    registrations.append((EventName.CONTENT_FLAGGED, notify_flagged))
    for name in (EventName.SYSTEM_CONFIG_CHANGED, EventName.SYSTEM_ALERT):
        registrations.append((name, record_system))
    registrations.append((EventName.SYSTEM_CONFIG_CHANGED, notify_config_changed))
    registrations.append((EventName.SYSTEM_ALERT, notify_alert))

    for name, listener in registrations:
        bus.add_event_listener(name, listener)
    logger.debug("Registered %d default event subscribers", len(registrations))
    return registrations
