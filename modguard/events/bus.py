"""In-process publish/subscribe for cross-service reactions.

Listeners run in registration order.  Plain functions are called inline;
when a listener returns an awaitable it is scheduled as a task so a slow
subscriber never holds up the publisher.  A failing listener is logged and
the remaining listeners still run.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from modguard.storage import isoformat, utcnow

logger = logging.getLogger(__name__)


class EventName(str, Enum):
    """Events published by the pipeline.  Any other string is accepted too."""

    CONTENT_ANALYZED = "content:analyzed"
    CONTENT_FLAGGED = "content:flagged"
    CONTENT_APPROVED = "content:approved"
    CONTENT_REJECTED = "content:rejected"
    CONTENT_ESCALATED = "content:escalated"
    SYSTEM_CONFIG_CHANGED = "system:config_changed"
    SYSTEM_ALERT = "system:alert"


@dataclass(frozen=True)
class Event:
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""


Listener = Callable[[Event], Union[None, Awaitable[None]]]


def _event_key(name: Union[str, EventName]) -> str:
    return name.value if isinstance(name, EventName) else str(name)


class EventBus:
    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._listeners: dict[str, list[Listener]] = {}
        self._tasks: set[asyncio.Task] = set()

    def add_event_listener(self, name: Union[str, EventName], listener: Listener) -> None:
        self._listeners.setdefault(_event_key(name), []).append(listener)

    def remove_event_listener(self, name: Union[str, EventName], listener: Listener) -> None:
        """Remove one registration of *listener*; unknown listeners are ignored."""
        listeners = self._listeners.get(_event_key(name))
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listeners(self, name: Union[str, EventName]) -> list[Listener]:
        return list(self._listeners.get(_event_key(name), []))

    def emit_event(self, name: Union[str, EventName], data: Optional[dict[str, Any]] = None) -> Event:
        """Deliver an event to every listener registered for *name*."""
        event = Event(name=_event_key(name), data=dict(data or {}), timestamp=isoformat(utcnow()))
        if not self.enabled:
            return event
        for listener in self.listeners(event.name):
            try:
                outcome = listener(event)
            except Exception:
                logger.exception("Error in event listener for %s", event.name)
                continue
            if inspect.isawaitable(outcome):
                self._schedule(event, outcome)
        return event

    def _schedule(self, event: Event, awaitable: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to hand off to: run the coroutine to completion here.
            try:
                asyncio.run(self._guard(event, awaitable))
            except RuntimeError:
                logger.exception("Could not run async listener for %s", event.name)
            return
        task = loop.create_task(self._guard(event, awaitable))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, event: Event, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error in async event listener for %s", event.name)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for scheduled listener tasks.  Returns False on timeout."""
        if not self._tasks:
            return True
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("%d event listener task(s) still running after %ss", len(pending), timeout)
        return not pending
