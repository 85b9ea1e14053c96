"""File-based moderation analytics.

Stores event records one-per-line in monthly files under
``<base_dir>/YYYY-MM.jsonl``.  The recorder is fed by event subscribers and
queried by the CLI and HTTP hosts.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Literal, Optional

from modguard.storage import call_store, isoformat, utcnow

logger = logging.getLogger(__name__)


@dataclass
class AnalyticsEvent:
    """One recorded occurrence, e.g. ``content / content_flagged``."""

    category: str
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = uuid.uuid4().hex[:12]
        if not self.timestamp:
            self.timestamp = isoformat(utcnow())


Period = Literal["today", "week", "month", "all"]


def _period_start(period: Period, now: datetime) -> Optional[datetime]:
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return midnight
    if period == "week":
        return midnight - timedelta(days=midnight.weekday())
    if period == "month":
        return midnight.replace(day=1)
    return None


class AnalyticsRecorder:
    def __init__(self, base_dir: str | Path, store_timeout: float = 5.0) -> None:
        self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._timeout = store_timeout
        self._lock = threading.Lock()

    def _records_file(self, dt: Optional[datetime] = None) -> Path:
        dt = dt or datetime.now(timezone.utc)
        return self._base / f"{dt.strftime('%Y-%m')}.jsonl"

    # -- recording -----------------------------------------------------------

    def record_event(
        self, category: str, name: str, data: Optional[dict[str, Any]] = None
    ) -> AnalyticsEvent:
        event = AnalyticsEvent(category=category, name=name, data=dict(data or {}))
        with self._lock, self._records_file().open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(asdict(event), default=str) + "\n")
        return event

    async def record(
        self, category: str, name: str, data: Optional[dict[str, Any]] = None
    ) -> AnalyticsEvent:
        """Async variant used by event subscribers."""
        return await call_store(
            self.record_event, category, name, data, timeout=self._timeout, write=True
        )

    # -- querying ------------------------------------------------------------

    def _load_all(self) -> list[AnalyticsEvent]:
        events: list[AnalyticsEvent] = []
        for path in sorted(self._base.glob("*.jsonl")):
            for line in path.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(AnalyticsEvent(**json.loads(line)))
                except (json.JSONDecodeError, TypeError):
                    logger.warning("Skipping unreadable analytics record in %s", path.name)
        return events

    def get_events(
        self,
        period: Period = "all",
        category: Optional[str] = None,
        name: Optional[str] = None,
        since: Optional[str] = None,
    ) -> list[AnalyticsEvent]:
        """Return events, most recent first.  *since* is an ISO timestamp."""
        events = self._load_all()
        start = _period_start(period, datetime.now(timezone.utc))
        if start is not None:
            start_iso = isoformat(start)
            events = [e for e in events if e.timestamp >= start_iso]
        if since:
            events = [e for e in events if e.timestamp >= since]
        if category:
            events = [e for e in events if e.category == category]
        if name:
            events = [e for e in events if e.name == name]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events

    def counts(self, period: Period = "all", category: Optional[str] = None) -> dict[str, int]:
        """Number of events per name."""
        return dict(Counter(e.name for e in self.get_events(period, category)))

    async def get_counts(self, period: Period = "all", category: Optional[str] = None) -> dict[str, int]:
        return await call_store(self.counts, period, category, timeout=self._timeout)

    async def health_check(self) -> None:
        def probe() -> None:
            if not self._base.is_dir():
                raise OSError(f"Analytics directory {self._base} is missing")

        await call_store(probe, timeout=self._timeout)
