"""File-based JSON storage for moderation queue items.

Storage path: ``<base_dir>/queue.json`` holding a list of item dicts.  Every
read-modify-write happens under a lock so the compare-and-swap used for state
transitions is atomic within the process.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Optional

from modguard.errors import NotFoundError, ValidationError
from modguard.moderation.models import (
    SORT_FIELDS,
    ModerationQueueItem,
    ModerationStatus,
    QueueFilters,
    QueuePage,
)
from modguard.storage import read_json, write_json


class QueueStore:
    """Persistent queue store backed by a single JSON file."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._path = self._base / "queue.json"
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self) -> list[dict[str, Any]]:
        data = read_json(self._path, [])
        return data if isinstance(data, list) else []

    def _items(self) -> list[ModerationQueueItem]:
        return [ModerationQueueItem.from_dict(d) for d in self._load()]

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def insert(self, item: ModerationQueueItem) -> ModerationQueueItem:
        with self._lock:
            rows = self._load()
            rows.append(item.to_dict())
            write_json(self._path, rows)
        return item

    def get(self, item_id: str) -> Optional[ModerationQueueItem]:
        for row in self._load():
            if row.get("id") == item_id:
                return ModerationQueueItem.from_dict(row)
        return None

    def compare_and_swap(
        self,
        item_id: str,
        expected_status: ModerationStatus,
        updates: dict[str, Any],
    ) -> Optional[ModerationQueueItem]:
        """Apply *updates* only if the item is still in *expected_status*.

        Returns the updated item, or None when another writer changed the
        status first.  Raises NotFoundError for unknown ids.
        """
        with self._lock:
            rows = self._load()
            for row in rows:
                if row.get("id") != item_id:
                    continue
                if row.get("status") != ModerationStatus(expected_status).value:
                    return None
                for key, value in updates.items():
                    row[key] = value.value if isinstance(value, ModerationStatus) else value
                write_json(self._path, rows)
                return ModerationQueueItem.from_dict(row)
        raise NotFoundError(f"Queue item {item_id} not found", {"queue_id": item_id})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def all(self) -> list[ModerationQueueItem]:
        return self._items()

    def list_items(self, filters: QueueFilters, page: QueuePage) -> tuple[list[ModerationQueueItem], int]:
        """Return one page of matching items and the total match count."""
        if page.sort_by not in SORT_FIELDS:
            raise ValidationError(f"Cannot sort by '{page.sort_by}'", {"allowed": list(SORT_FIELDS)})
        if page.sort_order not in ("asc", "desc"):
            raise ValidationError(f"Invalid sort order '{page.sort_order}'")

        items = self.find(filters)
        descending = page.sort_order == "desc"
        if page.sort_by == "priority":
            # Ties on priority show the freshest item first.
            items.sort(key=lambda i: i.created_at, reverse=True)
            items.sort(key=lambda i: i.priority, reverse=descending)
        else:
            items.sort(key=lambda i: getattr(i, page.sort_by), reverse=descending)

        total = len(items)
        return items[page.offset : page.offset + page.limit], total

    def find(self, filters: QueueFilters) -> list[ModerationQueueItem]:
        """Return every item matching *filters*, unordered."""
        items = self._items()
        f = filters
        if f.status is not None:
            items = [i for i in items if i.status == ModerationStatus(f.status)]
        if f.content_type:
            items = [i for i in items if i.content_type == f.content_type]
        if f.priority_min is not None:
            items = [i for i in items if i.priority >= f.priority_min]
        if f.risk_score_min is not None:
            items = [i for i in items if i.risk_score >= f.risk_score_min]
        if f.auto_flagged is not None:
            items = [i for i in items if i.auto_flagged == f.auto_flagged]
        if f.date_from:
            items = [i for i in items if i.created_at >= f.date_from]
        if f.date_to:
            items = [i for i in items if i.created_at <= f.date_to]
        if f.user_id:
            items = [i for i in items if i.user_id == f.user_id]
        if f.moderator_id:
            items = [i for i in items if i.moderator_id == f.moderator_id]
        return items

    def list_for_content(self, content_type: str, content_id: str) -> list[ModerationQueueItem]:
        items = [
            i for i in self._items() if i.content_type == content_type and i.content_id == content_id
        ]
        items.sort(key=lambda i: i.created_at, reverse=True)
        return items

    def count_for_user(self, user_id: str) -> int:
        return sum(1 for row in self._load() if row.get("user_id") == user_id)

    def ping(self) -> None:
        """Raise if the backing file cannot be read."""
        self._load()
