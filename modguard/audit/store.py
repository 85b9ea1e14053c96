"""Append-only JSONL storage for the audit trail.

One file per UTC day under ``<base_dir>/``.  Entries are never rewritten: a
result patch is appended as its own record (``{"patch_of": <id>, ...}``) and
merged into the entry when the log is read back.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from modguard.audit.models import AuditFilters, AuditLogEntry
from modguard.errors import NotFoundError, StateConflictError

logger = logging.getLogger(__name__)

PATCH_FIELDS = ("success", "duration_ms", "error_message", "completed_at")


class AuditStore:
    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _log_file_for_date(self, dt: datetime) -> Path:
        return self._base_dir / f"{dt.strftime('%Y-%m-%d')}.jsonl"

    def _current_log_file(self) -> Path:
        return self._log_file_for_date(datetime.now(timezone.utc))

    def _append(self, record: dict[str, Any]) -> None:
        with self._current_log_file().open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, default=str) + "\n")

    def _records(self) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for path in sorted(self._base_dir.glob("*.jsonl")):
            for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
                if not line.strip():
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    # A torn final line from a crash loses one record, not the log.
                    logger.warning("Skipping unreadable audit record %s:%d", path.name, lineno)
        return records

    def _merged(self) -> dict[str, AuditLogEntry]:
        entries: dict[str, AuditLogEntry] = {}
        patches: list[dict[str, Any]] = []
        for record in self._records():
            if "patch_of" in record:
                patches.append(record)
            else:
                entry = AuditLogEntry.from_dict(record)
                entries[entry.id] = entry
        for patch in patches:
            entry = entries.get(patch["patch_of"])
            if entry is None or entry.complete:
                continue
            for name in PATCH_FIELDS:
                setattr(entry, name, patch.get(name))
        return entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        with self._lock:
            self._append(entry.to_dict())
        return entry

    def patch(self, entry_id: str, result: dict[str, Any]) -> AuditLogEntry:
        """Append the one result patch for *entry_id*."""
        with self._lock:
            entry = self._merged().get(entry_id)
            if entry is None:
                raise NotFoundError(f"Audit entry {entry_id} not found", {"entry_id": entry_id})
            if entry.complete:
                raise StateConflictError(
                    f"Audit entry {entry_id} already has a result", {"entry_id": entry_id}
                )
            record = {"patch_of": entry_id}
            record.update({name: result.get(name) for name in PATCH_FIELDS})
            self._append(record)
        for name in PATCH_FIELDS:
            setattr(entry, name, record[name])
        return entry

    def get(self, entry_id: str) -> Optional[AuditLogEntry]:
        return self._merged().get(entry_id)

    def query(self, filters: AuditFilters) -> list[AuditLogEntry]:
        """Return matching entries, newest first."""
        entries = list(self._merged().values())
        f = filters
        if f.actor_id:
            entries = [e for e in entries if e.actor_id == f.actor_id]
        if f.action_type:
            entries = [e for e in entries if e.action_type == f.action_type]
        if f.target_type:
            entries = [e for e in entries if e.target_type == f.target_type]
        if f.target_id:
            entries = [e for e in entries if e.target_id == f.target_id]
        if f.date_from:
            entries = [e for e in entries if e.created_at >= f.date_from]
        if f.date_to:
            entries = [e for e in entries if e.created_at <= f.date_to]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries

    def ping(self) -> None:
        if not self._base_dir.is_dir():
            raise OSError(f"Audit directory {self._base_dir} is missing")
