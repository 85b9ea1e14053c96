"""Two-phase audit trail for administrative actions.

:meth:`AuditTrail.log_action` records intent before an action runs and
:meth:`AuditTrail.update_action_result` records the outcome afterwards.  An
entry that never receives its outcome stays visible through
:meth:`AuditTrail.get_incomplete_actions`.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from modguard.audit.models import AuditFilters, AuditLogEntry, AuditPage
from modguard.audit.store import AuditStore
from modguard.errors import ValidationError
from modguard.storage import call_store, isoformat, utcnow

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000

CSV_COLUMNS = [
    "id",
    "created_at",
    "completed_at",
    "actor_id",
    "action_type",
    "target_type",
    "target_id",
    "success",
    "duration_ms",
    "error_message",
    "details",
]


class AuditTrail:
    """The only writer of audit entries."""

    def __init__(
        self,
        store: AuditStore,
        store_timeout: float = 5.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._timeout = store_timeout
        self._clock = clock or utcnow

    async def _call(self, fn, *args, **kwargs):
        return await call_store(fn, *args, timeout=self._timeout, **kwargs)

    async def log_action(
        self,
        actor_id: Optional[str],
        action_type: str,
        target_type: str,
        target_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> str:
        """Write the pre-action record and return its id."""
        if not action_type or not target_type:
            raise ValidationError("action_type and target_type are required")
        entry = AuditLogEntry(
            id=uuid.uuid4().hex,
            actor_id=actor_id,
            action_type=action_type,
            target_type=target_type,
            target_id=target_id,
            details=dict(details or {}),
            created_at=isoformat(self._clock()),
        )
        await self._call(self._store.append, entry, write=True)
        logger.debug("Audit %s: %s on %s/%s", entry.id, action_type, target_type, target_id)
        return entry.id

    async def update_action_result(
        self,
        entry_id: str,
        success: bool,
        duration_ms: int,
        error_message: Optional[str] = None,
    ) -> AuditLogEntry:
        """Record the outcome.  Each entry accepts exactly one result."""
        return await self._call(
            self._store.patch,
            entry_id,
            {
                "success": bool(success),
                "duration_ms": int(duration_ms),
                "error_message": error_message,
                "completed_at": isoformat(self._clock()),
            },
            write=True,
        )

    async def get_entry(self, entry_id: str) -> Optional[AuditLogEntry]:
        return await self._call(self._store.get, entry_id)

    async def get_audit_log(
        self,
        filters: Optional[AuditFilters] = None,
        page: int = 1,
        limit: int = 50,
    ) -> AuditPage:
        """Return one page of entries, newest first, with the total count."""
        if page < 1:
            raise ValidationError("page must be at least 1", {"page": page})
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", {"limit": limit})
        entries = await self._call(self._store.query, filters or AuditFilters())
        start = (page - 1) * limit
        return AuditPage(entries=entries[start : start + limit], count=len(entries))

    async def get_incomplete_actions(self, older_than_seconds: float = 0) -> list[AuditLogEntry]:
        """Entries whose outcome was never recorded, oldest first."""
        cutoff = isoformat(self._clock() - timedelta(seconds=older_than_seconds))
        entries = await self._call(self._store.query, AuditFilters())
        stale = [e for e in entries if not e.complete and e.created_at <= cutoff]
        stale.reverse()
        return stale

    async def export(self, fmt: str = "json", filters: Optional[AuditFilters] = None) -> str:
        """Export matching entries as ``json`` or ``csv`` text."""
        if fmt not in ("json", "csv"):
            raise ValidationError(f"Unsupported export format '{fmt}'", {"allowed": ["json", "csv"]})
        entries = await self._call(self._store.query, filters or AuditFilters())

        if fmt == "csv":
            buf = io.StringIO()
            writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, lineterminator="\n")
            writer.writeheader()
            for e in entries:
                row = e.to_dict()
                row["details"] = json.dumps(e.details, sort_keys=True, default=str)
                writer.writerow({k: row[k] for k in CSV_COLUMNS})
            return buf.getvalue()

        return json.dumps([e.to_dict() for e in entries], indent=2, default=str)

    async def health_check(self) -> None:
        await self._call(self._store.ping)
