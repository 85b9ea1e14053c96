"""File-based JSON storage for user content and profiles.

Storage path: ``<base_dir>/`` with:
- ``brands.json`` -- list of brand dicts
- ``cvs.json`` -- list of CV dicts
- ``profiles.json`` -- list of user profile dicts
"""

from __future__ import annotations

import threading
import uuid
from pathlib import Path
from typing import Any, Optional

from modguard.analysis.models import ContentType
from modguard.errors import ValidationError
from modguard.storage import isoformat, read_json, utcnow, write_json


class ContentStore:
    def __init__(self, base_dir: str | Path) -> None:
        self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._paths = {
            ContentType.BRAND: self._base / "brands.json",
            ContentType.CV: self._base / "cvs.json",
        }
        self._profiles_path = self._base / "profiles.json"
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _path(self, content_type: str | ContentType) -> Path:
        try:
            return self._paths[ContentType(content_type)]
        except ValueError:
            raise ValidationError(f"Unknown content type '{content_type}'") from None

    def _load(self, path: Path) -> list[dict[str, Any]]:
        data = read_json(path, [])
        return data if isinstance(data, list) else []

    def _append(self, path: Path, record: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            rows = self._load(path)
            rows.append(record)
            write_json(path, rows)
        return record

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def add_brand(
        self,
        user_id: str,
        name: str,
        tagline: str = "",
        description: str = "",
        values: Optional[list[str]] = None,
        style: str = "",
        brand_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Store a brand record and return it."""
        return self._append(
            self._paths[ContentType.BRAND],
            {
                "id": brand_id or str(uuid.uuid4()),
                "user_id": user_id,
                "name": name,
                "tagline": tagline,
                "description": description,
                "values": list(values or []),
                "style": style,
                "created_at": isoformat(utcnow()),
            },
        )

    def add_cv(
        self,
        user_id: str,
        title: str,
        content: Optional[dict[str, Any]] = None,
        cv_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Store a CV record; *content* holds summary, experience and skills."""
        return self._append(
            self._paths[ContentType.CV],
            {
                "id": cv_id or str(uuid.uuid4()),
                "user_id": user_id,
                "title": title,
                "content": dict(content or {}),
                "created_at": isoformat(utcnow()),
            },
        )

    def get_content(self, content_type: str | ContentType, content_id: str) -> Optional[dict[str, Any]]:
        for row in self._load(self._path(content_type)):
            if row.get("id") == content_id:
                return row
        return None

    def list_content_by_user(
        self, user_id: str, content_type: str | ContentType | None = None
    ) -> list[dict[str, Any]]:
        types = [ContentType(content_type)] if content_type else list(ContentType)
        rows: list[dict[str, Any]] = []
        for ctype in types:
            rows.extend(
                dict(row, content_type=ctype.value)
                for row in self._load(self._path(ctype))
                if row.get("user_id") == user_id
            )
        rows.sort(key=lambda r: r.get("created_at", ""), reverse=True)
        return rows

    def count_for_user(self, user_id: str) -> int:
        return len(self.list_content_by_user(user_id))

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def add_profile(self, user_id: str, created_at: Optional[str] = None, **extra: Any) -> dict[str, Any]:
        profile = {"user_id": user_id, "created_at": created_at or isoformat(utcnow())}
        profile.update(extra)
        return self._append(self._profiles_path, profile)

    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        for row in self._load(self._profiles_path):
            if row.get("user_id") == user_id:
                return row
        return None
