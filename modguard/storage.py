"""Helpers shared by the file-backed stores.

Stores are synchronous and guard each read-modify-write with a lock; async
services reach them through :func:`call_store`, which runs the call in a
worker thread and bounds reads with a timeout.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

from modguard.errors import DependencyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read_json(path: Path, default: Any) -> Any:
    """Load JSON from *path*, returning *default* when the file is absent."""
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise DependencyError(f"Corrupt store file {path}: {exc}") from exc


def write_json(path: Path, data: Any) -> None:
    """Atomically replace *path* with the JSON encoding of *data*."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, default=str)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


async def call_store(
    fn: Callable[..., T], *args: Any, timeout: float, write: bool = False, **kwargs: Any
) -> T:
    """Run a blocking store call off the event loop with a deadline.

    Reads are abandoned at the deadline.  A write cannot be recalled once its
    thread has started, so past the deadline it is awaited to completion and
    its real outcome returned.  Timeouts and OS-level failures surface as
    :class:`DependencyError`; pipeline errors raised by the store pass
    through unchanged.
    """
    name = getattr(fn, "__qualname__", repr(fn))
    try:
        if not write:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=timeout)
        task = asyncio.ensure_future(asyncio.to_thread(fn, *args, **kwargs))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("%s exceeded %ss; waiting for the write to finish", name, timeout)
            return await asyncio.shield(task)
    except asyncio.TimeoutError as exc:
        raise DependencyError(f"{name} timed out after {timeout}s") from exc
    except OSError as exc:
        raise DependencyError(f"{name} failed: {exc}") from exc


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: datetime) -> str:
    """Fixed-width UTC ISO timestamp so string order equals time order."""
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")
