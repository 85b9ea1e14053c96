"""Concurrent health checks over the pipeline's services."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Mapping

from modguard.orchestrator.models import HealthReport, HealthStatus, ServiceHealth

logger = logging.getLogger(__name__)

DEGRADED_RATIO = 0.7


def overall_status(up: int, total: int) -> HealthStatus:
    if total == 0 or up == total:
        return HealthStatus.HEALTHY
    if up >= total * DEGRADED_RATIO:
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


class HealthChecker:
    """Polls every service's ``health_check`` independently.

    A service without ``health_check`` counts as up.  Errors and timeouts mark
    only that service as down.
    """

    def __init__(self, services: Mapping[str, Any], timeout: float = 2.0) -> None:
        self._services = dict(services)
        self._timeout = timeout

    async def _check(self, name: str, service: Any) -> ServiceHealth:
        probe = getattr(service, "health_check", None)
        if probe is None:
            return ServiceHealth(status="up")
        start = time.monotonic()
        try:
            outcome = probe()
            if inspect.isawaitable(outcome):
                await asyncio.wait_for(outcome, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Health check for %s timed out after %ss", name, self._timeout)
            return ServiceHealth(
                status="down",
                response_time_ms=int((time.monotonic() - start) * 1000),
                error=f"Timed out after {self._timeout}s",
            )
        except Exception as exc:
            logger.warning("Health check for %s failed: %s", name, exc)
            return ServiceHealth(
                status="down",
                response_time_ms=int((time.monotonic() - start) * 1000),
                error=str(exc) or exc.__class__.__name__,
            )
        return ServiceHealth(status="up", response_time_ms=int((time.monotonic() - start) * 1000))

    async def run(self) -> HealthReport:
        names = list(self._services)
        checks = await asyncio.gather(*(self._check(n, self._services[n]) for n in names))
        services = dict(zip(names, checks))
        up = sum(1 for s in checks if s.status == "up")
        return HealthReport(overall=overall_status(up, len(names)), services=services)
