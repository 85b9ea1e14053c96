"""Outbound notifications for moderators, admins and content owners.

Two dispatchers share one interface (``send_admin_notification``,
``send_user_notification``, ``health_check``):

- :class:`LoggingNotifier` logs each notification and keeps an in-memory
  outbox.  It is the default when no webhook is configured.
- :class:`WebhookNotifier` posts each notification as JSON to one URL, signed
  with HMAC-SHA256 when a secret is set.

Callers treat delivery as fire-and-forget; failures surface as
:class:`DependencyError` for the caller to log.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

import httpx

from modguard.errors import ConfigurationError, DependencyError
from modguard.storage import isoformat, utcnow

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-ModGuard-Signature"
EVENT_HEADER = "X-ModGuard-Event"


@dataclass
class Notification:
    type: str
    title: str
    message: str
    recipients: list[str] = field(default_factory=list)  # roles, for admin notifications
    priority: str = "medium"
    user_id: Optional[str] = None  # set for user notifications
    data: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LoggingNotifier:
    """Logs notifications and remembers them for inspection."""

    def __init__(self, max_outbox: int = 1000) -> None:
        self.outbox: list[Notification] = []
        self._max_outbox = max_outbox

    def _keep(self, notification: Notification) -> None:
        if not notification.created_at:
            notification.created_at = isoformat(utcnow())
        self.outbox.append(notification)
        del self.outbox[: -self._max_outbox]

    async def send_admin_notification(self, notification: Notification) -> None:
        self._keep(notification)
        logger.info(
            "[notify %s] %s: %s", ",".join(notification.recipients) or "admins",
            notification.title, notification.message,
        )

    async def send_user_notification(self, user_id: str, notification: Notification) -> None:
        notification.user_id = user_id
        self._keep(notification)
        logger.info("[notify user %s] %s: %s", user_id, notification.title, notification.message)

    async def health_check(self) -> None:
        return None


class WebhookNotifier:
    """Delivers notifications to a single webhook endpoint."""

    def __init__(
        self,
        url: str,
        secret: str = "",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not url:
            raise ConfigurationError("webhook_url is required for webhook notifications")
        self._url = url
        self._secret = secret
        self._timeout = timeout
        self._transport = transport

    @staticmethod
    def compute_signature(payload_bytes: bytes, secret: str) -> str:
        """Compute HMAC-SHA256 signature for a payload."""
        mac = hmac.new(secret.encode("utf-8"), payload_bytes, hashlib.sha256)
        return f"sha256={mac.hexdigest()}"

    async def _post(self, event: str, notification: Notification) -> None:
        if not notification.created_at:
            notification.created_at = isoformat(utcnow())
        body = json.dumps({"event": event, "notification": notification.to_dict()}, default=str)
        body_bytes = body.encode("utf-8")
        headers = {"Content-Type": "application/json", EVENT_HEADER: event}
        if self._secret:
            headers[SIGNATURE_HEADER] = self.compute_signature(body_bytes, self._secret)

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._url, content=body_bytes, headers=headers)
        except httpx.HTTPError as exc:
            raise DependencyError(f"Webhook delivery failed: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            raise DependencyError(
                f"Webhook responded with HTTP {resp.status_code}",
                {"status": resp.status_code, "body": resp.text[:500]},
            )

    async def send_admin_notification(self, notification: Notification) -> None:
        await self._post("admin_notification", notification)

    async def send_user_notification(self, user_id: str, notification: Notification) -> None:
        notification.user_id = user_id
        await self._post("user_notification", notification)

    async def health_check(self) -> None:
        # Only the configuration is checked; probing the endpoint would send traffic.
        if not self._url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Invalid webhook URL '{self._url}'")
