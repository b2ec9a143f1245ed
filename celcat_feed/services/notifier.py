"""Best-effort webhook notifications (schedule changes, cache refreshes, downloads)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from ..core.async_utils import BackgroundTaskSupervisor
from ..core.http_client import get_shared_client
from ..core.timezone_utils import now_utc, serialize_iso

logger = logging.getLogger(__name__)

NOTIFIER_CLIENT_ID = "notifications"

NotificationType = Literal["schedule_change", "refresh", "download"]

_TEXT_TEMPLATES: dict[str, str] = {
    "schedule_change": "📅 Schedule Update: {group} has {count} events",
    "refresh": "🔄 Cache refreshed: {group} ({count} events)",
    "download": "⬇️ Calendar downloaded: {group} ({count} courses)",
}


class NotificationPayload(BaseModel):
    """One notification as posted to the webhook."""

    type: NotificationType
    group: str
    event_count: int = 0
    text: str = ""
    timestamp: datetime = Field(default_factory=now_utc)

    def model_post_init(self, __context: Any) -> None:
        if not self.text:
            template = _TEXT_TEMPLATES[self.type]
            self.text = template.format(group=self.group, count=self.event_count)

    def to_webhook_body(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "type": self.type,
            "group": self.group,
            "eventCount": self.event_count,
            "timestamp": serialize_iso(self.timestamp),
        }


class WebhookNotifier:
    """Posts notifications to a webhook; logs them when no webhook is configured.

    ``notify`` never blocks or raises: delivery runs as a supervised
    background task.
    """

    def __init__(
        self,
        webhook_url: str = "",
        enabled: bool = True,
        supervisor: Optional[BackgroundTaskSupervisor] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ) -> None:
        self.webhook_url = webhook_url
        self.enabled = enabled
        self.supervisor = supervisor or BackgroundTaskSupervisor(name="notifications")
        self._client = client
        self.timeout = timeout
        self.sent = 0
        self.failed = 0

    async def send(self, payload: NotificationPayload) -> bool:
        """Deliver one notification.

        Returns:
            True when the webhook accepted it (or when only logging)
        """
        if not self.enabled:
            return False

        logger.info("Notification [%s] %s", payload.type, payload.text)
        if not self.webhook_url:
            return True

        client = self._client or await get_shared_client(NOTIFIER_CLIENT_ID)
        try:
            response = await client.post(
                self.webhook_url, json=payload.to_webhook_body(), timeout=self.timeout
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.failed += 1
            logger.warning("Failed to send webhook notification: %s", e)
            return False

        self.sent += 1
        return True

    def notify(self, payload: NotificationPayload) -> None:
        """Fire-and-forget ``send``."""
        if not self.enabled:
            return
        self.supervisor.spawn(self.send(payload), name=f"notify:{payload.type}:{payload.group}")

    def notify_event(self, type_: NotificationType, group: str, event_count: int) -> None:
        self.notify(NotificationPayload(type=type_, group=group, event_count=event_count))
