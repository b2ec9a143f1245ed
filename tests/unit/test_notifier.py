"""Tests for webhook notifications."""

import json

import httpx
import pytest

from celcat_feed.core.async_utils import BackgroundTaskSupervisor
from celcat_feed.services.notifier import NotificationPayload, WebhookNotifier

pytestmark = pytest.mark.unit

WEBHOOK = "https://hooks.example/notify"


def _notifier(handler, **kwargs) -> WebhookNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookNotifier(webhook_url=WEBHOOK, client=client, **kwargs)


class TestNotificationPayload:
    def test_text_when_not_given_then_rendered_from_type(self) -> None:
        payload = NotificationPayload(type="schedule_change", group="L3", event_count=12)

        assert payload.text == "📅 Schedule Update: L3 has 12 events"

    def test_to_webhook_body_then_camel_case_fields(self) -> None:
        body = NotificationPayload(type="download", group="L3", event_count=4).to_webhook_body()

        assert body["type"] == "download"
        assert body["group"] == "L3"
        assert body["eventCount"] == 4
        assert body["timestamp"].endswith("Z")


class TestWebhookNotifier:
    async def test_send_when_webhook_accepts_then_true(self) -> None:
        received: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(204)

        notifier = _notifier(handler)

        ok = await notifier.send(NotificationPayload(type="refresh", group="L3", event_count=3))

        assert ok is True
        assert notifier.sent == 1
        assert received[0]["type"] == "refresh"
        assert received[0]["eventCount"] == 3

    async def test_send_when_webhook_fails_then_false_and_counted(self) -> None:
        notifier = _notifier(lambda request: httpx.Response(500))

        ok = await notifier.send(NotificationPayload(type="refresh", group="L3"))

        assert ok is False
        assert notifier.failed == 1

    async def test_send_when_webhook_unreachable_then_false(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        assert await _notifier(handler).send(NotificationPayload(type="refresh", group="L3")) is False

    async def test_send_when_no_webhook_then_logged_only(self) -> None:
        notifier = WebhookNotifier(webhook_url="")

        assert await notifier.send(NotificationPayload(type="download", group="L3")) is True
        assert notifier.sent == 0

    async def test_send_when_disabled_then_skipped(self) -> None:
        calls: list[httpx.Request] = []
        notifier = _notifier(lambda request: calls.append(request) or httpx.Response(200), enabled=False)

        assert await notifier.send(NotificationPayload(type="download", group="L3")) is False
        assert calls == []

    async def test_notify_event_then_delivered_in_background(self) -> None:
        received: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(200)

        supervisor = BackgroundTaskSupervisor(name="test-notify")
        notifier = _notifier(handler, supervisor=supervisor)

        notifier.notify_event("schedule_change", "L3", 7)
        assert received == []
        await supervisor.drain(timeout=1)

        assert received[0]["group"] == "L3"
        assert notifier.sent == 1
