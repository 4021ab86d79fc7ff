"""Unit tests for docvault.integrations.notifications — webhook dispatch with retry."""

import json

import httpx
import pytest

from docvault.engine.config import PlatformConfig
from docvault.integrations.notifications import (
    LoggingNotificationDispatcher,
    Recipient,
    WebhookNotificationDispatcher,
    create_dispatcher,
)

RECIPIENT = Recipient(user_id="u1", email="alice@example.com", name="Alice")
PAYLOAD = {"document_id": "d2", "version_number": 2}


def _dispatcher(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookNotificationDispatcher(
        "https://hooks.example.com/notify", client=client, base_delay=0, **kwargs
    )


class TestWebhookDispatcher:

    @pytest.mark.asyncio
    async def test_posts_json_body(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(202)

        dispatcher = _dispatcher(handler, api_key="secret")
        assert await dispatcher.notify(RECIPIENT, "version_upload", PAYLOAD) is True
        await dispatcher.close()

        request = seen[0]
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["event"] == "version_upload"
        assert body["recipient"]["email"] == "alice@example.com"
        assert body["payload"] == PAYLOAD

    @pytest.mark.asyncio
    async def test_retries_transient_status(self):
        statuses = iter([503, 429, 200])

        def handler(request):
            return httpx.Response(next(statuses))

        dispatcher = _dispatcher(handler, retries=2)
        assert await dispatcher.notify(RECIPIENT, "version_upload", PAYLOAD) is True

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(500)

        dispatcher = _dispatcher(handler, retries=2)
        assert await dispatcher.notify(RECIPIENT, "version_upload", PAYLOAD) is False
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(400)

        dispatcher = _dispatcher(handler, retries=3)
        assert await dispatcher.notify(RECIPIENT, "version_upload", PAYLOAD) is False
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error_retried_then_false(self):
        calls = []

        def handler(request):
            calls.append(1)
            raise httpx.ConnectError("refused", request=request)

        dispatcher = _dispatcher(handler, retries=1)
        assert await dispatcher.notify(RECIPIENT, "version_upload", PAYLOAD) is False
        assert len(calls) == 2

    def test_backoff_doubles(self):
        dispatcher = WebhookNotificationDispatcher("https://x", base_delay=0.5)
        assert [dispatcher._calc_delay(a) for a in range(3)] == [0.5, 1.0, 2.0]

    def test_from_config_requires_url(self):
        with pytest.raises(ValueError, match="webhook_url"):
            WebhookNotificationDispatcher.from_config(PlatformConfig())


class TestLoggingDispatcher:

    @pytest.mark.asyncio
    async def test_records(self):
        dispatcher = LoggingNotificationDispatcher()
        assert await dispatcher.notify(RECIPIENT, "version_restore", PAYLOAD)
        assert dispatcher.sent == [(RECIPIENT, "version_restore", PAYLOAD)]
        await dispatcher.close()


class TestCreateDispatcher:

    def test_disabled_gives_logging(self):
        assert isinstance(create_dispatcher(PlatformConfig()), LoggingNotificationDispatcher)

    def test_enabled_gives_webhook(self):
        cfg = PlatformConfig(notifications={"enabled": True, "webhook_url": "https://hooks/x", "retries": 4})
        dispatcher = create_dispatcher(cfg)
        assert isinstance(dispatcher, WebhookNotificationDispatcher)
        assert dispatcher._retries == 4
