"""Unit tests — triggers/notifier.py (WebhookNotifier)."""

from __future__ import annotations

import json

import httpx
import pytest

from x402_sentinel.exceptions import DeliveryError
from x402_sentinel.marketplace.models import Watcher
from x402_sentinel.triggers.notifier import WebhookNotifier, build_payload, utc_timestamp


@pytest.fixture
def watcher() -> Watcher:
    return Watcher(
        type_id="t1",
        operator_id="op1",
        customer_id="c1",
        config={},
        webhook="https://hooks.example.com/sentinel",
    )


def _client(status: int = 200, seen: list[httpx.Request] | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestPayload:
    def test_shape(self, watcher: Watcher) -> None:
        payload = build_payload(watcher, {"price": 2.0}, "x402-sentinel")
        assert payload["event"] == "watcher_triggered"
        assert payload["watcher"] == {"id": watcher.watcher_id, "typeId": "t1"}
        assert payload["data"] == {"price": 2.0}
        assert payload["source"] == "x402-sentinel"
        assert payload["timestamp"].endswith("Z")

    def test_timestamp_is_utc(self) -> None:
        ts = utc_timestamp()
        assert ts.endswith("Z")
        assert "+00:00" not in ts


@pytest.mark.unit
class TestWebhookNotifier:
    async def test_posts_payload_and_headers(self, watcher: Watcher) -> None:
        seen: list[httpx.Request] = []
        notifier = WebhookNotifier(client=_client(204, seen))

        delivery_id = await notifier.deliver(watcher, {"balance": 0.1})

        assert len(seen) == 1
        request = seen[0]
        assert request.method == "POST"
        assert request.url.host == "hooks.example.com"
        assert request.url.path == "/sentinel"
        assert request.headers["X-Sentinel-Event"] == "watcher_triggered"
        assert request.headers["X-Sentinel-Delivery"] == delivery_id
        assert request.headers["User-Agent"].startswith("x402-sentinel/")
        body = json.loads(request.content)
        assert body["data"] == {"balance": 0.1}
        assert body["watcher"]["id"] == watcher.watcher_id

    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    async def test_non_2xx_raises(self, watcher: Watcher, status: int) -> None:
        notifier = WebhookNotifier(client=_client(status))
        with pytest.raises(DeliveryError) as exc_info:
            await notifier.deliver(watcher, {})
        assert exc_info.value.status_code == status

    async def test_transport_error_raises(self, watcher: Watcher) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        notifier = WebhookNotifier(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(DeliveryError) as exc_info:
            await notifier.deliver(watcher, {})
        assert exc_info.value.status_code is None
        assert "ConnectError" in exc_info.value.reason

    async def test_timeout_raises(self, watcher: Watcher) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        notifier = WebhookNotifier(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(DeliveryError) as exc_info:
            await notifier.deliver(watcher, {})
        assert exc_info.value.reason == "timeout"

    async def test_custom_source(self, watcher: Watcher) -> None:
        seen: list[httpx.Request] = []
        notifier = WebhookNotifier(source="staging", client=_client(200, seen))
        await notifier.deliver(watcher, {})
        assert json.loads(seen[0].content)["source"] == "staging"
