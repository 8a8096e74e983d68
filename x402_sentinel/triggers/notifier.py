"""Webhook notifier — delivers trigger payloads to customer webhooks.

Payload::

    {
        "event": "watcher_triggered",
        "watcher": {"id": "...", "typeId": "..."},
        "data": {...},                      # evaluator result data
        "timestamp": "2026-01-01T00:00:00Z",
        "source": "x402-sentinel"
    }

Any transport error, timeout or non-2xx response raises DeliveryError.
Delivery is at-least-once: the engine retries on the next cycle.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from x402_sentinel import __version__
from x402_sentinel.exceptions import DeliveryError
from x402_sentinel.logging import get_logger
from x402_sentinel.marketplace.models import Watcher

log = get_logger(__name__)

EVENT_WATCHER_TRIGGERED = "watcher_triggered"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_payload(watcher: Watcher, data: dict[str, Any], source: str) -> dict[str, Any]:
    return {
        "event": EVENT_WATCHER_TRIGGERED,
        "watcher": {"id": watcher.watcher_id, "typeId": watcher.type_id},
        "data": data,
        "timestamp": utc_timestamp(),
        "source": source,
    }


class WebhookNotifier:
    """POSTs trigger payloads with a bounded timeout.

    Pass ``client`` to reuse a connection pool (or a MockTransport in tests).
    """

    def __init__(
        self,
        timeout: float = 10.0,
        source: str = "x402-sentinel",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._source = source
        self._client = client

    async def deliver(self, watcher: Watcher, data: dict[str, Any]) -> str:
        """POST the trigger payload for *watcher*.  Returns the delivery id.

        Raises:
            DeliveryError: transport failure, timeout or non-2xx status.
        """
        delivery_id = uuid.uuid4().hex
        payload = build_payload(watcher, data, self._source)
        headers = {
            "User-Agent": f"x402-sentinel/{__version__}",
            "X-Sentinel-Event": EVENT_WATCHER_TRIGGERED,
            "X-Sentinel-Delivery": delivery_id,
        }

        try:
            if self._client is not None:
                response = await self._client.post(
                    watcher.webhook, json=payload, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(watcher.webhook, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise DeliveryError(watcher.webhook, "timeout") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(watcher.webhook, f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise DeliveryError(
                watcher.webhook,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        log.debug(
            "webhook_delivered",
            watcher_id=watcher.watcher_id,
            delivery_id=delivery_id,
            status_code=response.status_code,
        )
        return delivery_id
