"""Event emission — EventBus protocol and implementations.

The EventBus carries structured runtime events out of the core so that the
trigger engine and lifecycle manager never write to the console directly.
Each event is a plain dict published to a topic:

  TriggerEngine     ──emit("sentinel.cycles")───►
  TriggerEngine     ──emit("sentinel.triggers")─►   EventBus impl ──► NDJSON file,
  TriggerEngine     ──emit("sentinel.errors")───►                     metrics shipper, ...
  LifecycleManager  ──emit("sentinel.watchers")─►

Swap the backend by injecting a different EventBus implementation:
  - NullEventBus    → default (no-op)
  - LogEventBus     → NDJSON append-only file
  - FanoutEventBus  → broadcast to several backends
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from x402_sentinel.logging import get_logger

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Standard topic constants
# ---------------------------------------------------------------------------

TOPIC_CYCLES = "sentinel.cycles"
TOPIC_TRIGGERS = "sentinel.triggers"
TOPIC_WATCHERS = "sentinel.watchers"
TOPIC_ERRORS = "sentinel.errors"


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class EventBus(ABC):
    """Abstract event bus.  All implementations must be safe for concurrent async use.

    The bus adds a ``_topic`` key and a ``_timestamp`` (Unix epoch float)
    before forwarding to the backend.
    """

    @abstractmethod
    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        """Publish *event* to *topic*.

        This method must not raise.  Failures are logged and swallowed so that
        a backend outage never propagates into a trigger cycle.
        """

    def _stamp(self, topic: str, event: dict[str, Any]) -> dict[str, Any]:
        """Add metadata fields to *event* in-place and return it."""
        event.setdefault("_topic", topic)
        event.setdefault("_timestamp", time.time())
        return event


class NullEventBus(EventBus):
    """Discards all events.  The default, so producers never check for None."""

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        pass


class LogEventBus(EventBus):
    """Writes events as NDJSON to a file, one line per event, append-only.

    Usage::

        bus = LogEventBus(Path("~/.x402-sentinel/events.ndjson"))
        await bus.emit(TOPIC_CYCLES, {"event": "cycle_completed", "checked": 4})
    """

    def __init__(self, log_file: Path | None = None) -> None:
        self._file = log_file.expanduser() if log_file else None
        self._lock = asyncio.Lock()

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        log.debug("event_bus_emit", topic=topic, event_type=event.get("event"))
        if self._file is None:
            return
        line = json.dumps(event, default=str) + "\n"
        async with self._lock:
            try:
                self._file.parent.mkdir(parents=True, exist_ok=True)
                with self._file.open("a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as exc:
                log.error("event_bus_write_failed", topic=topic, error=str(exc))


class FanoutEventBus(EventBus):
    """Routes each event to multiple EventBus backends in parallel."""

    def __init__(self, backends: list[EventBus]) -> None:
        self._backends = backends

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        await asyncio.gather(
            *(b.emit(topic, dict(event)) for b in self._backends),
            return_exceptions=True,
        )
