"""Unit tests — events/bus.py."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from x402_sentinel.events.bus import (
    TOPIC_CYCLES,
    TOPIC_ERRORS,
    EventBus,
    FanoutEventBus,
    LogEventBus,
    NullEventBus,
)


class _Collector(EventBus):
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self.events.append((topic, self._stamp(topic, event)))


class _Broken(EventBus):
    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        raise RuntimeError("backend down")


@pytest.mark.unit
class TestEventBus:
    async def test_null_bus_discards(self) -> None:
        await NullEventBus().emit(TOPIC_CYCLES, {"event": "x"})

    async def test_log_bus_writes_ndjson(self, tmp_path: Path) -> None:
        path = tmp_path / "events" / "events.ndjson"
        bus = LogEventBus(path)
        await bus.emit(TOPIC_CYCLES, {"event": "cycle_completed", "checked": 2})
        await bus.emit(TOPIC_ERRORS, {"event": "check_failed"})

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["_topic"] == TOPIC_CYCLES
        assert first["checked"] == 2
        assert "_timestamp" in first

    async def test_log_bus_without_file(self) -> None:
        await LogEventBus(None).emit(TOPIC_CYCLES, {"event": "x"})

    async def test_fanout_reaches_every_backend(self) -> None:
        a, b = _Collector(), _Collector()
        bus = FanoutEventBus([a, _Broken(), b])
        await bus.emit(TOPIC_CYCLES, {"event": "cycle_completed"})
        assert len(a.events) == 1
        assert len(b.events) == 1
        assert a.events[0][1]["_topic"] == TOPIC_CYCLES
