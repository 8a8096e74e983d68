"""Event emission layer — structured events out of the trigger core.

Quick start::

    from x402_sentinel.events import LogEventBus, TOPIC_CYCLES

    bus = LogEventBus(Path("~/.x402-sentinel/events.ndjson"))
    await bus.emit(TOPIC_CYCLES, {"event": "cycle_completed", "checked": 3})
"""

from x402_sentinel.events.bus import (
    TOPIC_CYCLES,
    TOPIC_ERRORS,
    TOPIC_TRIGGERS,
    TOPIC_WATCHERS,
    EventBus,
    FanoutEventBus,
    LogEventBus,
    NullEventBus,
)

__all__ = [
    "EventBus",
    "NullEventBus",
    "LogEventBus",
    "FanoutEventBus",
    "TOPIC_CYCLES",
    "TOPIC_TRIGGERS",
    "TOPIC_WATCHERS",
    "TOPIC_ERRORS",
]
