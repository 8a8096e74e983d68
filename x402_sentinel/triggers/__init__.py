"""Trigger layer — cycle engine, webhook delivery, periodic scheduling."""

from x402_sentinel.triggers.engine import CycleSummary, TriggerEngine
from x402_sentinel.triggers.notifier import WebhookNotifier, build_payload
from x402_sentinel.triggers.scheduler import CycleScheduler

__all__ = [
    "CycleSummary",
    "TriggerEngine",
    "WebhookNotifier",
    "build_payload",
    "CycleScheduler",
]
