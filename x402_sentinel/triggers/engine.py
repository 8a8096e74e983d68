"""TriggerEngine — one evaluation pass over every active watcher.

A *cycle* takes every ACTIVE watcher and, independently for each one:

1. **Resolves** its watcher type and evaluator.  Missing type, missing
   ``executor_id`` or an unregistered evaluator → *skipped*; nothing is
   written.
2. **Evaluates** the condition with ``evaluator.check(config)`` under
   ``check_timeout``.  Any failure → *errors*; nothing is written.
3. **Commits** ``last_checked`` / ``last_check_result`` → *checked*.
4. **Delivers** the webhook when the condition holds (edge mode: only on
   a false → true transition).  On success the trigger bookkeeping and
   the operator/type stats are incremented → *triggered*.  On failure →
   *errors* and the bookkeeping is untouched, so the next cycle retries.

One watcher's failure never aborts the others.  Cycles are mutually
exclusive; within a cycle watchers run concurrently, bounded by
``max_concurrency``.

Counters per watcher outcome::

    skipped          → skipped
    check failed     → errors
    checked          → checked
    triggered        → checked + triggered
    delivery failed  → checked + errors
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from x402_sentinel.evaluators.base import CheckResult
from x402_sentinel.evaluators.registry import EvaluatorRegistry
from x402_sentinel.events.bus import (
    TOPIC_CYCLES,
    TOPIC_ERRORS,
    TOPIC_TRIGGERS,
    EventBus,
    NullEventBus,
)
from x402_sentinel.exceptions import CycleInProgressError, EvaluationError
from x402_sentinel.logging import bind_cycle_context, clear_cycle_context, get_logger
from x402_sentinel.marketplace.accounting import AccountingUpdater
from x402_sentinel.marketplace.models import Watcher, WatcherStatus, WatcherType
from x402_sentinel.marketplace.store import RecordStore
from x402_sentinel.triggers.notifier import WebhookNotifier

log = get_logger(__name__)

TriggerMode = Literal["level", "edge"]
OverlapPolicy = Literal["reject", "queue"]


class Outcome(str, Enum):
    SKIPPED = "skipped"
    CHECK_FAILED = "check_failed"
    CHECKED = "checked"
    TRIGGERED = "triggered"
    DELIVERY_FAILED = "delivery_failed"


@dataclass
class CycleSummary:
    cycle_id: str
    checked: int = 0
    triggered: int = 0
    skipped: int = 0
    errors: int = 0
    duration_ms: int = 0
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    )

    def add(self, outcome: Outcome) -> None:
        if outcome is Outcome.SKIPPED:
            self.skipped += 1
        elif outcome is Outcome.CHECK_FAILED:
            self.errors += 1
        elif outcome is Outcome.CHECKED:
            self.checked += 1
        elif outcome is Outcome.TRIGGERED:
            self.checked += 1
            self.triggered += 1
        elif outcome is Outcome.DELIVERY_FAILED:
            self.checked += 1
            self.errors += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "checked": self.checked,
            "triggered": self.triggered,
            "skipped": self.skipped,
            "errors": self.errors,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp,
        }


def _coerce_result(result: Any) -> CheckResult:
    """Accept CheckResult, any object with ``triggered``/``data``, or a dict."""
    if isinstance(result, CheckResult):
        return result
    if isinstance(result, dict) and "triggered" in result:
        return CheckResult(triggered=bool(result["triggered"]), data=result.get("data") or {})
    if hasattr(result, "triggered"):
        return CheckResult(
            triggered=bool(result.triggered), data=getattr(result, "data", None) or {}
        )
    raise EvaluationError(
        f"Evaluator returned {type(result).__name__}, expected CheckResult", transient=False
    )


class TriggerEngine:
    """Runs trigger cycles.

    Usage::

        engine = TriggerEngine(store, registry, notifier, accounting, event_bus=bus)
        summary = await engine.run_cycle()
        print(summary.checked, summary.triggered, summary.errors)
    """

    def __init__(
        self,
        store: RecordStore,
        registry: EvaluatorRegistry,
        notifier: WebhookNotifier,
        accounting: AccountingUpdater,
        event_bus: EventBus | None = None,
        max_concurrency: int = 10,
        check_timeout: float = 15.0,
        delivery_timeout: float = 10.0,
        trigger_mode: TriggerMode = "level",
        overlap_policy: OverlapPolicy = "reject",
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._store = store
        self._registry = registry
        self._notifier = notifier
        self._accounting = accounting
        self._bus = event_bus or NullEventBus()
        self._max_concurrency = max_concurrency
        self._check_timeout = check_timeout
        self._delivery_timeout = delivery_timeout
        self._trigger_mode = trigger_mode
        self._overlap_policy = overlap_policy

        self._cycle_lock = asyncio.Lock()
        self._running_cycle_id: str | None = None
        self.last_summary: CycleSummary | None = None

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def trigger_mode(self) -> TriggerMode:
        return self._trigger_mode

    # ---------------------------------------------------------------------------
    # Cycle
    # ---------------------------------------------------------------------------

    async def run_cycle(self) -> CycleSummary:
        """Evaluate every active watcher once.

        Raises:
            CycleInProgressError: Another cycle is running and the overlap
                policy is ``reject``.
        """
        if self._overlap_policy == "reject" and self._cycle_lock.locked():
            log.warning("cycle_rejected", running_cycle_id=self._running_cycle_id)
            raise CycleInProgressError(self._running_cycle_id)

        async with self._cycle_lock:
            cycle_id = uuid.uuid4().hex[:12]
            self._running_cycle_id = cycle_id
            bind_cycle_context(cycle_id=cycle_id)
            try:
                return await self._run(cycle_id)
            finally:
                self._running_cycle_id = None
                clear_cycle_context()

    async def _run(self, cycle_id: str) -> CycleSummary:
        started = time.monotonic()
        summary = CycleSummary(cycle_id=cycle_id)

        watchers = await self._store.list_watchers(status=WatcherStatus.ACTIVE)
        types = {t.type_id: t for t in await self._store.list_watcher_types()}
        log.info("cycle_started", watchers=len(watchers), trigger_mode=self._trigger_mode)

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(watcher: Watcher) -> Outcome:
            async with semaphore:
                return await self._process(cycle_id, watcher, types.get(watcher.type_id))

        outcomes = await asyncio.gather(*(bounded(w) for w in watchers))
        for outcome in outcomes:
            summary.add(outcome)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        self.last_summary = summary
        log.info("cycle_completed", **summary.to_dict())
        await self._bus.emit(TOPIC_CYCLES, {"event": "cycle_completed", **summary.to_dict()})
        return summary

    # ---------------------------------------------------------------------------
    # Per-watcher pipeline
    # ---------------------------------------------------------------------------

    async def _process(
        self, cycle_id: str, watcher: Watcher, watcher_type: WatcherType | None
    ) -> Outcome:
        bind_cycle_context(watcher_id=watcher.watcher_id)

        # 1. Resolution
        if watcher_type is None:
            log.debug("watcher_skipped", reason="type_missing", type_id=watcher.type_id)
            return Outcome.SKIPPED
        if not watcher_type.executor_id:
            log.debug("watcher_skipped", reason="no_executor", type_id=watcher.type_id)
            return Outcome.SKIPPED
        evaluator = self._registry.resolve(watcher_type.executor_id)
        if evaluator is None:
            log.debug(
                "watcher_skipped",
                reason="executor_unregistered",
                executor_id=watcher_type.executor_id,
            )
            return Outcome.SKIPPED

        # 2. Evaluation
        try:
            raw = await asyncio.wait_for(
                evaluator.check(watcher.config), timeout=self._check_timeout
            )
            result = _coerce_result(raw)
        except asyncio.TimeoutError:
            await self._report_error(
                cycle_id, watcher, "check_failed", f"timed out after {self._check_timeout}s", True
            )
            return Outcome.CHECK_FAILED
        except Exception as exc:
            transient = getattr(exc, "transient", True)
            await self._report_error(cycle_id, watcher, "check_failed", str(exc), transient)
            return Outcome.CHECK_FAILED

        # 3. Commit
        should_deliver = result.triggered and (
            self._trigger_mode == "level" or not watcher.condition_active
        )
        now = time.time()
        try:
            await self._store.record_check(
                watcher.watcher_id,
                now,
                result.data,
                condition_active=None if result.triggered else False,
            )
        except Exception as exc:
            await self._report_error(cycle_id, watcher, "commit_failed", str(exc), True)
            return Outcome.CHECK_FAILED

        if not should_deliver:
            log.debug("watcher_checked", triggered=result.triggered)
            return Outcome.CHECKED

        # 4. Delivery
        try:
            await asyncio.wait_for(
                self._notifier.deliver(watcher, result.data), timeout=self._delivery_timeout
            )
        except asyncio.TimeoutError:
            await self._report_error(
                cycle_id,
                watcher,
                "delivery_failed",
                f"timed out after {self._delivery_timeout}s",
                True,
            )
            return Outcome.DELIVERY_FAILED
        except Exception as exc:
            await self._report_error(cycle_id, watcher, "delivery_failed", str(exc), True)
            return Outcome.DELIVERY_FAILED

        try:
            await self._store.record_trigger(watcher.watcher_id, now)
        except Exception as exc:
            # Delivered but not counted; the next cycle redelivers.
            await self._report_error(cycle_id, watcher, "trigger_commit_failed", str(exc), True)
            return Outcome.DELIVERY_FAILED

        # Stats are best-effort once the watcher itself records the trigger.
        try:
            await self._accounting.record_trigger(watcher)
        except Exception as exc:
            await self._report_error(
                cycle_id, watcher, "trigger_accounting_failed", str(exc), True
            )

        log.info("watcher_triggered", type_id=watcher.type_id, webhook=watcher.webhook)
        await self._bus.emit(
            TOPIC_TRIGGERS,
            {
                "event": "watcher_triggered",
                "cycle_id": cycle_id,
                "watcher_id": watcher.watcher_id,
                "type_id": watcher.type_id,
                "operator_id": watcher.operator_id,
                "data": result.data,
            },
        )
        return Outcome.TRIGGERED

    async def _report_error(
        self,
        cycle_id: str,
        watcher: Watcher,
        stage: str,
        error: str,
        transient: bool,
    ) -> None:
        log.warning(stage, error=error, transient=transient, type_id=watcher.type_id)
        await self._bus.emit(
            TOPIC_ERRORS,
            {
                "event": stage,
                "cycle_id": cycle_id,
                "watcher_id": watcher.watcher_id,
                "type_id": watcher.type_id,
                "error": error,
                "transient": transient,
            },
        )
