"""Shared pytest fixtures for the x402-sentinel test suite."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from x402_sentinel.config import Settings, override_settings
from x402_sentinel.evaluators.base import CheckResult, ValidationResult
from x402_sentinel.evaluators.registry import EvaluatorRegistry
from x402_sentinel.exceptions import DeliveryError, EvaluationError
from x402_sentinel.marketplace.accounting import AccountingUpdater
from x402_sentinel.marketplace.catalog import Catalog
from x402_sentinel.marketplace.ledger import IdempotencyLedger
from x402_sentinel.marketplace.lifecycle import WatcherLifecycleManager
from x402_sentinel.marketplace.models import Operator, Watcher, WatcherType
from x402_sentinel.marketplace.store import SQLiteRecordStore
from x402_sentinel.triggers.engine import TriggerEngine

WEBHOOK = "https://hooks.example.com/sentinel"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeEvaluator:
    """Evaluator whose behaviour is driven by the watcher config.

    Config keys:
        triggered  — result.triggered (default False)
        fail       — raise EvaluationError
        sleep      — seconds to await before answering
        invalid    — make validate() report an error

    ``force`` overrides ``triggered`` for every watcher (used to flip the
    condition between cycles).
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.force: bool | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    def describe(self) -> dict[str, Any]:
        return {
            "id": "fake",
            "name": "Fake Evaluator",
            "description": "Answers from its config",
            "category": "custom",
            "config_schema": {"type": "object"},
        }

    async def check(self, config: dict[str, Any]) -> CheckResult:
        self.calls.append(config)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if config.get("sleep"):
                await asyncio.sleep(config["sleep"])
            if config.get("fail"):
                raise EvaluationError("source unavailable", executor_id="fake")
            triggered = self.force if self.force is not None else bool(config.get("triggered"))
            return CheckResult(triggered=triggered, data={"value": config.get("n", 0)})
        finally:
            self.in_flight -= 1

    def validate(self, config: dict[str, Any]) -> ValidationResult:
        if config.get("invalid"):
            return ValidationResult(valid=False, errors=["invalid: rejected by fake"])
        return ValidationResult(valid=True)


class FakeNotifier:
    """Records deliveries; fails when ``fail_all`` is set or the id is listed."""

    def __init__(self) -> None:
        self.deliveries: list[tuple[str, dict[str, Any]]] = []
        self.fail_all = False
        self.fail_for: set[str] = set()

    async def deliver(self, watcher: Watcher, data: dict[str, Any]) -> str:
        if self.fail_all or watcher.watcher_id in self.fail_for:
            raise DeliveryError(watcher.webhook, "HTTP 500", status_code=500)
        self.deliveries.append((watcher.watcher_id, data))
        return f"delivery-{len(self.deliveries)}"

    def count_for(self, watcher_id: str) -> int:
        return sum(1 for wid, _ in self.deliveries if wid == watcher_id)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        store={"db_path": str(tmp_path / "sentinel.db")},
        logging={"level": "warning", "format": "console", "events_file": None},
    )
    override_settings(settings)
    return settings


# ---------------------------------------------------------------------------
# Marketplace wiring
# ---------------------------------------------------------------------------


@pytest.fixture
async def store(tmp_path: Path) -> SQLiteRecordStore:
    s = SQLiteRecordStore(tmp_path / "sentinel_test.db")
    await s.init()
    yield s
    await s.close()


@pytest.fixture
def fake_evaluator() -> FakeEvaluator:
    return FakeEvaluator()


@pytest.fixture
def registry(fake_evaluator: FakeEvaluator) -> EvaluatorRegistry:
    r = EvaluatorRegistry()
    r.register("fake", fake_evaluator)
    return r


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def ledger(store: SQLiteRecordStore) -> IdempotencyLedger:
    return IdempotencyLedger(store)


@pytest.fixture
def accounting(store: SQLiteRecordStore) -> AccountingUpdater:
    return AccountingUpdater(store)


@pytest.fixture
def catalog(store: SQLiteRecordStore, registry: EvaluatorRegistry) -> Catalog:
    return Catalog(store, registry)


@pytest.fixture
def lifecycle(
    store: SQLiteRecordStore,
    registry: EvaluatorRegistry,
    ledger: IdempotencyLedger,
    accounting: AccountingUpdater,
) -> WatcherLifecycleManager:
    return WatcherLifecycleManager(store, registry, ledger, accounting)


@pytest.fixture
def make_engine(
    store: SQLiteRecordStore,
    registry: EvaluatorRegistry,
    notifier: FakeNotifier,
    accounting: AccountingUpdater,
):
    def _make(**kwargs: Any) -> TriggerEngine:
        return TriggerEngine(store, registry, notifier, accounting, **kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def engine(make_engine) -> TriggerEngine:
    return make_engine()


@pytest.fixture
async def operator(catalog: Catalog) -> Operator:
    return await catalog.register_operator(
        name="acme", wallet="0x" + "a" * 40, description="Acme watchers"
    )


@pytest.fixture
async def watcher_type(catalog: Catalog, operator: Operator) -> WatcherType:
    return await catalog.register_watcher_type(
        operator_id=operator.operator_id,
        name="Fake Alert",
        category="custom",
        price=10.0,
        executor_id="fake",
    )
