"""Service wiring — builds the long-lived objects from Settings.

Both the HTTP app (lifespan) and the CLI (``cycle run``) open the same
object graph through ``open_services``::

    async with open_services(settings) as services:
        summary = await services.engine.run_cycle()
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from x402_sentinel import __version__
from x402_sentinel.config import Settings
from x402_sentinel.evaluators.registry import EvaluatorRegistry, build_default_registry
from x402_sentinel.events.bus import EventBus, LogEventBus, NullEventBus
from x402_sentinel.logging import get_logger
from x402_sentinel.marketplace.accounting import AccountingUpdater
from x402_sentinel.marketplace.catalog import Catalog
from x402_sentinel.marketplace.ledger import IdempotencyLedger
from x402_sentinel.marketplace.lifecycle import WatcherLifecycleManager
from x402_sentinel.marketplace.store import SQLiteRecordStore
from x402_sentinel.triggers.engine import TriggerEngine
from x402_sentinel.triggers.notifier import WebhookNotifier
from x402_sentinel.triggers.scheduler import CycleScheduler

log = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    store: SQLiteRecordStore
    registry: EvaluatorRegistry
    event_bus: EventBus
    ledger: IdempotencyLedger
    accounting: AccountingUpdater
    catalog: Catalog
    lifecycle: WatcherLifecycleManager
    notifier: WebhookNotifier
    engine: TriggerEngine
    scheduler: CycleScheduler | None = None


@asynccontextmanager
async def open_services(
    settings: Settings,
    registry: EvaluatorRegistry | None = None,
    notifier: WebhookNotifier | None = None,
    start_scheduler: bool | None = None,
) -> AsyncIterator[Services]:
    """Open the store, wire every component, and tear it all down on exit.

    ``start_scheduler`` defaults to ``settings.engine.scheduler_enabled``.
    """
    store = SQLiteRecordStore(settings.store.db_path)
    await store.init()

    if registry is None:
        registry = build_default_registry(settings)

    if settings.logging.events_file:
        event_bus: EventBus = LogEventBus(settings.logging.events_file)
    else:
        event_bus = NullEventBus()

    http_client: httpx.AsyncClient | None = None
    if notifier is None:
        http_client = httpx.AsyncClient(
            timeout=settings.engine.delivery_timeout_seconds,
            headers={"User-Agent": f"x402-sentinel/{__version__}"},
        )
        notifier = WebhookNotifier(
            timeout=settings.engine.delivery_timeout_seconds,
            source=settings.marketplace.source,
            client=http_client,
        )

    ledger = IdempotencyLedger(store)
    accounting = AccountingUpdater(store)
    catalog = Catalog(store, registry, event_bus=event_bus)
    lifecycle = WatcherLifecycleManager(
        store,
        registry,
        ledger,
        accounting,
        event_bus=event_bus,
        network=settings.marketplace.network,
        rail=settings.marketplace.rail,
    )
    engine = TriggerEngine(
        store,
        registry,
        notifier,
        accounting,
        event_bus=event_bus,
        max_concurrency=settings.engine.max_concurrency,
        check_timeout=settings.engine.check_timeout_seconds,
        delivery_timeout=settings.engine.delivery_timeout_seconds,
        trigger_mode=settings.engine.trigger_mode,
        overlap_policy=settings.engine.overlap_policy,
    )
    services = Services(
        settings=settings,
        store=store,
        registry=registry,
        event_bus=event_bus,
        ledger=ledger,
        accounting=accounting,
        catalog=catalog,
        lifecycle=lifecycle,
        notifier=notifier,
        engine=engine,
    )

    if start_scheduler is None:
        start_scheduler = settings.engine.scheduler_enabled
    if start_scheduler:
        services.scheduler = CycleScheduler(
            engine, lifecycle, interval_seconds=settings.engine.interval_seconds
        )
        await services.scheduler.start()

    try:
        yield services
    finally:
        if services.scheduler is not None:
            await services.scheduler.stop()
        if http_client is not None:
            await http_client.aclose()
        await store.close()
