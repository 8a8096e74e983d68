"""GET /health — service health with engine and evaluator status."""

from __future__ import annotations

import time

from fastapi import APIRouter

from x402_sentinel import __version__
from x402_sentinel.api.dependencies import ConfigDep, EngineDep, RegistryDep, StoreDep
from x402_sentinel.api.schemas import CycleResponse, HealthResponse
from x402_sentinel.logging import get_logger
from x402_sentinel.marketplace.models import WatcherStatus

router = APIRouter(tags=["health"])
log = get_logger(__name__)

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health(
    registry: RegistryDep,
    config: ConfigDep,
    store: StoreDep,
    engine: EngineDep,
) -> HealthResponse:
    try:
        active_watchers = len(await store.list_watchers(status=WatcherStatus.ACTIVE))
    except Exception as exc:
        log.warning("health_store_unavailable", error=str(exc))
        active_watchers = 0

    last = engine.last_summary
    return HealthResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        executors=registry.list(),
        active_watchers=active_watchers,
        trigger_mode=engine.trigger_mode,
        scheduler_enabled=config.engine.scheduler_enabled,
        cycle_running=engine.is_running,
        last_cycle=CycleResponse.from_summary(last) if last else None,
    )
