"""POST /cron/check — run one trigger cycle on demand.

Meant for an external scheduler (cron, Cloud Scheduler, a Vercel cron).
Overdue watchers are expired before the cycle runs.  Returns 409 while
another cycle is in progress and ``engine.overlap_policy`` is ``reject``.
"""

from __future__ import annotations

from fastapi import APIRouter

from x402_sentinel.api.dependencies import AdminDep, EngineDep, LifecycleDep
from x402_sentinel.api.schemas import CycleResponse

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post(
    "/check",
    response_model=CycleResponse,
    dependencies=[AdminDep],
    summary="Run a trigger cycle",
)
async def run_check(engine: EngineDep, lifecycle: LifecycleDep) -> CycleResponse:
    await lifecycle.expire_overdue()
    summary = await engine.run_cycle()
    return CycleResponse.from_summary(summary)
