"""Watcher endpoints.

    POST /watchers                      — create (pay for) a watcher
    GET  /watchers                      — list watchers (filters)
    GET  /watchers/{watcher_id}         — watcher details
    PUT  /watchers/{watcher_id}/pause   — stop checking
    PUT  /watchers/{watcher_id}/resume  — resume checking
    PUT  /watchers/{watcher_id}/expire  — end the watcher (terminal)

POST /watchers returns 201 for a new watcher and 200 when the request
replays an earlier creation (same type, config, webhook and customer).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Header, Response, status

from x402_sentinel.api.dependencies import HEADER_CUSTOMER_ID, LifecycleDep
from x402_sentinel.api.schemas import (
    CreateWatcherRequest,
    CreateWatcherResponse,
    WatcherResponse,
)
from x402_sentinel.marketplace.models import WatcherStatus

router = APIRouter(prefix="/watchers", tags=["watchers"])


@router.post(
    "",
    response_model=CreateWatcherResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a watcher",
)
async def create_watcher(
    body: CreateWatcherRequest,
    response: Response,
    lifecycle: LifecycleDep,
    x_customer_id: Annotated[str | None, Header(alias=HEADER_CUSTOMER_ID)] = None,
) -> CreateWatcherResponse:
    result = await lifecycle.create_watcher(
        type_id=body.type_id,
        config=body.config,
        webhook=body.webhook,
        customer_id=body.customer_id or x_customer_id,
        tx_hash=body.tx_hash,
        ttl_seconds=body.ttl_seconds,
    )
    if result.replayed:
        response.status_code = status.HTTP_200_OK
    return CreateWatcherResponse.from_result(result)


@router.get("", response_model=list[WatcherResponse], summary="List watchers")
async def list_watchers(
    lifecycle: LifecycleDep,
    operator_id: str | None = None,
    type_id: str | None = None,
    customer_id: str | None = None,
    status: WatcherStatus | None = None,
) -> list[WatcherResponse]:
    watchers = await lifecycle.list_watchers(
        operator_id=operator_id, type_id=type_id, customer_id=customer_id, status=status
    )
    return [WatcherResponse.from_record(w) for w in watchers]


@router.get("/{watcher_id}", response_model=WatcherResponse, summary="Get a watcher")
async def get_watcher(watcher_id: str, lifecycle: LifecycleDep) -> WatcherResponse:
    return WatcherResponse.from_record(await lifecycle.get_watcher(watcher_id))


@router.put("/{watcher_id}/pause", response_model=WatcherResponse, summary="Pause a watcher")
async def pause_watcher(watcher_id: str, lifecycle: LifecycleDep) -> WatcherResponse:
    return WatcherResponse.from_record(await lifecycle.pause(watcher_id))


@router.put("/{watcher_id}/resume", response_model=WatcherResponse, summary="Resume a watcher")
async def resume_watcher(watcher_id: str, lifecycle: LifecycleDep) -> WatcherResponse:
    return WatcherResponse.from_record(await lifecycle.resume(watcher_id))


@router.put("/{watcher_id}/expire", response_model=WatcherResponse, summary="Expire a watcher")
async def expire_watcher(watcher_id: str, lifecycle: LifecycleDep) -> WatcherResponse:
    return WatcherResponse.from_record(await lifecycle.expire(watcher_id))
