"""Watcher type and executor endpoints.

    POST /watcher-types                      — publish a watcher type (admin)
    GET  /watcher-types                      — browse the catalog
    GET  /watcher-types/{type_id}            — type details + stats
    PUT  /watcher-types/{type_id}/deprecate  — stop selling a type (admin)
    GET  /executors                          — registered condition evaluators
"""

from __future__ import annotations

from fastapi import APIRouter, status

from x402_sentinel.api.dependencies import AdminDep, CatalogDep, RegistryDep
from x402_sentinel.api.schemas import (
    CreateWatcherTypeRequest,
    ExecutorResponse,
    WatcherTypeResponse,
)
from x402_sentinel.marketplace.models import WatcherTypeStatus

router = APIRouter(tags=["watcher-types"])


@router.post(
    "/watcher-types",
    response_model=WatcherTypeResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[AdminDep],
    summary="Publish a watcher type",
)
async def create_watcher_type(
    body: CreateWatcherTypeRequest, catalog: CatalogDep
) -> WatcherTypeResponse:
    watcher_type = await catalog.register_watcher_type(
        operator_id=body.operator_id,
        name=body.name,
        category=body.category,
        price=body.price,
        executor_id=body.executor_id,
        description=body.description,
        config_schema=body.config_schema,
    )
    return WatcherTypeResponse.from_record(watcher_type)


@router.get(
    "/watcher-types", response_model=list[WatcherTypeResponse], summary="List watcher types"
)
async def list_watcher_types(
    catalog: CatalogDep,
    operator_id: str | None = None,
    category: str | None = None,
    status: WatcherTypeStatus | None = None,
) -> list[WatcherTypeResponse]:
    types = await catalog.list_watcher_types(
        operator_id=operator_id, category=category, status=status
    )
    return [WatcherTypeResponse.from_record(t) for t in types]


@router.get(
    "/watcher-types/{type_id}", response_model=WatcherTypeResponse, summary="Get a watcher type"
)
async def get_watcher_type(type_id: str, catalog: CatalogDep) -> WatcherTypeResponse:
    return WatcherTypeResponse.from_record(await catalog.get_watcher_type(type_id))


@router.put(
    "/watcher-types/{type_id}/deprecate",
    response_model=WatcherTypeResponse,
    dependencies=[AdminDep],
    summary="Deprecate a watcher type",
)
async def deprecate_watcher_type(type_id: str, catalog: CatalogDep) -> WatcherTypeResponse:
    return WatcherTypeResponse.from_record(await catalog.deprecate_watcher_type(type_id))


@router.get("/executors", response_model=list[ExecutorResponse], summary="List executors")
async def list_executors(registry: RegistryDep) -> list[ExecutorResponse]:
    return [ExecutorResponse.model_validate(info) for info in registry.describe_all()]
