"""API layer — FastAPI dependency injection.

All heavy objects (store, registry, lifecycle manager, engine) are created
once in the app lifespan and injected via FastAPI's dependency system.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from x402_sentinel.config import Settings
from x402_sentinel.evaluators.registry import EvaluatorRegistry
from x402_sentinel.marketplace.catalog import Catalog
from x402_sentinel.marketplace.lifecycle import WatcherLifecycleManager
from x402_sentinel.marketplace.store import RecordStore
from x402_sentinel.triggers.engine import TriggerEngine

HEADER_ADMIN_TOKEN = "X-Sentinel-Admin-Token"
HEADER_CUSTOMER_ID = "X-Customer-Id"


def get_config(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


def get_store(request: Request) -> RecordStore:
    return request.app.state.store  # type: ignore[no-any-return]


def get_registry(request: Request) -> EvaluatorRegistry:
    return request.app.state.registry  # type: ignore[no-any-return]


def get_catalog(request: Request) -> Catalog:
    return request.app.state.catalog  # type: ignore[no-any-return]


def get_lifecycle(request: Request) -> WatcherLifecycleManager:
    return request.app.state.lifecycle  # type: ignore[no-any-return]


def get_engine(request: Request) -> TriggerEngine:
    return request.app.state.engine  # type: ignore[no-any-return]


async def verify_admin_token(
    request: Request,
    x_sentinel_admin_token: Annotated[str | None, Header(alias=HEADER_ADMIN_TOKEN)] = None,
) -> None:
    """Verify the admin token if one is configured."""
    settings: Settings = request.app.state.settings
    expected = settings.security.admin_token

    if expected is None:
        return  # No auth configured: open mode.

    if x_sentinel_admin_token != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin token.",
        )


# Shorthand type aliases for route signatures.
ConfigDep = Annotated[Settings, Depends(get_config)]
StoreDep = Annotated[RecordStore, Depends(get_store)]
RegistryDep = Annotated[EvaluatorRegistry, Depends(get_registry)]
CatalogDep = Annotated[Catalog, Depends(get_catalog)]
LifecycleDep = Annotated[WatcherLifecycleManager, Depends(get_lifecycle)]
EngineDep = Annotated[TriggerEngine, Depends(get_engine)]
AdminDep = Depends(verify_admin_token)
