"""Catalog — operators and the watcher types they publish."""

from __future__ import annotations

from typing import Any

from x402_sentinel.evaluators.registry import EvaluatorRegistry
from x402_sentinel.events.bus import TOPIC_WATCHERS, EventBus, NullEventBus
from x402_sentinel.exceptions import OperatorNotFoundError, WatcherTypeNotFoundError
from x402_sentinel.logging import get_logger
from x402_sentinel.marketplace.models import (
    Operator,
    OperatorStatus,
    WatcherType,
    WatcherTypeStatus,
)
from x402_sentinel.marketplace.store import RecordStore

log = get_logger(__name__)


class Catalog:
    def __init__(
        self,
        store: RecordStore,
        registry: EvaluatorRegistry,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._bus = event_bus or NullEventBus()

    # ---------------------------------------------------------------------------
    # Operators
    # ---------------------------------------------------------------------------

    async def register_operator(
        self,
        name: str,
        wallet: str,
        description: str = "",
        website: str | None = None,
    ) -> Operator:
        operator = await self._store.create_operator(
            Operator(name=name, wallet=wallet, description=description, website=website)
        )
        log.info("operator_registered", operator_id=operator.operator_id, name=name)
        return operator

    async def get_operator(self, operator_id: str) -> Operator:
        operator = await self._store.get_operator(operator_id)
        if operator is None:
            raise OperatorNotFoundError(operator_id)
        return operator

    async def list_operators(self, status: OperatorStatus | None = None) -> list[Operator]:
        return await self._store.list_operators(status=status)

    # ---------------------------------------------------------------------------
    # Watcher types
    # ---------------------------------------------------------------------------

    async def register_watcher_type(
        self,
        operator_id: str,
        name: str,
        category: str,
        price: float,
        executor_id: str | None = None,
        description: str = "",
        config_schema: dict[str, Any] | None = None,
    ) -> WatcherType:
        """Publish a new watcher type for an existing operator.

        When *config_schema* is omitted and the executor is registered, the
        evaluator's own schema is copied onto the type.

        Raises:
            OperatorNotFoundError: *operator_id* does not exist.
        """
        await self.get_operator(operator_id)

        schema = config_schema or {}
        evaluator = self._registry.resolve(executor_id)
        if executor_id is not None and evaluator is None:
            # Allowed: instances are skipped by cycles until the evaluator exists.
            log.warning("watcher_type_executor_unregistered", executor_id=executor_id)
        elif evaluator is not None and not schema:
            schema = evaluator.describe().get("config_schema", {})

        watcher_type = await self._store.create_watcher_type(
            WatcherType(
                operator_id=operator_id,
                name=name,
                category=category,
                price=price,
                executor_id=executor_id,
                description=description,
                config_schema=schema,
            )
        )
        log.info(
            "watcher_type_registered",
            type_id=watcher_type.type_id,
            operator_id=operator_id,
            executor_id=executor_id,
            price=price,
        )
        await self._bus.emit(
            TOPIC_WATCHERS,
            {
                "event": "watcher_type_registered",
                "type_id": watcher_type.type_id,
                "operator_id": operator_id,
                "executor_id": executor_id,
            },
        )
        return watcher_type

    async def get_watcher_type(self, type_id: str) -> WatcherType:
        watcher_type = await self._store.get_watcher_type(type_id)
        if watcher_type is None:
            raise WatcherTypeNotFoundError(type_id)
        return watcher_type

    async def list_watcher_types(
        self,
        operator_id: str | None = None,
        category: str | None = None,
        status: WatcherTypeStatus | None = None,
    ) -> list[WatcherType]:
        return await self._store.list_watcher_types(
            operator_id=operator_id, category=category, status=status
        )

    async def deprecate_watcher_type(self, type_id: str) -> WatcherType:
        """Stop selling *type_id*.  Existing watchers keep running."""
        await self.get_watcher_type(type_id)
        updated = await self._store.update_watcher_type_status(
            type_id, WatcherTypeStatus.DEPRECATED
        )
        if updated is None:
            raise WatcherTypeNotFoundError(type_id)
        log.info("watcher_type_deprecated", type_id=type_id)
        await self._bus.emit(
            TOPIC_WATCHERS, {"event": "watcher_type_deprecated", "type_id": type_id}
        )
        return updated
