"""Watcher lifecycle manager — paid creation and status transitions.

Creation pipeline
-----------------
    fingerprint ─► ledger lookup ──hit──► replay (no side effects)
                         │
                         ▼ miss
    resolve type ─► resolve operator ─► validate webhook ─► validate config
                         │
                         ▼
    ledger.fulfill(watcher, payment, receipt)   (atomic; race loser replays)
                         │
                         ▼
    accounting.record_creation(type, payment)

Status transitions
------------------
    ACTIVE ⇄ PAUSED
    ACTIVE / PAUSED → EXPIRED      (terminal)
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from x402_sentinel.evaluators.registry import EvaluatorRegistry
from x402_sentinel.events.bus import TOPIC_WATCHERS, EventBus, NullEventBus
from x402_sentinel.exceptions import (
    InvalidConfigError,
    InvalidStatusTransitionError,
    InvalidWebhookError,
    RecordIntegrityError,
    WatcherNotFoundError,
    WatcherTypeNotFoundError,
    WatcherTypeUnavailableError,
)
from x402_sentinel.logging import get_logger
from x402_sentinel.marketplace.accounting import AccountingUpdater
from x402_sentinel.marketplace.ledger import IdempotencyLedger
from x402_sentinel.marketplace.models import (
    ANONYMOUS_CUSTOMER,
    DEFAULT_RAIL,
    CreationResult,
    Payment,
    Receipt,
    Watcher,
    WatcherStatus,
    WatcherTypeStatus,
)
from x402_sentinel.marketplace.store import RecordStore

log = get_logger(__name__)

_http_url = TypeAdapter(AnyHttpUrl)

_TRANSITIONS: dict[WatcherStatus, frozenset[WatcherStatus]] = {
    WatcherStatus.ACTIVE: frozenset({WatcherStatus.PAUSED, WatcherStatus.EXPIRED}),
    WatcherStatus.PAUSED: frozenset({WatcherStatus.ACTIVE, WatcherStatus.EXPIRED}),
    WatcherStatus.EXPIRED: frozenset(),
}


def is_valid_webhook(webhook: Any) -> bool:
    """Return True if *webhook* is a well-formed http(s) URL with a host."""
    if not isinstance(webhook, str) or not webhook:
        return False
    try:
        url = _http_url.validate_python(webhook)
    except ValidationError:
        return False
    return url.scheme in ("http", "https") and bool(url.host)


class WatcherLifecycleManager:
    """Creates watchers against payment and moves them between states.

    Usage::

        manager = WatcherLifecycleManager(store, registry, ledger, accounting)
        result = await manager.create_watcher(type_id, config, webhook, "0xabc")
        if result.replayed:
            ...  # same request seen before, original records returned
    """

    def __init__(
        self,
        store: RecordStore,
        registry: EvaluatorRegistry,
        ledger: IdempotencyLedger,
        accounting: AccountingUpdater,
        event_bus: EventBus | None = None,
        network: str = "eip155:8453",
        rail: str = DEFAULT_RAIL,
    ) -> None:
        self._store = store
        self._registry = registry
        self._ledger = ledger
        self._accounting = accounting
        self._bus = event_bus or NullEventBus()
        self._network = network
        self._rail = rail

    # ---------------------------------------------------------------------------
    # Creation
    # ---------------------------------------------------------------------------

    async def create_watcher(
        self,
        type_id: str,
        config: dict[str, Any],
        webhook: str,
        customer_id: str | None = None,
        tx_hash: str | None = None,
        ttl_seconds: float | None = None,
    ) -> CreationResult:
        """Create a paid watcher, or replay the original creation.

        Raises:
            WatcherTypeNotFoundError:   *type_id* does not exist.
            WatcherTypeUnavailableError: The type is deprecated.
            RecordIntegrityError:       The type's operator is missing.
            InvalidWebhookError:        *webhook* is not an http(s) URL.
            InvalidConfigError:         The evaluator rejected *config*.
        """
        customer_id = customer_id or ANONYMOUS_CUSTOMER
        fulfillment_hash = self._ledger.fingerprint(type_id, config, webhook, customer_id)

        existing = await self._ledger.lookup(fulfillment_hash)
        if existing is not None:
            log.info(
                "watcher_creation_replayed",
                fulfillment_hash=fulfillment_hash,
                watcher_id=existing.watcher_id,
            )
            return await self._replay(existing)

        watcher_type = await self._store.get_watcher_type(type_id)
        if watcher_type is None:
            raise WatcherTypeNotFoundError(type_id)
        if watcher_type.status != WatcherTypeStatus.ACTIVE:
            raise WatcherTypeUnavailableError(type_id, watcher_type.status.value)

        operator = await self._store.get_operator(watcher_type.operator_id)
        if operator is None:
            log.error(
                "record_integrity_violation",
                reason="watcher type references a missing operator",
                type_id=type_id,
                operator_id=watcher_type.operator_id,
            )
            raise RecordIntegrityError(
                "Operator not found",
                context={"type_id": type_id, "operator_id": watcher_type.operator_id},
            )

        if not is_valid_webhook(webhook):
            raise InvalidWebhookError(webhook)

        if not isinstance(config, dict):
            raise InvalidConfigError(["config: must be an object"], watcher_type.executor_id)

        evaluator = self._registry.resolve(watcher_type.executor_id)
        validate = getattr(evaluator, "validate", None)
        if callable(validate):
            validation = validate(config)
            if validation is not None and not validation.valid:
                raise InvalidConfigError(list(validation.errors), watcher_type.executor_id)

        now = time.time()
        watcher = Watcher(
            type_id=type_id,
            operator_id=watcher_type.operator_id,
            customer_id=customer_id,
            config=config,
            webhook=webhook,
            created_at=now,
            expires_at=now + ttl_seconds if ttl_seconds else None,
        )
        payment = Payment.for_watcher(
            watcher, amount=watcher_type.price, network=self._network, tx_hash=tx_hash
        )
        receipt = Receipt(
            fulfillment_hash=fulfillment_hash,
            watcher_id=watcher.watcher_id,
            payment_id=payment.payment_id,
            amount=payment.amount,
            chain=self._network,
            rail=self._rail,
        )

        stored_receipt, created = await self._ledger.fulfill(watcher, payment, receipt)
        if not created:
            return await self._replay(stored_receipt)

        await self._accounting.record_creation(watcher_type, payment)

        log.info(
            "watcher_created",
            watcher_id=watcher.watcher_id,
            type_id=type_id,
            customer_id=customer_id,
            amount=payment.amount,
        )
        await self._bus.emit(
            TOPIC_WATCHERS,
            {
                "event": "watcher_created",
                "watcher_id": watcher.watcher_id,
                "type_id": type_id,
                "operator_id": watcher.operator_id,
                "customer_id": customer_id,
                "amount": payment.amount,
            },
        )
        return CreationResult(watcher=watcher, payment=payment, receipt=stored_receipt)

    async def _replay(self, receipt: Receipt) -> CreationResult:
        watcher = await self._store.get_watcher(receipt.watcher_id)
        payment = await self._store.get_payment(receipt.payment_id)
        if watcher is None or payment is None:
            log.error(
                "record_integrity_violation",
                reason="receipt references missing records",
                fulfillment_hash=receipt.fulfillment_hash,
                watcher_id=receipt.watcher_id,
                payment_id=receipt.payment_id,
            )
            raise RecordIntegrityError(
                "Receipt references missing watcher or payment",
                context={"fulfillment_hash": receipt.fulfillment_hash},
            )
        return CreationResult(watcher=watcher, payment=payment, receipt=receipt, replayed=True)

    # ---------------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------------

    async def get_watcher(self, watcher_id: str) -> Watcher:
        watcher = await self._store.get_watcher(watcher_id)
        if watcher is None:
            raise WatcherNotFoundError(watcher_id)
        return watcher

    async def list_watchers(
        self,
        operator_id: str | None = None,
        type_id: str | None = None,
        customer_id: str | None = None,
        status: WatcherStatus | None = None,
    ) -> list[Watcher]:
        return await self._store.list_watchers(
            operator_id=operator_id, type_id=type_id, customer_id=customer_id, status=status
        )

    # ---------------------------------------------------------------------------
    # Status transitions
    # ---------------------------------------------------------------------------

    async def pause(self, watcher_id: str) -> Watcher:
        return await self._transition(watcher_id, WatcherStatus.PAUSED)

    async def resume(self, watcher_id: str) -> Watcher:
        return await self._transition(watcher_id, WatcherStatus.ACTIVE)

    async def expire(self, watcher_id: str) -> Watcher:
        return await self._transition(watcher_id, WatcherStatus.EXPIRED)

    async def expire_overdue(self, now: float | None = None) -> list[str]:
        """Expire every non-expired watcher whose ``expires_at`` has passed."""
        now = time.time() if now is None else now
        expired = await self._store.expire_watchers(now)
        for watcher_id in expired:
            log.info("watcher_expired", watcher_id=watcher_id, reason="ttl")
            await self._bus.emit(
                TOPIC_WATCHERS,
                {"event": "watcher_expired", "watcher_id": watcher_id, "reason": "ttl"},
            )
        return expired

    async def _transition(self, watcher_id: str, target: WatcherStatus) -> Watcher:
        watcher = await self.get_watcher(watcher_id)
        if target not in _TRANSITIONS[watcher.status]:
            raise InvalidStatusTransitionError(
                watcher_id, watcher.status.value, target.value
            )
        updated = await self._store.update_watcher_status(watcher_id, target)
        if updated is None:
            raise WatcherNotFoundError(watcher_id)
        log.info(
            "watcher_status_changed",
            watcher_id=watcher_id,
            previous=watcher.status.value,
            status=target.value,
        )
        await self._bus.emit(
            TOPIC_WATCHERS,
            {
                "event": "watcher_status_changed",
                "watcher_id": watcher_id,
                "previous": watcher.status.value,
                "status": target.value,
            },
        )
        return updated
