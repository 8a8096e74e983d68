"""Accounting updater — operator and watcher-type statistics.

Every increment is a single ``col = col + ?`` statement in the store, so
concurrent creations and triggers never lose updates.
"""

from __future__ import annotations

from x402_sentinel.logging import get_logger
from x402_sentinel.marketplace.models import Payment, Watcher, WatcherType
from x402_sentinel.marketplace.store import RecordStore

log = get_logger(__name__)


class AccountingUpdater:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def record_creation(self, watcher_type: WatcherType, payment: Payment) -> None:
        """Credit the operator for a new paid watcher."""
        await self._store.increment_operator_stats(
            watcher_type.operator_id, "watchers_created", 1
        )
        await self._store.increment_operator_stats(
            watcher_type.operator_id, "total_earned", payment.operator_share
        )
        await self._store.increment_watcher_type_stats(watcher_type.type_id, "instances", 1)
        log.debug(
            "creation_accounted",
            operator_id=watcher_type.operator_id,
            type_id=watcher_type.type_id,
            operator_share=payment.operator_share,
        )

    async def record_trigger(self, watcher: Watcher) -> None:
        """Count one delivered trigger for the watcher's operator and type."""
        await self._store.increment_operator_stats(watcher.operator_id, "total_triggers", 1)
        await self._store.increment_watcher_type_stats(watcher.type_id, "triggers", 1)
        log.debug(
            "trigger_accounted",
            operator_id=watcher.operator_id,
            type_id=watcher.type_id,
            watcher_id=watcher.watcher_id,
        )
