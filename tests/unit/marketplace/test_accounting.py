"""Unit tests — marketplace/accounting.py (AccountingUpdater)."""

from __future__ import annotations

import asyncio

import pytest

from x402_sentinel.marketplace.accounting import AccountingUpdater
from x402_sentinel.marketplace.models import Operator, Payment, Watcher, WatcherType
from x402_sentinel.marketplace.store import SQLiteRecordStore


@pytest.mark.unit
class TestAccountingUpdater:
    async def test_record_creation(
        self,
        accounting: AccountingUpdater,
        store: SQLiteRecordStore,
        operator: Operator,
        watcher_type: WatcherType,
    ) -> None:
        watcher = Watcher(
            type_id=watcher_type.type_id,
            operator_id=operator.operator_id,
            customer_id="c",
            config={},
            webhook="https://example.com",
        )
        payment = Payment.for_watcher(watcher, amount=10.0, network="eip155:8453")
        await accounting.record_creation(watcher_type, payment)

        op = await store.get_operator(operator.operator_id)
        t = await store.get_watcher_type(watcher_type.type_id)
        assert op is not None and t is not None
        assert op.stats.watchers_created == 1
        assert op.stats.total_earned == pytest.approx(8.0)
        assert t.stats.instances == 1

    async def test_record_trigger_concurrently(
        self,
        accounting: AccountingUpdater,
        store: SQLiteRecordStore,
        operator: Operator,
        watcher_type: WatcherType,
    ) -> None:
        watcher = Watcher(
            type_id=watcher_type.type_id,
            operator_id=operator.operator_id,
            customer_id="c",
            config={},
            webhook="https://example.com",
        )
        await asyncio.gather(*(accounting.record_trigger(watcher) for _ in range(10)))

        op = await store.get_operator(operator.operator_id)
        t = await store.get_watcher_type(watcher_type.type_id)
        assert op is not None and t is not None
        assert op.stats.total_triggers == 10
        assert t.stats.triggers == 10
