"""Unit tests — marketplace/store.py (SQLiteRecordStore)."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from x402_sentinel.exceptions import ReceiptExistsError
from x402_sentinel.marketplace.models import (
    Operator,
    Payment,
    Receipt,
    Watcher,
    WatcherStatus,
    WatcherType,
    WatcherTypeStatus,
)
from x402_sentinel.marketplace.store import SQLiteRecordStore


def _bundle(
    fulfillment_hash: str = "h1", type_id: str = "t1", operator_id: str = "op1", **kwargs
) -> tuple[Watcher, Payment, Receipt]:
    watcher = Watcher(
        type_id=type_id,
        operator_id=operator_id,
        customer_id="cust",
        config={"threshold": 1},
        webhook="https://example.com/hook",
        **kwargs,
    )
    payment = Payment.for_watcher(watcher, amount=10.0, network="eip155:8453")
    receipt = Receipt(
        fulfillment_hash=fulfillment_hash,
        watcher_id=watcher.watcher_id,
        payment_id=payment.payment_id,
        amount=payment.amount,
        chain="eip155:8453",
    )
    return watcher, payment, receipt


@pytest.mark.unit
class TestOperatorsAndTypes:
    async def test_create_and_get_operator(self, store: SQLiteRecordStore) -> None:
        op = await store.create_operator(Operator(name="acme", wallet="0xAbC"))
        loaded = await store.get_operator(op.operator_id)
        assert loaded is not None
        assert loaded.name == "acme"
        assert loaded.stats.watchers_created == 0

    async def test_get_missing_returns_none(self, store: SQLiteRecordStore) -> None:
        assert await store.get_operator("nope") is None
        assert await store.get_watcher_type("nope") is None
        assert await store.get_watcher("nope") is None

    async def test_watcher_type_roundtrip(self, store: SQLiteRecordStore) -> None:
        t = WatcherType(
            operator_id="op1",
            name="Balance",
            category="wallet",
            price=2.5,
            executor_id="wallet-balance",
            config_schema={"type": "object"},
        )
        await store.create_watcher_type(t)
        loaded = await store.get_watcher_type(t.type_id)
        assert loaded is not None
        assert loaded.config_schema == {"type": "object"}
        assert loaded.executor_id == "wallet-balance"

    async def test_list_watcher_types_filters(self, store: SQLiteRecordStore) -> None:
        await store.create_watcher_type(WatcherType(operator_id="a", name="1", category="wallet", price=1))
        await store.create_watcher_type(WatcherType(operator_id="a", name="2", category="price", price=1))
        await store.create_watcher_type(WatcherType(operator_id="b", name="3", category="price", price=1))
        assert len(await store.list_watcher_types(operator_id="a")) == 2
        assert len(await store.list_watcher_types(category="price")) == 2
        assert len(await store.list_watcher_types(operator_id="a", category="price")) == 1

    async def test_update_watcher_type_status(self, store: SQLiteRecordStore) -> None:
        t = await store.create_watcher_type(
            WatcherType(operator_id="a", name="1", category="wallet", price=1)
        )
        updated = await store.update_watcher_type_status(t.type_id, WatcherTypeStatus.DEPRECATED)
        assert updated is not None
        assert updated.status == WatcherTypeStatus.DEPRECATED


@pytest.mark.unit
class TestStats:
    async def test_increment_operator_stats(self, store: SQLiteRecordStore) -> None:
        op = await store.create_operator(Operator(name="acme", wallet="0x1"))
        await store.increment_operator_stats(op.operator_id, "watchers_created")
        await store.increment_operator_stats(op.operator_id, "total_earned", 8.0)
        loaded = await store.get_operator(op.operator_id)
        assert loaded is not None
        assert loaded.stats.watchers_created == 1
        assert loaded.stats.total_earned == pytest.approx(8.0)

    async def test_unknown_stat_rejected(self, store: SQLiteRecordStore) -> None:
        with pytest.raises(ValueError):
            await store.increment_operator_stats("op", "name")
        with pytest.raises(ValueError):
            await store.increment_watcher_type_stats("t", "price")

    async def test_concurrent_increments_not_lost(self, store: SQLiteRecordStore) -> None:
        t = await store.create_watcher_type(
            WatcherType(operator_id="a", name="1", category="wallet", price=1)
        )
        await asyncio.gather(
            *(store.increment_watcher_type_stats(t.type_id, "triggers") for _ in range(25))
        )
        loaded = await store.get_watcher_type(t.type_id)
        assert loaded is not None
        assert loaded.stats.triggers == 25


@pytest.mark.unit
class TestFulfillment:
    async def test_create_fulfillment_persists_all(self, store: SQLiteRecordStore) -> None:
        watcher, payment, receipt = _bundle()
        await store.create_fulfillment(watcher, payment, receipt)
        assert await store.get_watcher(watcher.watcher_id) is not None
        assert await store.get_payment(payment.payment_id) is not None
        stored = await store.get_receipt("h1")
        assert stored is not None
        assert stored.watcher_id == watcher.watcher_id
        assert stored.rail == "x402"

    async def test_duplicate_hash_writes_nothing(self, store: SQLiteRecordStore) -> None:
        await store.create_fulfillment(*_bundle("h1"))
        dup_watcher, dup_payment, dup_receipt = _bundle("h1")
        with pytest.raises(ReceiptExistsError):
            await store.create_fulfillment(dup_watcher, dup_payment, dup_receipt)
        assert await store.get_watcher(dup_watcher.watcher_id) is None
        assert await store.get_payment(dup_payment.payment_id) is None
        assert len(await store.list_watchers()) == 1
        assert len(await store.list_payments()) == 1

    async def test_insert_receipt_duplicate(self, store: SQLiteRecordStore) -> None:
        _, _, receipt = _bundle("h2")
        await store.insert_receipt(receipt)
        _, _, again = _bundle("h2")
        with pytest.raises(ReceiptExistsError):
            await store.insert_receipt(again)


@pytest.mark.unit
class TestWatcherBookkeeping:
    async def test_record_check_and_trigger(self, store: SQLiteRecordStore) -> None:
        watcher, payment, receipt = _bundle()
        await store.create_fulfillment(watcher, payment, receipt)

        await store.record_check(watcher.watcher_id, 1000.0, {"balance": 0.2})
        loaded = await store.get_watcher(watcher.watcher_id)
        assert loaded is not None
        assert loaded.last_checked == 1000.0
        assert loaded.last_check_result == {"balance": 0.2}
        assert loaded.trigger_count == 0
        assert loaded.last_triggered is None

        await store.record_trigger(watcher.watcher_id, 1001.0)
        await store.record_trigger(watcher.watcher_id, 1002.0)
        loaded = await store.get_watcher(watcher.watcher_id)
        assert loaded is not None
        assert loaded.trigger_count == 2
        assert loaded.last_triggered == 1002.0
        assert loaded.condition_active is True

        await store.record_check(watcher.watcher_id, 1003.0, {}, condition_active=False)
        loaded = await store.get_watcher(watcher.watcher_id)
        assert loaded is not None
        assert loaded.condition_active is False
        assert loaded.trigger_count == 2

    async def test_list_watchers_by_status(self, store: SQLiteRecordStore) -> None:
        w1, p1, r1 = _bundle("a")
        w2, p2, r2 = _bundle("b")
        await store.create_fulfillment(w1, p1, r1)
        await store.create_fulfillment(w2, p2, r2)
        await store.update_watcher_status(w2.watcher_id, WatcherStatus.PAUSED)
        active = await store.list_watchers(status=WatcherStatus.ACTIVE)
        assert [w.watcher_id for w in active] == [w1.watcher_id]

    async def test_expire_watchers(self, store: SQLiteRecordStore) -> None:
        overdue, p1, r1 = _bundle("a", expires_at=100.0)
        future, p2, r2 = _bundle("b", expires_at=10_000.0)
        forever, p3, r3 = _bundle("c")
        for bundle in ((overdue, p1, r1), (future, p2, r2), (forever, p3, r3)):
            await store.create_fulfillment(*bundle)

        expired = await store.expire_watchers(now=500.0)
        assert expired == [overdue.watcher_id]
        loaded = await store.get_watcher(overdue.watcher_id)
        assert loaded is not None
        assert loaded.status == WatcherStatus.EXPIRED
        assert await store.expire_watchers(now=500.0) == []

    async def test_persistence_across_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "persist.db"
        s1 = SQLiteRecordStore(path)
        await s1.init()
        watcher, payment, receipt = _bundle("persist")
        await s1.create_fulfillment(watcher, payment, receipt)
        await s1.close()

        s2 = SQLiteRecordStore(path)
        await s2.init()
        try:
            assert await s2.get_receipt("persist") is not None
            loaded = await s2.get_watcher(watcher.watcher_id)
            assert loaded is not None
            assert loaded.config == {"threshold": 1}
        finally:
            await s2.close()
