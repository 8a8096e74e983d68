"""Unit tests — marketplace/lifecycle.py (WatcherLifecycleManager)."""

from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest

from x402_sentinel.exceptions import (
    InvalidConfigError,
    InvalidStatusTransitionError,
    InvalidWebhookError,
    RecordIntegrityError,
    WatcherNotFoundError,
    WatcherTypeNotFoundError,
    WatcherTypeUnavailableError,
)
from x402_sentinel.marketplace.catalog import Catalog
from x402_sentinel.marketplace.lifecycle import WatcherLifecycleManager, is_valid_webhook
from x402_sentinel.marketplace.models import (
    ANONYMOUS_CUSTOMER,
    Operator,
    WatcherStatus,
    WatcherType,
)
from x402_sentinel.marketplace.store import SQLiteRecordStore

WEBHOOK = "https://hooks.example.com/sentinel"


@pytest.mark.unit
class TestWebhookValidation:
    @pytest.mark.parametrize(
        "url",
        ["https://hooks.example.com/x", "http://localhost:8080/hook", "http://10.0.0.1/a?b=c"],
    )
    def test_valid(self, url: str) -> None:
        assert is_valid_webhook(url) is True

    @pytest.mark.parametrize(
        "url",
        ["", "ftp://example.com/x", "httpfoo", "http://", "not a url", None, 42],
    )
    def test_invalid(self, url: object) -> None:
        assert is_valid_webhook(url) is False


@pytest.mark.unit
class TestCreateWatcher:
    async def test_creates_records_and_stats(
        self,
        lifecycle: WatcherLifecycleManager,
        store: SQLiteRecordStore,
        operator: Operator,
        watcher_type: WatcherType,
    ) -> None:
        result = await lifecycle.create_watcher(
            watcher_type.type_id, {"n": 1}, WEBHOOK, "0xcustomer"
        )

        assert result.replayed is False
        assert result.watcher.status == WatcherStatus.ACTIVE
        assert result.watcher.trigger_count == 0
        assert result.watcher.operator_id == operator.operator_id
        assert result.payment.amount == pytest.approx(10.0)
        assert result.payment.operator_share == pytest.approx(8.0)
        assert result.payment.platform_share == pytest.approx(2.0)
        assert result.receipt.watcher_id == result.watcher.watcher_id
        assert result.receipt.payment_id == result.payment.payment_id
        assert result.receipt.rail == "x402"
        assert result.receipt.chain == "eip155:8453"

        op = await store.get_operator(operator.operator_id)
        t = await store.get_watcher_type(watcher_type.type_id)
        assert op is not None and t is not None
        assert op.stats.watchers_created == 1
        assert op.stats.total_earned == pytest.approx(8.0)
        assert t.stats.instances == 1

    async def test_customer_defaults_to_anonymous(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        result = await lifecycle.create_watcher(watcher_type.type_id, {}, WEBHOOK)
        assert result.watcher.customer_id == ANONYMOUS_CUSTOMER

    async def test_replay_returns_original_without_side_effects(
        self,
        lifecycle: WatcherLifecycleManager,
        store: SQLiteRecordStore,
        operator: Operator,
        watcher_type: WatcherType,
    ) -> None:
        first = await lifecycle.create_watcher(watcher_type.type_id, {"n": 1}, WEBHOOK, "c")
        second = await lifecycle.create_watcher(watcher_type.type_id, {"n": 1}, WEBHOOK, "c")

        assert second.replayed is True
        assert second.watcher.watcher_id == first.watcher.watcher_id
        assert second.payment.payment_id == first.payment.payment_id
        assert second.receipt.receipt_id == first.receipt.receipt_id
        assert len(await store.list_watchers()) == 1
        assert len(await store.list_payments()) == 1

        op = await store.get_operator(operator.operator_id)
        assert op is not None
        assert op.stats.watchers_created == 1
        assert op.stats.total_earned == pytest.approx(8.0)

    async def test_replay_ignores_key_order(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        first = await lifecycle.create_watcher(
            watcher_type.type_id, {"a": 1, "b": 2}, WEBHOOK, "c"
        )
        second = await lifecycle.create_watcher(
            watcher_type.type_id, {"b": 2, "a": 1}, WEBHOOK, "c"
        )
        assert second.replayed is True
        assert second.watcher.watcher_id == first.watcher.watcher_id

    async def test_different_customer_is_new_watcher(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        a = await lifecycle.create_watcher(watcher_type.type_id, {}, WEBHOOK, "alice")
        b = await lifecycle.create_watcher(watcher_type.type_id, {}, WEBHOOK, "bob")
        assert b.replayed is False
        assert a.watcher.watcher_id != b.watcher.watcher_id

    async def test_concurrent_identical_requests_create_once(
        self,
        lifecycle: WatcherLifecycleManager,
        store: SQLiteRecordStore,
        operator: Operator,
        watcher_type: WatcherType,
    ) -> None:
        results = await asyncio.gather(
            *(
                lifecycle.create_watcher(watcher_type.type_id, {"n": 7}, WEBHOOK, "c")
                for _ in range(5)
            )
        )
        assert sum(1 for r in results if not r.replayed) == 1
        assert len({r.watcher.watcher_id for r in results}) == 1
        assert len(await store.list_watchers()) == 1

        op = await store.get_operator(operator.operator_id)
        assert op is not None
        assert op.stats.watchers_created == 1

    async def test_ttl_sets_expiry(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        result = await lifecycle.create_watcher(
            watcher_type.type_id, {}, WEBHOOK, "c", ttl_seconds=3600
        )
        assert result.watcher.expires_at is not None
        assert result.watcher.expires_at == pytest.approx(result.watcher.created_at + 3600)


@pytest.mark.unit
class TestCreateWatcherErrors:
    async def test_unknown_type(self, lifecycle: WatcherLifecycleManager) -> None:
        with pytest.raises(WatcherTypeNotFoundError):
            await lifecycle.create_watcher("missing", {}, WEBHOOK, "c")

    async def test_deprecated_type(
        self,
        lifecycle: WatcherLifecycleManager,
        catalog: Catalog,
        watcher_type: WatcherType,
    ) -> None:
        await catalog.deprecate_watcher_type(watcher_type.type_id)
        with pytest.raises(WatcherTypeUnavailableError):
            await lifecycle.create_watcher(watcher_type.type_id, {}, WEBHOOK, "c")

    async def test_missing_operator_is_integrity_error(
        self, lifecycle: WatcherLifecycleManager, store: SQLiteRecordStore
    ) -> None:
        orphan = await store.create_watcher_type(
            WatcherType(
                operator_id="vanished", name="Orphan", category="custom", price=1.0,
                executor_id="fake",
            )
        )
        with pytest.raises(RecordIntegrityError):
            await lifecycle.create_watcher(orphan.type_id, {}, WEBHOOK, "c")
        assert await store.list_watchers() == []

    @pytest.mark.parametrize("webhook", ["", "ftp://x.example.com", "example.com/hook"])
    async def test_invalid_webhook(
        self,
        lifecycle: WatcherLifecycleManager,
        store: SQLiteRecordStore,
        watcher_type: WatcherType,
        webhook: str,
    ) -> None:
        with pytest.raises(InvalidWebhookError):
            await lifecycle.create_watcher(watcher_type.type_id, {}, webhook, "c")
        assert await store.list_payments() == []

    async def test_invalid_config(
        self,
        lifecycle: WatcherLifecycleManager,
        store: SQLiteRecordStore,
        watcher_type: WatcherType,
    ) -> None:
        with pytest.raises(InvalidConfigError) as exc_info:
            await lifecycle.create_watcher(watcher_type.type_id, {"invalid": True}, WEBHOOK, "c")
        assert exc_info.value.errors == ["invalid: rejected by fake"]
        assert await store.list_watchers() == []

    async def test_non_object_config(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        with pytest.raises(InvalidConfigError):
            await lifecycle.create_watcher(watcher_type.type_id, ["a"], WEBHOOK, "c")  # type: ignore[arg-type]

    async def test_type_without_executor_skips_validation(
        self,
        lifecycle: WatcherLifecycleManager,
        catalog: Catalog,
        operator: Operator,
    ) -> None:
        t = await catalog.register_watcher_type(
            operator_id=operator.operator_id, name="Manual", category="custom", price=1.0
        )
        result = await lifecycle.create_watcher(t.type_id, {"invalid": True}, WEBHOOK, "c")
        assert result.replayed is False


@pytest.mark.unit
class TestStatusTransitions:
    async def test_pause_resume_expire(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        created = await lifecycle.create_watcher(watcher_type.type_id, {}, WEBHOOK, "c")
        wid = created.watcher.watcher_id

        assert (await lifecycle.pause(wid)).status == WatcherStatus.PAUSED
        assert (await lifecycle.resume(wid)).status == WatcherStatus.ACTIVE
        assert (await lifecycle.expire(wid)).status == WatcherStatus.EXPIRED

    async def test_expired_is_terminal(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        created = await lifecycle.create_watcher(watcher_type.type_id, {}, WEBHOOK, "c")
        wid = created.watcher.watcher_id
        await lifecycle.expire(wid)
        with pytest.raises(InvalidStatusTransitionError):
            await lifecycle.resume(wid)
        with pytest.raises(InvalidStatusTransitionError):
            await lifecycle.pause(wid)

    async def test_pause_twice_rejected(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        created = await lifecycle.create_watcher(watcher_type.type_id, {}, WEBHOOK, "c")
        await lifecycle.pause(created.watcher.watcher_id)
        with pytest.raises(InvalidStatusTransitionError):
            await lifecycle.pause(created.watcher.watcher_id)

    async def test_unknown_watcher(self, lifecycle: WatcherLifecycleManager) -> None:
        with pytest.raises(WatcherNotFoundError):
            await lifecycle.get_watcher("nope")
        with pytest.raises(WatcherNotFoundError):
            await lifecycle.pause("nope")

    async def test_watcher_vanishing_mid_transition(
        self,
        lifecycle: WatcherLifecycleManager,
        store: SQLiteRecordStore,
        watcher_type: WatcherType,
    ) -> None:
        created = await lifecycle.create_watcher(watcher_type.type_id, {}, WEBHOOK, "c")
        with patch.object(store, "update_watcher_status", AsyncMock(return_value=None)):
            with pytest.raises(WatcherNotFoundError):
                await lifecycle.pause(created.watcher.watcher_id)

    async def test_expire_overdue(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        short = await lifecycle.create_watcher(
            watcher_type.type_id, {"n": 1}, WEBHOOK, "c", ttl_seconds=10
        )
        long = await lifecycle.create_watcher(
            watcher_type.type_id, {"n": 2}, WEBHOOK, "c", ttl_seconds=10_000
        )
        expired = await lifecycle.expire_overdue(now=time.time() + 60)
        assert expired == [short.watcher.watcher_id]
        assert (await lifecycle.get_watcher(long.watcher.watcher_id)).status == WatcherStatus.ACTIVE

    async def test_list_watchers_filters(
        self, lifecycle: WatcherLifecycleManager, watcher_type: WatcherType
    ) -> None:
        a = await lifecycle.create_watcher(watcher_type.type_id, {"n": 1}, WEBHOOK, "alice")
        await lifecycle.create_watcher(watcher_type.type_id, {"n": 2}, WEBHOOK, "bob")
        await lifecycle.pause(a.watcher.watcher_id)

        alice = await lifecycle.list_watchers(customer_id="alice")
        assert [w.watcher_id for w in alice] == [a.watcher.watcher_id]
        active = await lifecycle.list_watchers(status=WatcherStatus.ACTIVE)
        assert len(active) == 1
