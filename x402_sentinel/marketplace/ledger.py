"""Idempotency ledger — at most one receipt per fulfillment.

A *fulfillment* is identified by a deterministic hash of the creation
request ``(type_id, config, webhook, customer_id)``.  Replaying the same
request (client retry, duplicated payment callback) maps onto the same
hash, and the ledger hands back the original receipt instead of charging
or creating a second watcher.

The hash is SHA-256 over canonical JSON: keys sorted recursively, compact
separators, no salt.  It is stable across process restarts, so receipts
survive and deduplicate across deployments.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from x402_sentinel.exceptions import ReceiptExistsError
from x402_sentinel.logging import get_logger
from x402_sentinel.marketplace.models import Payment, Receipt, Watcher
from x402_sentinel.marketplace.store import RecordStore

log = get_logger(__name__)


def canonical_json(value: Any) -> str:
    """Serialise *value* with sorted keys at every depth and no whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(
    type_id: str,
    config: dict[str, Any],
    webhook: str,
    customer_id: str,
) -> str:
    """Return the fulfillment hash for a creation request (64 hex chars)."""
    payload = canonical_json(
        {
            "type_id": type_id,
            "config": config,
            "webhook": webhook,
            "customer_id": customer_id,
        }
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class IdempotencyLedger:
    """Receipt lookup and atomic fulfillment on top of a RecordStore.

    Usage::

        ledger = IdempotencyLedger(store)
        h = ledger.fingerprint(type_id, config, webhook, customer_id)
        existing = await ledger.lookup(h)
        if existing is None:
            receipt, created = await ledger.fulfill(watcher, payment, receipt)
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    @staticmethod
    def fingerprint(
        type_id: str,
        config: dict[str, Any],
        webhook: str,
        customer_id: str,
    ) -> str:
        return fingerprint(type_id, config, webhook, customer_id)

    async def lookup(self, fulfillment_hash: str) -> Receipt | None:
        return await self._store.get_receipt(fulfillment_hash)

    async def record(self, receipt: Receipt) -> Receipt:
        """Store a standalone receipt.

        Raises:
            ReceiptExistsError: A receipt for the same hash already exists.
        """
        await self._store.insert_receipt(receipt)
        log.info(
            "receipt_recorded",
            fulfillment_hash=receipt.fulfillment_hash,
            watcher_id=receipt.watcher_id,
        )
        return receipt

    async def fulfill(
        self, watcher: Watcher, payment: Payment, receipt: Receipt
    ) -> tuple[Receipt, bool]:
        """Persist watcher + payment + receipt as one unit.

        Returns ``(receipt, created)``.  When a concurrent request with the
        same hash won the race, nothing is written and the winner's receipt
        is returned with ``created=False``.
        """
        try:
            await self._store.create_fulfillment(watcher, payment, receipt)
        except ReceiptExistsError:
            winner = await self._store.get_receipt(receipt.fulfillment_hash)
            if winner is None:
                raise
            log.info(
                "fulfillment_race_lost",
                fulfillment_hash=receipt.fulfillment_hash,
                winner_watcher_id=winner.watcher_id,
            )
            return winner, False
        log.info(
            "fulfillment_recorded",
            fulfillment_hash=receipt.fulfillment_hash,
            watcher_id=watcher.watcher_id,
            payment_id=payment.payment_id,
        )
        return receipt, True
