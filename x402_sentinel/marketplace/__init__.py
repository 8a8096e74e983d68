"""Marketplace layer — records, persistence, idempotent creation, accounting."""

from x402_sentinel.marketplace.accounting import AccountingUpdater
from x402_sentinel.marketplace.catalog import Catalog
from x402_sentinel.marketplace.ledger import IdempotencyLedger, fingerprint
from x402_sentinel.marketplace.lifecycle import WatcherLifecycleManager
from x402_sentinel.marketplace.models import (
    CreationResult,
    Operator,
    OperatorStatus,
    Payment,
    Receipt,
    Watcher,
    WatcherStatus,
    WatcherType,
    WatcherTypeStatus,
)
from x402_sentinel.marketplace.store import RecordStore, SQLiteRecordStore

__all__ = [
    "AccountingUpdater",
    "Catalog",
    "IdempotencyLedger",
    "fingerprint",
    "WatcherLifecycleManager",
    "CreationResult",
    "Operator",
    "OperatorStatus",
    "Payment",
    "Receipt",
    "Watcher",
    "WatcherStatus",
    "WatcherType",
    "WatcherTypeStatus",
    "RecordStore",
    "SQLiteRecordStore",
]
