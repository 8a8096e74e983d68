"""Record Store — persistence for operators, watcher types, watchers,
payments and receipts.

``RecordStore`` is the contract the core consumes.  ``SQLiteRecordStore``
is the shipped implementation:
    - Single aiosqlite connection per store instance
    - All I/O is async
    - JSON serialisation for opaque fields (config, check results, schemas)
    - No ORM dependency
    - Every write runs under one asyncio.Lock, so a multi-statement write
      is never interleaved with another coroutine's statements

Atomicity guarantees the core relies on
---------------------------------------
``create_fulfillment``  — receipt + watcher + payment in one transaction.
                          ``receipts.fulfillment_hash`` is UNIQUE; a
                          duplicate raises ReceiptExistsError and nothing
                          is written.
``increment_*_stats``   — ``col = col + ?`` in SQL, never read-modify-write.
``record_trigger``      — ``trigger_count = trigger_count + 1`` in SQL.

Schema
------
operators     (operator_id PK, ..., watchers_created, total_triggers, total_earned)
watcher_types (type_id PK, operator_id, executor_id, price, ..., instances, triggers)
watchers      (watcher_id PK, type_id, status, ..., last_checked, trigger_count)
payments      (payment_id PK, watcher_id, amount, operator_share, platform_share)
receipts      (receipt_id PK, fulfillment_hash UNIQUE, watcher_id, payment_id)
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiosqlite

from x402_sentinel.exceptions import ReceiptExistsError
from x402_sentinel.logging import get_logger
from x402_sentinel.marketplace.models import (
    Operator,
    OperatorStats,
    OperatorStatus,
    Payment,
    Receipt,
    Watcher,
    WatcherStatus,
    WatcherType,
    WatcherTypeStats,
    WatcherTypeStatus,
)

log = get_logger(__name__)

OPERATOR_STAT_FIELDS = frozenset({"watchers_created", "total_triggers", "total_earned"})
WATCHER_TYPE_STAT_FIELDS = frozenset({"instances", "triggers"})

_SCHEMA = """
CREATE TABLE IF NOT EXISTS operators (
    operator_id      TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    wallet           TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    website          TEXT,
    status           TEXT NOT NULL DEFAULT 'active',
    created_at       REAL NOT NULL,
    watchers_created INTEGER NOT NULL DEFAULT 0,
    total_triggers   INTEGER NOT NULL DEFAULT 0,
    total_earned     REAL NOT NULL DEFAULT 0,
    uptime_percent   REAL NOT NULL DEFAULT 100
);
CREATE TABLE IF NOT EXISTS watcher_types (
    type_id       TEXT PRIMARY KEY,
    operator_id   TEXT NOT NULL,
    name          TEXT NOT NULL,
    category      TEXT NOT NULL,
    description   TEXT NOT NULL DEFAULT '',
    price         REAL NOT NULL,
    executor_id   TEXT,
    config_schema TEXT NOT NULL DEFAULT '{}',
    status        TEXT NOT NULL DEFAULT 'active',
    created_at    REAL NOT NULL,
    instances     INTEGER NOT NULL DEFAULT 0,
    triggers      INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS watchers (
    watcher_id        TEXT PRIMARY KEY,
    type_id           TEXT NOT NULL,
    operator_id       TEXT NOT NULL,
    customer_id       TEXT NOT NULL,
    config            TEXT NOT NULL,
    webhook           TEXT NOT NULL,
    status            TEXT NOT NULL DEFAULT 'active',
    created_at        REAL NOT NULL,
    expires_at        REAL,
    last_checked      REAL,
    last_check_result TEXT,
    last_triggered    REAL,
    trigger_count     INTEGER NOT NULL DEFAULT 0,
    condition_active  INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS payments (
    payment_id     TEXT PRIMARY KEY,
    watcher_id     TEXT NOT NULL,
    operator_id    TEXT NOT NULL,
    customer_id    TEXT NOT NULL,
    amount         REAL NOT NULL,
    operator_share REAL NOT NULL,
    platform_share REAL NOT NULL,
    tx_hash        TEXT,
    network        TEXT NOT NULL,
    created_at     REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS receipts (
    receipt_id       TEXT PRIMARY KEY,
    fulfillment_hash TEXT NOT NULL UNIQUE,
    watcher_id       TEXT NOT NULL,
    payment_id       TEXT NOT NULL,
    amount           REAL NOT NULL,
    chain            TEXT NOT NULL,
    rail             TEXT NOT NULL,
    created_at       REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_watchers_status   ON watchers(status);
CREATE INDEX IF NOT EXISTS idx_watchers_customer ON watchers(customer_id);
CREATE INDEX IF NOT EXISTS idx_types_operator    ON watcher_types(operator_id);
CREATE INDEX IF NOT EXISTS idx_payments_operator ON payments(operator_id);
"""


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class RecordStore(ABC):
    """CRUD + filtered-list operations over all marketplace entities."""

    # --- operators ---
    @abstractmethod
    async def create_operator(self, operator: Operator) -> Operator: ...

    @abstractmethod
    async def get_operator(self, operator_id: str) -> Operator | None: ...

    @abstractmethod
    async def list_operators(self, status: OperatorStatus | None = None) -> list[Operator]: ...

    @abstractmethod
    async def increment_operator_stats(
        self, operator_id: str, field: str, amount: float = 1
    ) -> None: ...

    # --- watcher types ---
    @abstractmethod
    async def create_watcher_type(self, watcher_type: WatcherType) -> WatcherType: ...

    @abstractmethod
    async def get_watcher_type(self, type_id: str) -> WatcherType | None: ...

    @abstractmethod
    async def list_watcher_types(
        self,
        operator_id: str | None = None,
        category: str | None = None,
        status: WatcherTypeStatus | None = None,
    ) -> list[WatcherType]: ...

    @abstractmethod
    async def update_watcher_type_status(
        self, type_id: str, status: WatcherTypeStatus
    ) -> WatcherType | None: ...

    @abstractmethod
    async def increment_watcher_type_stats(
        self, type_id: str, field: str, amount: int = 1
    ) -> None: ...

    # --- watchers ---
    @abstractmethod
    async def get_watcher(self, watcher_id: str) -> Watcher | None: ...

    @abstractmethod
    async def list_watchers(
        self,
        operator_id: str | None = None,
        type_id: str | None = None,
        customer_id: str | None = None,
        status: WatcherStatus | None = None,
    ) -> list[Watcher]: ...

    @abstractmethod
    async def update_watcher_status(
        self, watcher_id: str, status: WatcherStatus
    ) -> Watcher | None: ...

    @abstractmethod
    async def record_check(
        self,
        watcher_id: str,
        checked_at: float,
        result: dict[str, Any] | None,
        condition_active: bool | None = None,
    ) -> None:
        """Persist ``last_checked`` / ``last_check_result`` (and optionally
        ``condition_active``) without touching trigger bookkeeping."""

    @abstractmethod
    async def record_trigger(self, watcher_id: str, triggered_at: float) -> None:
        """Atomically ``trigger_count += 1`` and set ``last_triggered``."""

    @abstractmethod
    async def expire_watchers(self, now: float) -> list[str]:
        """Mark non-expired watchers past ``expires_at`` as expired."""

    # --- payments / receipts ---
    @abstractmethod
    async def get_payment(self, payment_id: str) -> Payment | None: ...

    @abstractmethod
    async def list_payments(
        self,
        operator_id: str | None = None,
        customer_id: str | None = None,
        watcher_id: str | None = None,
    ) -> list[Payment]: ...

    @abstractmethod
    async def get_receipt(self, fulfillment_hash: str) -> Receipt | None: ...

    @abstractmethod
    async def insert_receipt(self, receipt: Receipt) -> None:
        """Raise ReceiptExistsError if the fulfillment hash is taken."""

    @abstractmethod
    async def create_fulfillment(
        self, watcher: Watcher, payment: Payment, receipt: Receipt
    ) -> None:
        """Persist all three records atomically, or none of them.

        Raises ReceiptExistsError when ``receipt.fulfillment_hash`` is taken.
        """


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _operator_from_row(r: Any) -> Operator:
    return Operator(
        operator_id=r["operator_id"],
        name=r["name"],
        wallet=r["wallet"],
        description=r["description"],
        website=r["website"],
        status=OperatorStatus(r["status"]),
        created_at=r["created_at"],
        stats=OperatorStats(
            watchers_created=r["watchers_created"],
            total_triggers=r["total_triggers"],
            total_earned=r["total_earned"],
            uptime_percent=r["uptime_percent"],
        ),
    )


def _watcher_type_from_row(r: Any) -> WatcherType:
    return WatcherType(
        type_id=r["type_id"],
        operator_id=r["operator_id"],
        name=r["name"],
        category=r["category"],
        description=r["description"],
        price=r["price"],
        executor_id=r["executor_id"],
        config_schema=json.loads(r["config_schema"] or "{}"),
        status=WatcherTypeStatus(r["status"]),
        created_at=r["created_at"],
        stats=WatcherTypeStats(instances=r["instances"], triggers=r["triggers"]),
    )


def _watcher_from_row(r: Any) -> Watcher:
    return Watcher(
        watcher_id=r["watcher_id"],
        type_id=r["type_id"],
        operator_id=r["operator_id"],
        customer_id=r["customer_id"],
        config=json.loads(r["config"]),
        webhook=r["webhook"],
        status=WatcherStatus(r["status"]),
        created_at=r["created_at"],
        expires_at=r["expires_at"],
        last_checked=r["last_checked"],
        last_check_result=json.loads(r["last_check_result"]) if r["last_check_result"] else None,
        last_triggered=r["last_triggered"],
        trigger_count=r["trigger_count"],
        condition_active=bool(r["condition_active"]),
    )


def _payment_from_row(r: Any) -> Payment:
    return Payment(
        payment_id=r["payment_id"],
        watcher_id=r["watcher_id"],
        operator_id=r["operator_id"],
        customer_id=r["customer_id"],
        amount=r["amount"],
        operator_share=r["operator_share"],
        platform_share=r["platform_share"],
        tx_hash=r["tx_hash"],
        network=r["network"],
        created_at=r["created_at"],
    )


def _receipt_from_row(r: Any) -> Receipt:
    return Receipt(
        receipt_id=r["receipt_id"],
        fulfillment_hash=r["fulfillment_hash"],
        watcher_id=r["watcher_id"],
        payment_id=r["payment_id"],
        amount=r["amount"],
        chain=r["chain"],
        rail=r["rail"],
        created_at=r["created_at"],
    )


def _where(filters: dict[str, Any]) -> tuple[str, tuple[Any, ...]]:
    """Build a WHERE clause from non-None *filters* (column → value)."""
    clauses = []
    params: list[Any] = []
    for column, value in filters.items():
        if value is None:
            continue
        clauses.append(f"{column} = ?")
        params.append(value.value if hasattr(value, "value") else value)
    if not clauses:
        return "", ()
    return " WHERE " + " AND ".join(clauses), tuple(params)


# ---------------------------------------------------------------------------
# SQLiteRecordStore
# ---------------------------------------------------------------------------


class SQLiteRecordStore(RecordStore):
    """Async SQLite record store.

    Usage::

        store = SQLiteRecordStore(Path("~/.x402-sentinel/sentinel.db"))
        await store.init()

        op = await store.create_operator(Operator(name="acme", wallet="0x..."))
        active = await store.list_watchers(status=WatcherStatus.ACTIVE)

        await store.close()
    """

    def __init__(self, db_path: Path) -> None:
        self._path = db_path.expanduser()
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    async def init(self) -> None:
        """Open the database and create tables if needed."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self._path))
        self._conn.row_factory = aiosqlite.Row
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()
        log.info("record_store_initialized", path=str(self._path))

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> Any:
        assert self._conn is not None
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def _fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[Any]:
        assert self._conn is not None
        async with self._conn.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    async def _write(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Execute one write statement and commit.  Returns rowcount."""
        assert self._conn is not None
        async with self._write_lock:
            cursor = await self._conn.execute(sql, params)
            await self._conn.commit()
            return cursor.rowcount

    # ---------------------------------------------------------------------------
    # Operators
    # ---------------------------------------------------------------------------

    async def create_operator(self, operator: Operator) -> Operator:
        await self._write(
            """
            INSERT INTO operators
                (operator_id, name, wallet, description, website, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                operator.operator_id,
                operator.name,
                operator.wallet,
                operator.description,
                operator.website,
                operator.status.value,
                operator.created_at,
            ),
        )
        return operator

    async def get_operator(self, operator_id: str) -> Operator | None:
        row = await self._fetchone("SELECT * FROM operators WHERE operator_id = ?", (operator_id,))
        return _operator_from_row(row) if row else None

    async def list_operators(self, status: OperatorStatus | None = None) -> list[Operator]:
        where, params = _where({"status": status})
        rows = await self._fetchall(f"SELECT * FROM operators{where} ORDER BY created_at", params)
        return [_operator_from_row(r) for r in rows]

    async def increment_operator_stats(
        self, operator_id: str, field: str, amount: float = 1
    ) -> None:
        if field not in OPERATOR_STAT_FIELDS:
            raise ValueError(f"Unknown operator stat: {field!r}")
        await self._write(
            f"UPDATE operators SET {field} = {field} + ? WHERE operator_id = ?",
            (amount, operator_id),
        )

    # ---------------------------------------------------------------------------
    # Watcher types
    # ---------------------------------------------------------------------------

    async def create_watcher_type(self, watcher_type: WatcherType) -> WatcherType:
        t = watcher_type
        await self._write(
            """
            INSERT INTO watcher_types
                (type_id, operator_id, name, category, description, price,
                 executor_id, config_schema, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                t.type_id,
                t.operator_id,
                t.name,
                t.category,
                t.description,
                t.price,
                t.executor_id,
                json.dumps(t.config_schema),
                t.status.value,
                t.created_at,
            ),
        )
        return t

    async def get_watcher_type(self, type_id: str) -> WatcherType | None:
        row = await self._fetchone("SELECT * FROM watcher_types WHERE type_id = ?", (type_id,))
        return _watcher_type_from_row(row) if row else None

    async def list_watcher_types(
        self,
        operator_id: str | None = None,
        category: str | None = None,
        status: WatcherTypeStatus | None = None,
    ) -> list[WatcherType]:
        where, params = _where(
            {"operator_id": operator_id, "category": category, "status": status}
        )
        rows = await self._fetchall(
            f"SELECT * FROM watcher_types{where} ORDER BY created_at", params
        )
        return [_watcher_type_from_row(r) for r in rows]

    async def update_watcher_type_status(
        self, type_id: str, status: WatcherTypeStatus
    ) -> WatcherType | None:
        await self._write(
            "UPDATE watcher_types SET status = ? WHERE type_id = ?", (status.value, type_id)
        )
        return await self.get_watcher_type(type_id)

    async def increment_watcher_type_stats(
        self, type_id: str, field: str, amount: int = 1
    ) -> None:
        if field not in WATCHER_TYPE_STAT_FIELDS:
            raise ValueError(f"Unknown watcher type stat: {field!r}")
        await self._write(
            f"UPDATE watcher_types SET {field} = {field} + ? WHERE type_id = ?",
            (amount, type_id),
        )

    # ---------------------------------------------------------------------------
    # Watchers
    # ---------------------------------------------------------------------------

    async def get_watcher(self, watcher_id: str) -> Watcher | None:
        row = await self._fetchone("SELECT * FROM watchers WHERE watcher_id = ?", (watcher_id,))
        return _watcher_from_row(row) if row else None

    async def list_watchers(
        self,
        operator_id: str | None = None,
        type_id: str | None = None,
        customer_id: str | None = None,
        status: WatcherStatus | None = None,
    ) -> list[Watcher]:
        where, params = _where(
            {
                "operator_id": operator_id,
                "type_id": type_id,
                "customer_id": customer_id,
                "status": status,
            }
        )
        rows = await self._fetchall(f"SELECT * FROM watchers{where} ORDER BY created_at", params)
        return [_watcher_from_row(r) for r in rows]

    async def update_watcher_status(
        self, watcher_id: str, status: WatcherStatus
    ) -> Watcher | None:
        await self._write(
            "UPDATE watchers SET status = ? WHERE watcher_id = ?", (status.value, watcher_id)
        )
        return await self.get_watcher(watcher_id)

    async def record_check(
        self,
        watcher_id: str,
        checked_at: float,
        result: dict[str, Any] | None,
        condition_active: bool | None = None,
    ) -> None:
        result_json = json.dumps(result, default=str) if result is not None else None
        if condition_active is None:
            await self._write(
                "UPDATE watchers SET last_checked = ?, last_check_result = ? WHERE watcher_id = ?",
                (checked_at, result_json, watcher_id),
            )
        else:
            await self._write(
                """
                UPDATE watchers
                   SET last_checked = ?, last_check_result = ?, condition_active = ?
                 WHERE watcher_id = ?
                """,
                (checked_at, result_json, int(condition_active), watcher_id),
            )

    async def record_trigger(self, watcher_id: str, triggered_at: float) -> None:
        await self._write(
            """
            UPDATE watchers
               SET trigger_count = trigger_count + 1,
                   last_triggered = ?,
                   condition_active = 1
             WHERE watcher_id = ?
            """,
            (triggered_at, watcher_id),
        )

    async def expire_watchers(self, now: float) -> list[str]:
        assert self._conn is not None
        async with self._write_lock:
            async with self._conn.execute(
                """
                SELECT watcher_id FROM watchers
                 WHERE status != 'expired' AND expires_at IS NOT NULL AND expires_at < ?
                """,
                (now,),
            ) as cursor:
                ids = [r["watcher_id"] for r in await cursor.fetchall()]
            if ids:
                await self._conn.executemany(
                    "UPDATE watchers SET status = 'expired' WHERE watcher_id = ?",
                    [(i,) for i in ids],
                )
                await self._conn.commit()
        return ids

    # ---------------------------------------------------------------------------
    # Payments / receipts
    # ---------------------------------------------------------------------------

    async def get_payment(self, payment_id: str) -> Payment | None:
        row = await self._fetchone("SELECT * FROM payments WHERE payment_id = ?", (payment_id,))
        return _payment_from_row(row) if row else None

    async def list_payments(
        self,
        operator_id: str | None = None,
        customer_id: str | None = None,
        watcher_id: str | None = None,
    ) -> list[Payment]:
        where, params = _where(
            {"operator_id": operator_id, "customer_id": customer_id, "watcher_id": watcher_id}
        )
        rows = await self._fetchall(f"SELECT * FROM payments{where} ORDER BY created_at", params)
        return [_payment_from_row(r) for r in rows]

    async def get_receipt(self, fulfillment_hash: str) -> Receipt | None:
        row = await self._fetchone(
            "SELECT * FROM receipts WHERE fulfillment_hash = ?", (fulfillment_hash,)
        )
        return _receipt_from_row(row) if row else None

    async def insert_receipt(self, receipt: Receipt) -> None:
        assert self._conn is not None
        async with self._write_lock:
            try:
                await self._insert_receipt_row(receipt)
                await self._conn.commit()
            except sqlite3.IntegrityError as exc:
                await self._conn.rollback()
                raise ReceiptExistsError(receipt.fulfillment_hash) from exc

    async def create_fulfillment(
        self, watcher: Watcher, payment: Payment, receipt: Receipt
    ) -> None:
        assert self._conn is not None
        async with self._write_lock:
            try:
                # Receipt first: the unique constraint rejects a duplicate
                # before any watcher or payment row exists.
                await self._insert_receipt_row(receipt)
                await self._conn.execute(
                    """
                    INSERT INTO watchers
                        (watcher_id, type_id, operator_id, customer_id, config, webhook,
                         status, created_at, expires_at, trigger_count, condition_active)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        watcher.watcher_id,
                        watcher.type_id,
                        watcher.operator_id,
                        watcher.customer_id,
                        json.dumps(watcher.config),
                        watcher.webhook,
                        watcher.status.value,
                        watcher.created_at,
                        watcher.expires_at,
                        watcher.trigger_count,
                        int(watcher.condition_active),
                    ),
                )
                await self._conn.execute(
                    """
                    INSERT INTO payments
                        (payment_id, watcher_id, operator_id, customer_id, amount,
                         operator_share, platform_share, tx_hash, network, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        payment.payment_id,
                        payment.watcher_id,
                        payment.operator_id,
                        payment.customer_id,
                        payment.amount,
                        payment.operator_share,
                        payment.platform_share,
                        payment.tx_hash,
                        payment.network,
                        payment.created_at,
                    ),
                )
                await self._conn.commit()
            except sqlite3.IntegrityError as exc:
                await self._conn.rollback()
                if await self.get_receipt(receipt.fulfillment_hash) is not None:
                    raise ReceiptExistsError(receipt.fulfillment_hash) from exc
                raise
            except Exception:
                await self._conn.rollback()
                raise

    async def _insert_receipt_row(self, receipt: Receipt) -> None:
        assert self._conn is not None
        await self._conn.execute(
            """
            INSERT INTO receipts
                (receipt_id, fulfillment_hash, watcher_id, payment_id, amount, chain, rail, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                receipt.receipt_id,
                receipt.fulfillment_hash,
                receipt.watcher_id,
                receipt.payment_id,
                receipt.amount,
                receipt.chain,
                receipt.rail,
                receipt.created_at,
            ),
        )
