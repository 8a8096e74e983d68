"""Marketplace data models.

All marketplace state is represented with plain Python dataclasses so that
it can be serialised to JSON and persisted in SQLite without an ORM.

Key classes
-----------
OperatorStatus / WatcherTypeStatus / WatcherStatus — lifecycle enums
Operator        — an agent or entity offering watcher services
WatcherType     — a priced template selecting a Condition Evaluator
Watcher         — a paid, running instance of a watcher type
Payment         — the charge behind one watcher creation (80/20 split)
Receipt         — proof of fulfillment, keyed by the fulfillment hash
CreationResult  — what ``create_watcher`` hands back to callers

Watcher state machine::

    ACTIVE ⇄ PAUSED          (lifecycle manager)
    ACTIVE / PAUSED → EXPIRED (lifecycle manager; terminal)

The trigger engine never changes ``status``; it only writes the
check/trigger bookkeeping fields of ACTIVE watchers.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Revenue split
PLATFORM_FEE = 0.20
OPERATOR_SHARE = 0.80

ANONYMOUS_CUSTOMER = "anonymous"
DEFAULT_RAIL = "x402"

CATEGORIES = (
    "wallet",    # balance, transfers
    "price",     # token prices, DEX rates
    "contract",  # smart contract events
    "social",    # mentions, follows
    "defi",      # yields, liquidations
    "custom",    # catch-all
)


def new_id() -> str:
    """Return a short random identifier (16 hex chars)."""
    return uuid.uuid4().hex[:16]


def split_payment(amount: float) -> tuple[float, float]:
    """Return ``(operator_share, platform_share)`` for *amount*."""
    return amount * OPERATOR_SHARE, amount * PLATFORM_FEE


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OperatorStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING = "pending"


class WatcherTypeStatus(str, Enum):
    ACTIVE = "active"
    DEPRECATED = "deprecated"


class WatcherStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


# ---------------------------------------------------------------------------
# Operator
# ---------------------------------------------------------------------------


@dataclass
class OperatorStats:
    watchers_created: int = 0
    total_triggers: int = 0
    total_earned: float = 0.0   # USD, operator share only
    uptime_percent: float = 100.0


@dataclass
class Operator:
    name: str
    wallet: str
    description: str = ""
    website: str | None = None
    operator_id: str = field(default_factory=new_id)
    status: OperatorStatus = OperatorStatus.ACTIVE
    created_at: float = field(default_factory=time.time)
    stats: OperatorStats = field(default_factory=OperatorStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.operator_id,
            "name": self.name,
            "wallet": self.wallet,
            "description": self.description,
            "website": self.website,
            "status": self.status.value,
            "created_at": self.created_at,
            "stats": {
                "watchers_created": self.stats.watchers_created,
                "total_triggers": self.stats.total_triggers,
                "total_earned": self.stats.total_earned,
                "uptime_percent": self.stats.uptime_percent,
            },
        }


# ---------------------------------------------------------------------------
# WatcherType
# ---------------------------------------------------------------------------


@dataclass
class WatcherTypeStats:
    instances: int = 0
    triggers: int = 0


@dataclass
class WatcherType:
    operator_id: str
    name: str
    category: str
    price: float
    executor_id: str | None = None
    """Selects the Condition Evaluator.  None = not runnable (skipped by cycles)."""

    description: str = ""
    config_schema: dict[str, Any] = field(default_factory=dict)
    type_id: str = field(default_factory=new_id)
    status: WatcherTypeStatus = WatcherTypeStatus.ACTIVE
    created_at: float = field(default_factory=time.time)
    stats: WatcherTypeStats = field(default_factory=WatcherTypeStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.type_id,
            "operator_id": self.operator_id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price": self.price,
            "executor_id": self.executor_id,
            "config_schema": self.config_schema,
            "status": self.status.value,
            "created_at": self.created_at,
            "stats": {
                "instances": self.stats.instances,
                "triggers": self.stats.triggers,
            },
        }


# ---------------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------------


@dataclass
class Watcher:
    type_id: str
    operator_id: str
    customer_id: str
    config: dict[str, Any]
    webhook: str
    watcher_id: str = field(default_factory=new_id)
    status: WatcherStatus = WatcherStatus.ACTIVE
    created_at: float = field(default_factory=time.time)
    expires_at: float | None = None

    # --- check / trigger bookkeeping (written only by the trigger engine) ---
    last_checked: float | None = None
    last_check_result: dict[str, Any] | None = None
    last_triggered: float | None = None
    """Set iff ``trigger_count > 0``; only after a successful delivery."""

    trigger_count: int = 0
    condition_active: bool = False
    """True once the current true-condition episode has been delivered."""

    def is_expired(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return self.expires_at is not None and now > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.watcher_id,
            "type_id": self.type_id,
            "operator_id": self.operator_id,
            "customer_id": self.customer_id,
            "config": self.config,
            "webhook": self.webhook,
            "status": self.status.value,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "last_checked": self.last_checked,
            "last_check_result": self.last_check_result,
            "last_triggered": self.last_triggered,
            "trigger_count": self.trigger_count,
        }


# ---------------------------------------------------------------------------
# Payment / Receipt
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Payment:
    watcher_id: str
    operator_id: str
    customer_id: str
    amount: float
    operator_share: float
    platform_share: float
    network: str
    tx_hash: str | None = None
    payment_id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)

    @classmethod
    def for_watcher(
        cls,
        watcher: Watcher,
        amount: float,
        network: str,
        tx_hash: str | None = None,
    ) -> "Payment":
        """Build the payment for *watcher*, applying the 80/20 split."""
        operator_share, platform_share = split_payment(amount)
        return cls(
            watcher_id=watcher.watcher_id,
            operator_id=watcher.operator_id,
            customer_id=watcher.customer_id,
            amount=amount,
            operator_share=operator_share,
            platform_share=platform_share,
            network=network,
            tx_hash=tx_hash,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.payment_id,
            "watcher_id": self.watcher_id,
            "operator_id": self.operator_id,
            "customer_id": self.customer_id,
            "amount": self.amount,
            "operator_share": self.operator_share,
            "platform_share": self.platform_share,
            "tx_hash": self.tx_hash,
            "network": self.network,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Receipt:
    fulfillment_hash: str
    watcher_id: str
    payment_id: str
    amount: float
    chain: str
    rail: str = DEFAULT_RAIL
    receipt_id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.receipt_id,
            "fulfillment_hash": self.fulfillment_hash,
            "watcher_id": self.watcher_id,
            "payment_id": self.payment_id,
            "amount": self.amount,
            "chain": self.chain,
            "rail": self.rail,
            "created_at": self.created_at,
        }


@dataclass
class CreationResult:
    """Outcome of ``WatcherLifecycleManager.create_watcher``.

    ``replayed`` is True when the request matched an existing receipt and
    no new records were written.
    """

    watcher: Watcher
    payment: Payment
    receipt: Receipt
    replayed: bool = False
