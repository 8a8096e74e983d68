"""API layer — Request and response schemas.

These are the external API contracts.  Field names are camelCase on the
wire (``typeId``, ``customerId``, ``durationMs``) and snake_case in Python;
both spellings are accepted on input.  They are intentionally separate from
the marketplace dataclasses so the wire format can evolve independently.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from x402_sentinel.marketplace.models import (
    CreationResult,
    Operator,
    Payment,
    Receipt,
    Watcher,
    WatcherType,
)
from x402_sentinel.triggers.engine import CycleSummary

# Mirrors marketplace.models.CATEGORIES.
Category = Literal["wallet", "price", "contract", "social", "defi", "custom"]


def iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="milliseconds")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateOperatorRequest(CamelModel):
    """POST /operators"""

    name: str = Field(min_length=1, max_length=200)
    wallet: str = Field(min_length=1, description="Payout address for the 80% operator share.")
    description: str = ""
    website: str | None = None


class CreateWatcherTypeRequest(CamelModel):
    """POST /watcher-types"""

    operator_id: str
    name: str = Field(min_length=1, max_length=200)
    category: Category
    price: float = Field(ge=0, description="Price in USD to create one instance.")
    executor_id: str | None = Field(
        default=None,
        description="Condition evaluator id. Omit for types that are not runnable yet.",
    )
    description: str = ""
    config_schema: dict[str, Any] | None = None


class CreateWatcherRequest(CamelModel):
    """POST /watchers — create (pay for) a watcher instance.

    ``config`` and ``webhook`` are validated by the lifecycle manager so that
    malformed values map onto the documented 400 errors.
    """

    type_id: str
    config: Any = Field(default_factory=dict)
    webhook: Any = ""
    customer_id: str | None = None
    tx_hash: str | None = Field(default=None, description="Settled payment transaction, if known.")
    ttl_seconds: float | None = Field(
        default=None, gt=0, description="Expire the watcher this many seconds after creation."
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class OperatorStatsResponse(CamelModel):
    watchers_created: int
    total_triggers: int
    total_earned: float
    uptime_percent: float


class OperatorResponse(CamelModel):
    id: str
    name: str
    wallet: str
    description: str
    website: str | None
    status: str
    created_at: str | None
    stats: OperatorStatsResponse

    @classmethod
    def from_record(cls, op: Operator) -> "OperatorResponse":
        return cls(
            id=op.operator_id,
            name=op.name,
            wallet=op.wallet,
            description=op.description,
            website=op.website,
            status=op.status.value,
            created_at=iso(op.created_at),
            stats=OperatorStatsResponse(
                watchers_created=op.stats.watchers_created,
                total_triggers=op.stats.total_triggers,
                total_earned=op.stats.total_earned,
                uptime_percent=op.stats.uptime_percent,
            ),
        )


class WatcherTypeStatsResponse(CamelModel):
    instances: int
    triggers: int


class WatcherTypeResponse(CamelModel):
    id: str
    operator_id: str
    name: str
    category: str
    description: str
    price: float
    executor_id: str | None
    config_schema: dict[str, Any]
    status: str
    created_at: str | None
    stats: WatcherTypeStatsResponse

    @classmethod
    def from_record(cls, t: WatcherType) -> "WatcherTypeResponse":
        return cls(
            id=t.type_id,
            operator_id=t.operator_id,
            name=t.name,
            category=t.category,
            description=t.description,
            price=t.price,
            executor_id=t.executor_id,
            config_schema=t.config_schema,
            status=t.status.value,
            created_at=iso(t.created_at),
            stats=WatcherTypeStatsResponse(
                instances=t.stats.instances, triggers=t.stats.triggers
            ),
        )


class WatcherResponse(CamelModel):
    id: str
    type_id: str
    operator_id: str
    customer_id: str
    config: dict[str, Any]
    webhook: str
    status: str
    created_at: str | None
    expires_at: str | None
    last_checked: str | None
    last_check_result: dict[str, Any] | None
    last_triggered: str | None
    trigger_count: int

    @classmethod
    def from_record(cls, w: Watcher) -> "WatcherResponse":
        return cls(
            id=w.watcher_id,
            type_id=w.type_id,
            operator_id=w.operator_id,
            customer_id=w.customer_id,
            config=w.config,
            webhook=w.webhook,
            status=w.status.value,
            created_at=iso(w.created_at),
            expires_at=iso(w.expires_at),
            last_checked=iso(w.last_checked),
            last_check_result=w.last_check_result,
            last_triggered=iso(w.last_triggered),
            trigger_count=w.trigger_count,
        )


class PaymentResponse(CamelModel):
    id: str
    watcher_id: str
    operator_id: str
    customer_id: str
    amount: float
    operator_share: float
    platform_share: float
    tx_hash: str | None
    network: str
    created_at: str | None

    @classmethod
    def from_record(cls, p: Payment) -> "PaymentResponse":
        return cls(
            id=p.payment_id,
            watcher_id=p.watcher_id,
            operator_id=p.operator_id,
            customer_id=p.customer_id,
            amount=p.amount,
            operator_share=p.operator_share,
            platform_share=p.platform_share,
            tx_hash=p.tx_hash,
            network=p.network,
            created_at=iso(p.created_at),
        )


class ReceiptResponse(CamelModel):
    id: str
    fulfillment_hash: str
    watcher_id: str
    payment_id: str
    amount: float
    chain: str
    rail: str
    created_at: str | None

    @classmethod
    def from_record(cls, r: Receipt) -> "ReceiptResponse":
        return cls(
            id=r.receipt_id,
            fulfillment_hash=r.fulfillment_hash,
            watcher_id=r.watcher_id,
            payment_id=r.payment_id,
            amount=r.amount,
            chain=r.chain,
            rail=r.rail,
            created_at=iso(r.created_at),
        )


class CreateWatcherResponse(CamelModel):
    success: bool = True
    replayed: bool
    watcher: WatcherResponse
    payment: PaymentResponse
    receipt: ReceiptResponse
    message: str

    @classmethod
    def from_result(cls, result: CreationResult) -> "CreateWatcherResponse":
        if result.replayed:
            message = "Watcher already created for this request."
        else:
            message = "Watcher created. Monitoring will begin on next cron cycle."
        return cls(
            replayed=result.replayed,
            watcher=WatcherResponse.from_record(result.watcher),
            payment=PaymentResponse.from_record(result.payment),
            receipt=ReceiptResponse.from_record(result.receipt),
            message=message,
        )


class CycleResponse(CamelModel):
    """POST /cron/check"""

    success: bool = True
    checked: int
    triggered: int
    skipped: int
    errors: int
    duration_ms: int
    timestamp: str
    cycle_id: str

    @classmethod
    def from_summary(cls, summary: CycleSummary) -> "CycleResponse":
        return cls(
            checked=summary.checked,
            triggered=summary.triggered,
            skipped=summary.skipped,
            errors=summary.errors,
            duration_ms=summary.duration_ms,
            timestamp=summary.timestamp,
            cycle_id=summary.cycle_id,
        )


class ExecutorResponse(CamelModel):
    id: str
    name: str = ""
    description: str = ""
    category: str = "custom"
    config_schema: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(CamelModel):
    status: str
    version: str
    uptime_seconds: float
    executors: list[str]
    active_watchers: int
    trigger_mode: str
    scheduler_enabled: bool
    cycle_running: bool
    last_cycle: CycleResponse | None = None


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: dict[str, Any] | None = None
    request_id: str | None = None
