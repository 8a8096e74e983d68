"""GET /payments — payment history, filterable by operator/customer/watcher."""

from __future__ import annotations

from fastapi import APIRouter

from x402_sentinel.api.dependencies import StoreDep
from x402_sentinel.api.schemas import PaymentResponse

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("", response_model=list[PaymentResponse], summary="List payments")
async def list_payments(
    store: StoreDep,
    operator_id: str | None = None,
    customer_id: str | None = None,
    watcher_id: str | None = None,
) -> list[PaymentResponse]:
    payments = await store.list_payments(
        operator_id=operator_id, customer_id=customer_id, watcher_id=watcher_id
    )
    return [PaymentResponse.from_record(p) for p in payments]
