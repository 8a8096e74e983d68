"""Operator endpoints.

    POST /operators               — register an operator (admin)
    GET  /operators               — list operators
    GET  /operators/{operator_id} — operator details + stats
"""

from __future__ import annotations

from fastapi import APIRouter, status

from x402_sentinel.api.dependencies import AdminDep, CatalogDep
from x402_sentinel.api.schemas import CreateOperatorRequest, OperatorResponse
from x402_sentinel.marketplace.models import OperatorStatus

router = APIRouter(prefix="/operators", tags=["operators"])


@router.post(
    "",
    response_model=OperatorResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[AdminDep],
    summary="Register an operator",
)
async def create_operator(body: CreateOperatorRequest, catalog: CatalogDep) -> OperatorResponse:
    operator = await catalog.register_operator(
        name=body.name,
        wallet=body.wallet,
        description=body.description,
        website=body.website,
    )
    return OperatorResponse.from_record(operator)


@router.get("", response_model=list[OperatorResponse], summary="List operators")
async def list_operators(
    catalog: CatalogDep, status: OperatorStatus | None = None
) -> list[OperatorResponse]:
    return [OperatorResponse.from_record(op) for op in await catalog.list_operators(status)]


@router.get("/{operator_id}", response_model=OperatorResponse, summary="Get an operator")
async def get_operator(operator_id: str, catalog: CatalogDep) -> OperatorResponse:
    return OperatorResponse.from_record(await catalog.get_operator(operator_id))
