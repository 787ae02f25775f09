from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.stockroom.core.deps import page_limit, require_actor
from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.states import MovementAction
from app.stockroom.db.models import StockBalance, StockMovement
from app.stockroom.db.session import get_db, transaction
from app.stockroom.repos.stock import MovementQueryFilters, StockRepository
from app.stockroom.schemas.errors import CONFLICT_RESPONSES
from app.stockroom.schemas.stock import (
    StockBalanceListResponse,
    StockBalanceResponse,
    StockDebitRequest,
    StockMovementListResponse,
    StockMovementResponse,
)
from app.stockroom.services.audit import AuditService
from app.stockroom.services.ledger import StockLedger
from app.stockroom.services.locations import as_uuid

router = APIRouter()


def _balance_response(row: StockBalance) -> StockBalanceResponse:
    return StockBalanceResponse(
        product_id=str(row.product_id),
        location_id=str(row.location_id),
        quantity=row.quantity,
        reserved_quantity=row.reserved_quantity,
        available=row.available,
        version=row.version,
        updated_at=row.updated_at,
    )


def _movement_response(row: StockMovement) -> StockMovementResponse:
    return StockMovementResponse(
        id=str(row.id),
        product_id=str(row.product_id),
        location_id=str(row.location_id),
        action=row.action,
        quantity=row.quantity,
        balance_after=row.balance_after,
        reserved_after=row.reserved_after,
        transfer_id=str(row.transfer_id) if row.transfer_id else None,
        hold_id=str(row.hold_id) if row.hold_id else None,
        actor=row.actor,
        reason=row.reason,
        created_at=row.created_at,
    )


@router.get("/stockroom/stock/balances", response_model=StockBalanceListResponse)
def list_balances(
    product_id: UUID | None = None,
    location_id: UUID | None = None,
    db=Depends(get_db),
):
    rows = StockLedger(db).list_balances(product_id=product_id, location_id=location_id)
    return StockBalanceListResponse(rows=[_balance_response(row) for row in rows])


@router.get("/stockroom/stock/balances/{product_id}/{location_id}", response_model=StockBalanceResponse)
def get_balance(product_id: UUID, location_id: UUID, db=Depends(get_db)):
    row = StockLedger(db).balance_row(product_id, location_id)
    if row is None:
        raise AppError(
            ErrorCatalog.NOT_FOUND,
            details={
                "message": "no stock tracked for product at location",
                "product_id": str(product_id),
                "location_id": str(location_id),
            },
        )
    return _balance_response(row)


@router.get("/stockroom/stock/movements", response_model=StockMovementListResponse)
def list_movements(
    product_id: UUID | None = None,
    location_id: UUID | None = None,
    transfer_id: UUID | None = None,
    action: MovementAction | None = None,
    limit: int = Depends(page_limit),
    db=Depends(get_db),
):
    filters = MovementQueryFilters(
        product_id=product_id,
        location_id=location_id,
        transfer_id=transfer_id,
        action=action.value if action else None,
    )
    rows = StockRepository(db).list_movements(filters, limit=limit)
    return StockMovementListResponse(rows=[_movement_response(row) for row in rows])


@router.post(
    "/stockroom/stock/debits",
    response_model=StockBalanceResponse,
    responses=CONFLICT_RESPONSES,
)
def debit_stock(
    request: Request,
    payload: StockDebitRequest,
    actor: str = Depends(require_actor),
    db=Depends(get_db),
):
    product_id = as_uuid(payload.product_id, field_name="product_id")
    location_id = as_uuid(payload.location_id, field_name="location_id")
    ledger = StockLedger(db)
    with transaction(db):
        ledger.debit(product_id, location_id, payload.quantity, actor=actor, reason=payload.reason or "sale")
    response = _balance_response(ledger.balance_row(product_id, location_id))
    AuditService(db).record_success(
        request,
        action="stock.debit",
        entity_type="product",
        entity_id=str(product_id),
        after=response.model_dump(mode="json"),
        metadata={"location_id": str(location_id), "quantity": payload.quantity, "reason": payload.reason},
    )
    return response
