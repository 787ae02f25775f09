from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.stockroom.core.deps import page_limit, require_actor
from app.stockroom.core.states import TransferAction, TransferPriority, TransferStatus
from app.stockroom.db.models import Transfer, TransferItem
from app.stockroom.db.session import get_db
from app.stockroom.repos.transfers import TransferQueryFilters
from app.stockroom.schemas.errors import CONFLICT_RESPONSES
from app.stockroom.schemas.transfers import (
    TransferActionRequest,
    TransferCreateRequest,
    TransferItemResponse,
    TransferListResponse,
    TransferResponse,
)
from app.stockroom.services.audit import AuditService
from app.stockroom.services.idempotency import IdempotencyService
from app.stockroom.services.transfers import TransferEngine, TransferLineDraft

router = APIRouter()


def _item_response(item: TransferItem) -> TransferItemResponse:
    return TransferItemResponse(
        id=str(item.id),
        line_no=item.line_no,
        product_id=str(item.product_id),
        sku=item.sku,
        product_name=item.product_name,
        quantity=item.quantity,
        unit_cost=float(item.unit_cost),
        unit_price=float(item.unit_price),
    )


def _transfer_response(transfer: Transfer) -> TransferResponse:
    return TransferResponse(
        id=str(transfer.id),
        transfer_number=transfer.transfer_number,
        source_location_id=str(transfer.source_location_id),
        dest_location_id=str(transfer.dest_location_id),
        status=transfer.status,
        priority=transfer.priority,
        total_value=float(transfer.total_value),
        total_cost_value=float(transfer.total_cost_value),
        requested_by=transfer.requested_by,
        requested_at=transfer.requested_at,
        approved_by=transfer.approved_by,
        approved_at=transfer.approved_at,
        confirmed_at=transfer.confirmed_at,
        shipped_at=transfer.shipped_at,
        completed_at=transfer.completed_at,
        rejected_by=transfer.rejected_by,
        rejected_at=transfer.rejected_at,
        cancel_reason=transfer.cancel_reason,
        notes=transfer.notes,
        estimated_delivery=transfer.estimated_delivery,
        created_at=transfer.created_at,
        updated_at=transfer.updated_at,
        line_items=[_item_response(item) for item in transfer.items],
    )


@router.get("/stockroom/transfers", response_model=TransferListResponse)
def list_transfers(
    status: TransferStatus | None = None,
    priority: TransferPriority | None = None,
    location_id: UUID | None = None,
    search: str | None = None,
    limit: int = Depends(page_limit),
    offset: int = 0,
    db=Depends(get_db),
):
    filters = TransferQueryFilters(
        status=status.value if status else None,
        priority=priority.value if priority else None,
        location_id=location_id,
        search=search,
    )
    rows = TransferEngine(db).list_transfers(filters, limit=limit, offset=max(offset, 0))
    return TransferListResponse(rows=[_transfer_response(row) for row in rows])


@router.post(
    "/stockroom/transfers",
    response_model=TransferResponse,
    status_code=201,
    responses=CONFLICT_RESPONSES,
)
def create_transfer(
    request: Request,
    payload: TransferCreateRequest,
    actor: str = Depends(require_actor),
    db=Depends(get_db),
):
    claim, replay = IdempotencyService(db).begin(request, actor=actor, body=payload.model_dump(mode="json"))
    if replay:
        return replay

    transfer = TransferEngine(db).create(
        source_location_id=payload.source_location_id,
        dest_location_id=payload.dest_location_id,
        lines=[TransferLineDraft(product_id=line.product_id, quantity=line.quantity) for line in payload.line_items],
        requested_by=actor,
        priority=TransferPriority(payload.priority),
        notes=payload.notes,
        estimated_delivery=payload.estimated_delivery,
    )
    response = _transfer_response(transfer)
    if claim is not None:
        claim.succeed(201, response.model_dump(mode="json"))
    AuditService(db).record_success(
        request,
        action="transfer.create",
        entity_type="transfer",
        entity_id=response.id,
        after=response.model_dump(mode="json"),
        metadata={"transfer_number": response.transfer_number},
    )
    return response


@router.get("/stockroom/transfers/{transfer_id}", response_model=TransferResponse)
def get_transfer(transfer_id: UUID, db=Depends(get_db)):
    return _transfer_response(TransferEngine(db).get(transfer_id))


@router.post(
    "/stockroom/transfers/{transfer_id}/actions",
    response_model=TransferResponse,
    responses=CONFLICT_RESPONSES,
)
def transfer_actions(
    transfer_id: UUID,
    request: Request,
    payload: TransferActionRequest,
    actor: str = Depends(require_actor),
    db=Depends(get_db),
):
    claim, replay = IdempotencyService(db).begin(request, actor=actor, body=payload.model_dump(mode="json"))
    if replay:
        return replay

    engine = TransferEngine(db, trace_id=getattr(request.state, "trace_id", None))
    outcome = engine.apply_action(transfer_id, TransferAction(payload.action), actor, reason=payload.reason)
    response = _transfer_response(outcome.transfer)
    if claim is not None:
        claim.succeed(200, response.model_dump(mode="json"))
    AuditService(db).record_success(
        request,
        action=f"transfer.{payload.action}",
        entity_type="transfer",
        entity_id=response.id,
        before={"status": outcome.previous_status},
        after={"status": response.status, "transfer_number": response.transfer_number},
        metadata={"reason": payload.reason} if payload.reason else None,
    )
    return response
