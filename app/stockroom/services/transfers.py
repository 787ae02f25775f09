from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from app.stockroom.core.config import settings
from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.logging import log_event
from app.stockroom.core.metrics import metrics
from app.stockroom.core.states import (
    ProductStatus,
    TransferAction,
    TransferPriority,
    TransferStatus,
    next_transfer_status,
)
from app.stockroom.db.models import MAX_MONEY, MAX_QUANTITY, StockHold, Transfer, TransferItem
from app.stockroom.db.session import transaction
from app.stockroom.repos.products import ProductRepository
from app.stockroom.repos.transfers import TransferQueryFilters, TransferRepository
from app.stockroom.services.audit import AuditEventPayload, AuditService
from app.stockroom.services.ledger import StockLedger
from app.stockroom.services.locations import LocationRegistry, as_uuid

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")
_NUMBER_ATTEMPTS = 5
_HOLD_INVALIDATED = "hold invalidated before confirmation"


@dataclass(frozen=True)
class TransferLineDraft:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class ActionOutcome:
    transfer: Transfer
    previous_status: str


class TransferEngine:
    """Moves approved stock between locations.

    PENDING -> APPROVED -> CONFIRMED -> IN_TRANSIT -> COMPLETED, with PENDING -> REJECTED
    on rejection and PENDING/APPROVED -> REJECTED on cancellation. Stock is held at the
    source from creation and only moves on completion.
    """

    def __init__(
        self,
        db,
        *,
        ledger: StockLedger | None = None,
        registry: LocationRegistry | None = None,
        trace_id: str | None = None,
    ):
        self.db = db
        self.trace_id = trace_id
        self._last_from_status: str | None = None
        self.repo = TransferRepository(db)
        self.products = ProductRepository(db)
        self.ledger = ledger or StockLedger(db)
        self.registry = registry or LocationRegistry(db)

    # Reads

    def get(self, transfer_id) -> Transfer:
        transfer = self.repo.get_transfer(as_uuid(transfer_id, field_name="transfer_id"))
        if transfer is None:
            raise AppError(
                ErrorCatalog.NOT_FOUND,
                details={"message": "transfer not found", "transfer_id": str(transfer_id)},
            )
        return transfer

    def list_transfers(self, filters: TransferQueryFilters, *, limit: int = 50, offset: int = 0) -> list[Transfer]:
        return self.repo.list_transfers(filters, limit=limit, offset=offset)

    # Operations

    def create(
        self,
        *,
        source_location_id,
        dest_location_id,
        lines: list[TransferLineDraft],
        requested_by: str,
        priority: TransferPriority = TransferPriority.MEDIUM,
        notes: str | None = None,
        estimated_delivery: date | None = None,
    ) -> Transfer:
        self._validate_lines(lines)
        source_id = as_uuid(source_location_id, field_name="source_location_id")
        dest_id = as_uuid(dest_location_id, field_name="dest_location_id")
        if source_id == dest_id:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "source_location_id and dest_location_id must differ"},
            )

        with transaction(self.db):
            source = self.registry.require_active(source_id, field_name="source_location_id")
            dest = self.registry.require_active(dest_id, field_name="dest_location_id")
            product_ids = [as_uuid(line.product_id, field_name="product_id") for line in lines]
            products = self.products.get_many(product_ids)

            now = datetime.utcnow()
            items = []
            total_value = Decimal("0")
            total_cost_value = Decimal("0")
            for line_no, (product_id, line) in enumerate(zip(product_ids, lines), start=1):
                product = products.get(product_id)
                if product is None:
                    raise AppError(
                        ErrorCatalog.NOT_FOUND,
                        details={"message": "product not found", "product_id": str(product_id)},
                    )
                if product.status != ProductStatus.APPROVED.value:
                    raise AppError(
                        ErrorCatalog.VALIDATION_ERROR,
                        details={
                            "message": "only approved products can be transferred",
                            "product_id": str(product_id),
                            "status": product.status,
                        },
                    )
                if self.ledger.balance_row(product_id, source.id) is None:
                    raise AppError(
                        ErrorCatalog.VALIDATION_ERROR,
                        details={
                            "message": "product has no stock tracked at the source location",
                            "product_id": str(product_id),
                            "source_location_id": str(source.id),
                        },
                    )
                items.append(
                    TransferItem(
                        line_no=line_no,
                        product_id=product_id,
                        sku=product.sku,
                        product_name=product.name,
                        quantity=line.quantity,
                        unit_cost=product.cost_price,
                        unit_price=product.selling_price,
                    )
                )
                total_value += Decimal(product.selling_price) * line.quantity
                total_cost_value += Decimal(product.cost_price) * line.quantity
            if max(total_value, total_cost_value) > MAX_MONEY:
                raise AppError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={
                        "message": f"transfer value must not exceed {MAX_MONEY}",
                        "total_value": str(total_value),
                        "total_cost_value": str(total_cost_value),
                    },
                )

            transfer = self._insert_numbered(
                Transfer(
                    source_location_id=source.id,
                    dest_location_id=dest.id,
                    status=TransferStatus.PENDING.value,
                    priority=priority.value,
                    total_value=total_value.quantize(_CENTS),
                    total_cost_value=total_cost_value.quantize(_CENTS),
                    requested_by=requested_by,
                    requested_at=now,
                    notes=notes,
                    estimated_delivery=estimated_delivery,
                    created_at=now,
                    updated_at=now,
                    items=items,
                ),
                now,
            )
            for item in items:
                self.ledger.reserve(
                    item.product_id,
                    source.id,
                    item.quantity,
                    transfer_id=transfer.id,
                    actor=requested_by,
                )

        metrics.record_transfer_transition(TransferStatus.PENDING.value)
        log_event(
            logger,
            "transfer.created",
            transfer_id=str(transfer.id),
            transfer_number=transfer.transfer_number,
            source_location_id=str(transfer.source_location_id),
            dest_location_id=str(transfer.dest_location_id),
            lines=len(items),
            requested_by=requested_by,
        )
        return transfer

    def approve(self, transfer_id, approver_id: str) -> Transfer:
        with transaction(self.db):
            transfer = self._get_for_update(transfer_id)
            self._transition(transfer, TransferAction.APPROVE, approver_id)
            transfer.approved_by = approver_id
            transfer.approved_at = transfer.updated_at
        return transfer

    def confirm(self, transfer_id, actor: str | None = None) -> Transfer:
        invalid: list[str] = []
        with transaction(self.db):
            transfer = self._get_for_update(transfer_id)
            next_transfer_status(transfer.status, TransferAction.CONFIRM)
            holds = self._holds_by_product(transfer)
            now = datetime.utcnow()
            for item in transfer.items:
                hold = holds.get(item.product_id)
                if hold is None or hold.quantity != item.quantity or not self.ledger.hold_is_valid(hold, now=now):
                    invalid.append(str(item.product_id))
            if invalid:
                self._release_all(transfer, actor, reason=_HOLD_INVALIDATED)
                self._transition(transfer, TransferAction.CANCEL, actor)
                transfer.rejected_by = actor or "system"
                transfer.rejected_at = transfer.updated_at
                transfer.cancel_reason = _HOLD_INVALIDATED
            else:
                self._transition(transfer, TransferAction.CONFIRM, actor)
                transfer.confirmed_at = transfer.updated_at
                self.ledger.clear_expiry(list(holds.values()))
        if invalid:
            AuditService(self.db).record_event(
                AuditEventPayload(
                    actor=actor or "system",
                    action="transfer.cancel",
                    entity_type="transfer",
                    entity_id=str(transfer.id),
                    trace_id=self.trace_id,
                    before={"status": TransferStatus.APPROVED.value},
                    after={"status": transfer.status, "cancel_reason": transfer.cancel_reason},
                    metadata={"reason": _HOLD_INVALIDATED, "product_ids": invalid},
                )
            )
            raise AppError(
                ErrorCatalog.CONCURRENCY_CONFLICT,
                details={
                    "message": "reserved stock is no longer valid, transfer was rejected",
                    "transfer_id": str(transfer.id),
                    "product_ids": invalid,
                },
            )
        return transfer

    def ship(self, transfer_id, actor: str | None = None) -> Transfer:
        with transaction(self.db):
            transfer = self._get_for_update(transfer_id)
            self._transition(transfer, TransferAction.SHIP, actor)
            transfer.shipped_at = transfer.updated_at
        return transfer

    def complete(self, transfer_id, actor: str | None = None) -> Transfer:
        with transaction(self.db):
            transfer = self._get_for_update(transfer_id)
            next_transfer_status(transfer.status, TransferAction.COMPLETE)
            holds = self._holds_by_product(transfer)
            for item in transfer.items:
                hold = holds.get(item.product_id)
                if hold is None or hold.quantity != item.quantity:
                    raise AppError(
                        ErrorCatalog.CONCURRENCY_CONFLICT,
                        details={
                            "message": "no matching stock hold for line item",
                            "transfer_id": str(transfer.id),
                            "product_id": str(item.product_id),
                        },
                    )
                self.ledger.commit_debit(hold.id, actor=actor)
                self.ledger.commit_credit(
                    item.product_id,
                    transfer.dest_location_id,
                    item.quantity,
                    transfer_id=transfer.id,
                    actor=actor,
                )
            self._transition(transfer, TransferAction.COMPLETE, actor)
            transfer.completed_at = transfer.updated_at
        return transfer

    def reject(self, transfer_id, approver_id: str) -> Transfer:
        with transaction(self.db):
            transfer = self._get_for_update(transfer_id)
            self._transition(transfer, TransferAction.REJECT, approver_id)
            self._release_all(transfer, approver_id, reason="transfer rejected")
            transfer.rejected_by = approver_id
            transfer.rejected_at = transfer.updated_at
        return transfer

    def cancel(self, transfer_id, actor: str, reason: str | None = None) -> Transfer:
        reason = (reason or "").strip() or "cancelled"
        with transaction(self.db):
            transfer = self._get_for_update(transfer_id)
            self._transition(transfer, TransferAction.CANCEL, actor)
            self._release_all(transfer, actor, reason=reason)
            transfer.rejected_by = actor
            transfer.rejected_at = transfer.updated_at
            transfer.cancel_reason = reason
        return transfer

    def apply_action(self, transfer_id, action: TransferAction, actor: str, *, reason: str | None = None) -> ActionOutcome:
        """Dispatch one action; the outcome carries the status read under the row lock."""
        if action is TransferAction.APPROVE:
            transfer = self.approve(transfer_id, actor)
        elif action is TransferAction.CONFIRM:
            transfer = self.confirm(transfer_id, actor)
        elif action is TransferAction.SHIP:
            transfer = self.ship(transfer_id, actor)
        elif action is TransferAction.COMPLETE:
            transfer = self.complete(transfer_id, actor)
        elif action is TransferAction.REJECT:
            transfer = self.reject(transfer_id, actor)
        else:
            transfer = self.cancel(transfer_id, actor, reason)
        return ActionOutcome(transfer=transfer, previous_status=self._last_from_status)

    # Internals

    @staticmethod
    def _validate_lines(lines: list[TransferLineDraft]) -> None:
        if not lines:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "line_items must not be empty"},
            )
        seen = set()
        for line in lines:
            if not isinstance(line.quantity, int) or not 0 < line.quantity <= MAX_QUANTITY:
                raise AppError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={
                        "message": f"quantity must be between 1 and {MAX_QUANTITY}",
                        "product_id": str(line.product_id),
                        "quantity": line.quantity,
                    },
                )
            key = str(line.product_id)
            if key in seen:
                raise AppError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={"message": "product appears more than once", "product_id": key},
                )
            seen.add(key)

    def _get_for_update(self, transfer_id) -> Transfer:
        transfer = self.repo.get_transfer(as_uuid(transfer_id, field_name="transfer_id"), for_update=True)
        if transfer is None:
            raise AppError(
                ErrorCatalog.NOT_FOUND,
                details={"message": "transfer not found", "transfer_id": str(transfer_id)},
            )
        return transfer

    def _transition(self, transfer: Transfer, action: TransferAction, actor: str | None) -> None:
        previous = transfer.status
        target = next_transfer_status(previous, action)
        self._last_from_status = previous
        transfer.status = target.value
        transfer.updated_at = datetime.utcnow()
        metrics.record_transfer_transition(target.value)
        log_event(
            logger,
            f"transfer.{action.value}",
            transfer_id=str(transfer.id),
            transfer_number=transfer.transfer_number,
            from_status=previous,
            to_status=target.value,
            actor=actor,
        )

    def _holds_by_product(self, transfer: Transfer) -> dict:
        return {hold.product_id: hold for hold in self.ledger.active_holds(transfer.id)}

    def _release_all(self, transfer: Transfer, actor: str | None, *, reason: str) -> None:
        holds: list[StockHold] = self.ledger.active_holds(transfer.id)
        for hold in holds:
            self.ledger.release(hold.id, actor=actor, reason=reason)

    def _insert_numbered(self, transfer: Transfer, now: datetime) -> Transfer:
        for _ in range(_NUMBER_ATTEMPTS):
            transfer.transfer_number = self._next_transfer_number(now)
            try:
                with self.db.begin_nested():
                    self.repo.add(transfer)
                return transfer
            except IntegrityError:
                log_event(logger, "transfer.number_collision", transfer_number=transfer.transfer_number)
        raise AppError(
            ErrorCatalog.CONCURRENCY_CONFLICT,
            details={"message": "could not allocate a transfer number", "attempts": _NUMBER_ATTEMPTS},
        )

    def _next_transfer_number(self, now: datetime) -> str:
        prefix = f"{settings.TRANSFER_NUMBER_PREFIX}-{now.year}-"
        last = self.repo.last_number_with_prefix(prefix)
        sequence = 1
        if last:
            sequence = int(last.rsplit("-", 1)[1]) + 1
        return f"{prefix}{sequence:03d}"
