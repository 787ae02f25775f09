"""Stock ledger: the only code path allowed to change stock quantities.

Every mutation is scoped to one ``(product_id, location_id)`` balance row and is
applied as a compare-and-swap on the row's ``version``. A lost race re-reads the
row and tries again, up to ``LEDGER_MAX_RETRIES`` attempts, before surfacing
``CONCURRENCY_CONFLICT``. Ledger methods never commit; the caller owns the
transaction so that multi-row operations (transfer creation and completion)
land or roll back as one unit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.exc import IntegrityError

from app.stockroom.core.config import settings
from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.logging import log_event
from app.stockroom.core.metrics import metrics
from app.stockroom.core.states import HoldStatus, MovementAction
from app.stockroom.db.models import MAX_QUANTITY, StockBalance, StockHold, StockMovement
from app.stockroom.repos.stock import StockRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceSnapshot:
    product_id: object
    location_id: object
    quantity: int
    reserved_quantity: int
    version: int

    @property
    def available(self) -> int:
        return self.quantity - self.reserved_quantity


# Receives the freshly read row (or None) and returns (quantity, reserved_quantity)
# to write, or raises AppError to abort the mutation.
BalanceUpdate = Callable[[StockBalance | None], tuple[int, int]]


def _require_positive(qty: int) -> None:
    if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": "quantity must be a positive integer", "quantity": qty},
        )
    if qty > MAX_QUANTITY:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"quantity must not exceed {MAX_QUANTITY}", "quantity": qty},
        )


def _insufficient(product_id, location_id, requested: int, available: int) -> AppError:
    return AppError(
        ErrorCatalog.INSUFFICIENT_STOCK,
        details={
            "product_id": str(product_id),
            "location_id": str(location_id),
            "requested": requested,
            "available": available,
        },
    )


class StockLedger:
    def __init__(self, db, *, max_retries: int | None = None, hold_ttl_minutes: int | None = None):
        self.db = db
        self.repo = StockRepository(db)
        self.max_retries = settings.LEDGER_MAX_RETRIES if max_retries is None else max_retries
        self.hold_ttl_minutes = settings.HOLD_TTL_MINUTES if hold_ttl_minutes is None else hold_ttl_minutes

    # Reads

    def balance(self, product_id, location_id) -> int:
        row = self.repo.get_balance(product_id, location_id)
        return row.quantity if row else 0

    def balance_row(self, product_id, location_id) -> StockBalance | None:
        return self.repo.get_balance(product_id, location_id)

    def list_balances(self, *, product_id=None, location_id=None) -> list[StockBalance]:
        return self.repo.list_balances(product_id=product_id, location_id=location_id)

    def get_hold(self, hold_id) -> StockHold:
        hold = self.repo.get_hold(hold_id, for_update=True)
        if hold is None:
            raise AppError(ErrorCatalog.NOT_FOUND, details={"message": "hold not found", "hold_id": str(hold_id)})
        return hold

    def active_holds(self, transfer_id) -> list[StockHold]:
        return self.repo.holds_for_transfer(transfer_id, status=HoldStatus.ACTIVE)

    def hold_is_valid(self, hold: StockHold, *, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        if hold.status != HoldStatus.ACTIVE.value:
            return False
        if hold.expires_at is not None and hold.expires_at <= now:
            return False
        row = self.repo.get_balance(hold.product_id, hold.location_id, for_update=True)
        if row is None:
            return False
        return row.quantity >= hold.quantity and row.reserved_quantity >= hold.quantity

    # Mutations

    def reserve(self, product_id, location_id, qty: int, *, transfer_id=None, actor: str | None = None) -> StockHold:
        _require_positive(qty)

        def apply(row: StockBalance | None) -> tuple[int, int]:
            if row is None:
                raise _insufficient(product_id, location_id, qty, 0)
            if row.available < qty:
                raise _insufficient(product_id, location_id, qty, row.available)
            return row.quantity, row.reserved_quantity + qty

        snapshot = self._mutate(product_id, location_id, apply, operation="reserve")
        now = datetime.utcnow()
        hold = self.repo.add_hold(
            StockHold(
                product_id=product_id,
                location_id=location_id,
                transfer_id=transfer_id,
                quantity=qty,
                status=HoldStatus.ACTIVE.value,
                expires_at=now + timedelta(minutes=self.hold_ttl_minutes) if self.hold_ttl_minutes > 0 else None,
                created_at=now,
            )
        )
        self._record(snapshot, MovementAction.RESERVE, qty, transfer_id=transfer_id, hold_id=hold.id, actor=actor)
        return hold

    def release(self, hold_id, *, actor: str | None = None, reason: str | None = None) -> None:
        hold = self.get_hold(hold_id)
        if hold.status != HoldStatus.ACTIVE.value:
            return

        def apply(row: StockBalance | None) -> tuple[int, int]:
            if row is None:
                raise AppError(
                    ErrorCatalog.CONCURRENCY_CONFLICT,
                    details={"message": "balance row vanished under an active hold", "hold_id": str(hold.id)},
                )
            if row.reserved_quantity < hold.quantity:
                logger.warning(
                    "Reserved quantity below hold amount on release",
                    extra={"hold_id": str(hold.id), "reserved": row.reserved_quantity, "held": hold.quantity},
                )
            return row.quantity, max(row.reserved_quantity - hold.quantity, 0)

        snapshot = self._mutate(hold.product_id, hold.location_id, apply, operation="release")
        self._close_hold(hold, HoldStatus.RELEASED)
        self._record(
            snapshot,
            MovementAction.RELEASE,
            hold.quantity,
            transfer_id=hold.transfer_id,
            hold_id=hold.id,
            actor=actor,
            reason=reason,
        )

    def commit_debit(self, hold_id, *, actor: str | None = None) -> StockHold:
        hold = self.get_hold(hold_id)
        if hold.status != HoldStatus.ACTIVE.value:
            raise AppError(
                ErrorCatalog.CONCURRENCY_CONFLICT,
                details={"message": "hold is no longer active", "hold_id": str(hold.id), "status": hold.status},
            )

        def apply(row: StockBalance | None) -> tuple[int, int]:
            if row is None or row.quantity < hold.quantity or row.reserved_quantity < hold.quantity:
                raise AppError(
                    ErrorCatalog.CONCURRENCY_CONFLICT,
                    details={
                        "message": "held quantity is no longer backed by stock",
                        "hold_id": str(hold.id),
                        "held": hold.quantity,
                        "quantity": row.quantity if row else 0,
                        "reserved_quantity": row.reserved_quantity if row else 0,
                    },
                )
            return row.quantity - hold.quantity, row.reserved_quantity - hold.quantity

        snapshot = self._mutate(hold.product_id, hold.location_id, apply, operation="commit_debit")
        self._close_hold(hold, HoldStatus.COMMITTED)
        self._record(
            snapshot,
            MovementAction.DEBIT,
            hold.quantity,
            transfer_id=hold.transfer_id,
            hold_id=hold.id,
            actor=actor,
        )
        return hold

    def commit_credit(
        self,
        product_id,
        location_id,
        qty: int,
        *,
        transfer_id=None,
        actor: str | None = None,
        reason: str | None = None,
    ) -> BalanceSnapshot:
        _require_positive(qty)
        self._ensure_row(product_id, location_id)
        snapshot = self._mutate(
            product_id,
            location_id,
            lambda row: (row.quantity + qty, row.reserved_quantity),
            operation="commit_credit",
        )
        self._record(snapshot, MovementAction.CREDIT, qty, transfer_id=transfer_id, actor=actor, reason=reason)
        return snapshot

    def open_balance(self, product_id, location_id, quantity: int, *, actor: str | None = None) -> BalanceSnapshot:
        """Start tracking a product at a location, crediting its opening quantity if any."""
        if quantity > 0:
            return self.commit_credit(product_id, location_id, quantity, actor=actor, reason="opening balance")
        row = self._ensure_row(product_id, location_id)
        return BalanceSnapshot(row.product_id, row.location_id, row.quantity, row.reserved_quantity, row.version)

    def debit(self, product_id, location_id, qty: int, *, actor: str | None = None, reason: str | None = None) -> BalanceSnapshot:
        _require_positive(qty)

        def apply(row: StockBalance | None) -> tuple[int, int]:
            available = row.available if row else 0
            if available < qty:
                raise _insufficient(product_id, location_id, qty, available)
            return row.quantity - qty, row.reserved_quantity

        snapshot = self._mutate(product_id, location_id, apply, operation="debit")
        self._record(snapshot, MovementAction.DEBIT, qty, actor=actor, reason=reason)
        return snapshot

    def clear_expiry(self, holds: list[StockHold]) -> None:
        for hold in holds:
            hold.expires_at = None

    # Internals

    def _ensure_row(self, product_id, location_id) -> StockBalance:
        row = self.repo.get_balance(product_id, location_id, for_update=True)
        if row is not None:
            return row
        try:
            with self.db.begin_nested():
                self.repo.insert_balance(
                    StockBalance(
                        product_id=product_id,
                        location_id=location_id,
                        quantity=0,
                        reserved_quantity=0,
                        version=0,
                    )
                )
        except IntegrityError:
            log_event(
                logger,
                "ledger.row_insert_raced",
                product_id=str(product_id),
                location_id=str(location_id),
            )
        row = self.repo.get_balance(product_id, location_id, for_update=True)
        if row is None:
            raise AppError(
                ErrorCatalog.NOT_FOUND,
                details={
                    "message": "cannot open a balance for unknown product or location",
                    "product_id": str(product_id),
                    "location_id": str(location_id),
                },
            )
        return row

    def _mutate(self, product_id, location_id, update: BalanceUpdate, *, operation: str) -> BalanceSnapshot:
        for attempt in range(1, self.max_retries + 1):
            row = self.repo.get_balance(product_id, location_id, for_update=True)
            quantity, reserved = update(row)
            if quantity > MAX_QUANTITY:
                raise AppError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={
                        "message": f"balance would exceed {MAX_QUANTITY}",
                        "product_id": str(product_id),
                        "location_id": str(location_id),
                    },
                )
            if quantity < 0 or reserved < 0 or reserved > quantity:
                raise AppError(
                    ErrorCatalog.CONCURRENCY_CONFLICT,
                    details={
                        "message": "mutation would break stock invariants",
                        "product_id": str(product_id),
                        "location_id": str(location_id),
                    },
                )
            if self.repo.compare_and_swap(row, quantity=quantity, reserved_quantity=reserved):
                return BalanceSnapshot(product_id, location_id, quantity, reserved, row.version + 1)
            metrics.increment_ledger_conflict_retry(operation)
            log_event(
                logger,
                "ledger.conflict_retry",
                operation=operation,
                attempt=attempt,
                product_id=str(product_id),
                location_id=str(location_id),
            )
        raise AppError(
            ErrorCatalog.CONCURRENCY_CONFLICT,
            details={
                "message": "balance row kept changing, giving up",
                "operation": operation,
                "attempts": self.max_retries,
                "product_id": str(product_id),
                "location_id": str(location_id),
            },
        )

    def _close_hold(self, hold: StockHold, status: HoldStatus) -> None:
        hold.status = status.value
        hold.closed_at = datetime.utcnow()
        self.db.flush()

    def _record(
        self,
        snapshot: BalanceSnapshot,
        action: MovementAction,
        qty: int,
        *,
        transfer_id=None,
        hold_id=None,
        actor: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.repo.add_movement(
            StockMovement(
                product_id=snapshot.product_id,
                location_id=snapshot.location_id,
                action=action.value,
                quantity=qty,
                balance_after=snapshot.quantity,
                reserved_after=snapshot.reserved_quantity,
                transfer_id=transfer_id,
                hold_id=hold_id,
                actor=actor,
                reason=reason,
            )
        )
