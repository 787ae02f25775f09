from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update

from app.stockroom.core.states import HoldStatus
from app.stockroom.db.models import StockBalance, StockHold, StockMovement


@dataclass(frozen=True)
class MovementQueryFilters:
    product_id: str | None = None
    location_id: str | None = None
    transfer_id: str | None = None
    action: str | None = None


class StockRepository:
    def __init__(self, db):
        self.db = db

    def get_balance(self, product_id, location_id, *, for_update: bool = False) -> StockBalance | None:
        stmt = (
            select(StockBalance)
            .where(StockBalance.product_id == product_id, StockBalance.location_id == location_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def insert_balance(self, balance: StockBalance) -> StockBalance:
        self.db.add(balance)
        self.db.flush()
        return balance

    def compare_and_swap(
        self,
        balance: StockBalance,
        *,
        quantity: int,
        reserved_quantity: int,
    ) -> bool:
        """Write new quantities only if nobody bumped the row's version since it was read."""
        stmt = (
            update(StockBalance)
            .where(
                StockBalance.product_id == balance.product_id,
                StockBalance.location_id == balance.location_id,
                StockBalance.version == balance.version,
            )
            .values(
                quantity=quantity,
                reserved_quantity=reserved_quantity,
                version=balance.version + 1,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def list_balances(self, *, product_id=None, location_id=None) -> list[StockBalance]:
        stmt = select(StockBalance)
        if product_id:
            stmt = stmt.where(StockBalance.product_id == product_id)
        if location_id:
            stmt = stmt.where(StockBalance.location_id == location_id)
        stmt = stmt.order_by(StockBalance.created_at.asc()).execution_options(populate_existing=True)
        return self.db.execute(stmt).scalars().all()

    def get_hold(self, hold_id, *, for_update: bool = False) -> StockHold | None:
        stmt = select(StockHold).where(StockHold.id == hold_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def holds_for_transfer(self, transfer_id, *, status: HoldStatus | None = None) -> list[StockHold]:
        stmt = select(StockHold).where(StockHold.transfer_id == transfer_id)
        if status is not None:
            stmt = stmt.where(StockHold.status == status.value)
        return self.db.execute(stmt.order_by(StockHold.created_at.asc())).scalars().all()

    def expired_hold_transfer_ids(self, now: datetime) -> list:
        stmt = (
            select(StockHold.transfer_id)
            .where(
                StockHold.status == HoldStatus.ACTIVE.value,
                StockHold.expires_at.is_not(None),
                StockHold.expires_at <= now,
                StockHold.transfer_id.is_not(None),
            )
            .distinct()
        )
        return list(self.db.execute(stmt).scalars().all())

    def add_hold(self, hold: StockHold) -> StockHold:
        self.db.add(hold)
        self.db.flush()
        return hold

    def add_movement(self, movement: StockMovement) -> StockMovement:
        self.db.add(movement)
        return movement

    def list_movements(self, filters: MovementQueryFilters, *, limit: int) -> list[StockMovement]:
        stmt = select(StockMovement)
        if filters.product_id:
            stmt = stmt.where(StockMovement.product_id == filters.product_id)
        if filters.location_id:
            stmt = stmt.where(StockMovement.location_id == filters.location_id)
        if filters.transfer_id:
            stmt = stmt.where(StockMovement.transfer_id == filters.transfer_id)
        if filters.action:
            stmt = stmt.where(StockMovement.action == filters.action)
        stmt = stmt.order_by(StockMovement.created_at.desc()).limit(limit)
        return self.db.execute(stmt).scalars().all()
