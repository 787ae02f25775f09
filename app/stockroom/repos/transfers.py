from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.orm import selectinload

from app.stockroom.db.models import Transfer


@dataclass(frozen=True)
class TransferQueryFilters:
    status: str | None = None
    priority: str | None = None
    location_id: str | None = None
    search: str | None = None


class TransferRepository:
    def __init__(self, db):
        self.db = db

    def get_transfer(self, transfer_id, *, for_update: bool = False) -> Transfer | None:
        stmt = (
            select(Transfer)
            .where(Transfer.id == transfer_id)
            .options(selectinload(Transfer.items))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def list_transfers(self, filters: TransferQueryFilters, *, limit: int, offset: int = 0) -> list[Transfer]:
        query = select(Transfer).options(selectinload(Transfer.items))
        if filters.status:
            query = query.where(Transfer.status == filters.status)
        if filters.priority:
            query = query.where(Transfer.priority == filters.priority)
        if filters.location_id:
            query = query.where(
                or_(
                    Transfer.source_location_id == filters.location_id,
                    Transfer.dest_location_id == filters.location_id,
                )
            )
        if filters.search:
            like = f"%{filters.search.strip()}%"
            query = query.where(or_(Transfer.transfer_number.ilike(like), Transfer.requested_by.ilike(like)))
        query = query.order_by(Transfer.created_at.desc(), Transfer.transfer_number.desc())
        return self.db.execute(query.offset(offset).limit(limit)).scalars().all()

    def last_number_with_prefix(self, prefix: str) -> str | None:
        stmt = (
            select(Transfer.transfer_number)
            .where(Transfer.transfer_number.like(f"{prefix}%"))
            .order_by(func.length(Transfer.transfer_number).desc(), Transfer.transfer_number.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def add(self, transfer: Transfer) -> Transfer:
        self.db.add(transfer)
        self.db.flush()
        return transfer
