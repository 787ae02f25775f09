from datetime import datetime

from pydantic import BaseModel, Field

from app.stockroom.db.models import MAX_QUANTITY


class StockBalanceResponse(BaseModel):
    product_id: str
    location_id: str
    quantity: int
    reserved_quantity: int
    available: int
    version: int
    updated_at: datetime | None = None


class StockBalanceListResponse(BaseModel):
    rows: list[StockBalanceResponse]


class StockDebitRequest(BaseModel):
    product_id: str
    location_id: str
    quantity: int = Field(gt=0, le=MAX_QUANTITY)
    reason: str | None = None


class StockMovementResponse(BaseModel):
    id: str
    product_id: str
    location_id: str
    action: str
    quantity: int
    balance_after: int
    reserved_after: int
    transfer_id: str | None
    hold_id: str | None
    actor: str | None
    reason: str | None
    created_at: datetime


class StockMovementListResponse(BaseModel):
    rows: list[StockMovementResponse]
