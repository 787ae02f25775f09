from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.stockroom.db.models import MAX_QUANTITY


class TransferLineCreate(BaseModel):
    product_id: str
    quantity: int = Field(gt=0, le=MAX_QUANTITY)


class TransferCreateRequest(BaseModel):
    source_location_id: str
    dest_location_id: str
    priority: Literal["LOW", "MEDIUM", "HIGH", "URGENT"] = "MEDIUM"
    notes: str | None = Field(default=None, max_length=2000)
    estimated_delivery: date | None = None
    line_items: list[TransferLineCreate]


class TransferActionRequest(BaseModel):
    action: Literal["approve", "confirm", "ship", "complete", "reject", "cancel"]
    reason: str | None = Field(default=None, max_length=255)


class TransferItemResponse(BaseModel):
    id: str
    line_no: int
    product_id: str
    sku: str
    product_name: str
    quantity: int
    unit_cost: float
    unit_price: float


class TransferResponse(BaseModel):
    id: str
    transfer_number: str
    source_location_id: str
    dest_location_id: str
    status: str
    priority: str
    total_value: float
    total_cost_value: float
    requested_by: str
    requested_at: datetime
    approved_by: str | None
    approved_at: datetime | None
    confirmed_at: datetime | None
    shipped_at: datetime | None
    completed_at: datetime | None
    rejected_by: str | None
    rejected_at: datetime | None
    cancel_reason: str | None
    notes: str | None
    estimated_delivery: date | None
    created_at: datetime
    updated_at: datetime
    line_items: list[TransferItemResponse]


class TransferListResponse(BaseModel):
    rows: list[TransferResponse]
