from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.stockroom.db.models import MAX_MONEY, MAX_QUANTITY

_MAX_PRICE = float(MAX_MONEY)

_PRODUCT_CREATE_EXAMPLE = {
    "name": "Linen Shirt",
    "description": "Short sleeve, relaxed fit",
    "category": "Shirts",
    "brand": "Acme",
    "cost_price": 12.5,
    "selling_price": 29.99,
    "low_stock_threshold": 5,
    "initial_stock": 40,
    "bound_location_id": "8d6f3c1e-4b2a-4f7e-9c1d-2a3b4c5d6e7f",
}


class ProductCreateRequest(BaseModel):
    name: str
    category: str
    brand: str
    cost_price: float = Field(ge=0, le=_MAX_PRICE)
    selling_price: float = Field(ge=0, le=_MAX_PRICE)
    bound_location_id: str
    bound_location_kind: Literal["WAREHOUSE", "OUTLET"] | None = None
    sku: str | None = None
    description: str | None = None
    low_stock_threshold: int = Field(default=0, ge=0, le=MAX_QUANTITY)
    initial_stock: int = Field(default=0, ge=0, le=MAX_QUANTITY)

    model_config = {"json_schema_extra": {"example": _PRODUCT_CREATE_EXAMPLE}}


class ProductUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    category: str | None = None
    brand: str | None = None
    cost_price: float | None = Field(default=None, ge=0, le=_MAX_PRICE)
    selling_price: float | None = Field(default=None, ge=0, le=_MAX_PRICE)
    low_stock_threshold: int | None = Field(default=None, ge=0, le=MAX_QUANTITY)
    initial_stock: int | None = Field(default=None, ge=0, le=MAX_QUANTITY)
    bound_location_id: str | None = None

    model_config = {"extra": "forbid"}


class ProductActionRequest(BaseModel):
    action: Literal["approve", "reject"]
    rejection_reason: str | None = Field(default=None, max_length=1000)


class ProductResponse(BaseModel):
    id: str
    sku: str
    name: str
    description: str | None
    category: str
    brand: str
    cost_price: float
    selling_price: float
    low_stock_threshold: int
    initial_stock: int
    status: str
    bound_location_id: str
    bound_location_kind: str
    submitted_by: str
    approved_by: str | None
    approved_at: datetime | None
    rejected_by: str | None
    rejected_at: datetime | None
    rejection_reason: str | None
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    rows: list[ProductResponse]


class CategoryListResponse(BaseModel):
    categories: list[str]


class LowStockRow(BaseModel):
    product_id: str
    sku: str
    name: str
    location_id: str
    quantity: int
    reserved_quantity: int
    available: int
    low_stock_threshold: int


class LowStockListResponse(BaseModel):
    rows: list[LowStockRow]
