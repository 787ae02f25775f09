from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import or_, select

from app.stockroom.core.states import ProductStatus
from app.stockroom.db.models import Product, StockBalance


@dataclass(frozen=True)
class ProductQueryFilters:
    status: str | None = None
    category: str | None = None
    search: str | None = None
    location_id: str | None = None


class ProductRepository:
    def __init__(self, db):
        self.db = db

    def get_by_id(self, product_id, *, for_update: bool = False) -> Product | None:
        stmt = select(Product).where(Product.id == product_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalars().first()

    def get_many(self, product_ids) -> dict:
        if not product_ids:
            return {}
        rows = self.db.execute(select(Product).where(Product.id.in_(list(product_ids)))).scalars().all()
        return {row.id: row for row in rows}

    def sku_exists(self, sku: str) -> bool:
        return self.db.execute(select(Product.id).where(Product.sku == sku)).first() is not None

    def list_products(self, filters: ProductQueryFilters, *, limit: int, offset: int = 0) -> list[Product]:
        stmt = select(Product)
        if filters.status:
            stmt = stmt.where(Product.status == filters.status)
        if filters.category:
            stmt = stmt.where(Product.category == filters.category)
        if filters.location_id:
            stmt = stmt.where(Product.bound_location_id == filters.location_id)
        if filters.search:
            like = f"%{filters.search.strip()}%"
            stmt = stmt.where(
                or_(
                    Product.name.ilike(like),
                    Product.sku.ilike(like),
                    Product.brand.ilike(like),
                )
            )
        stmt = stmt.order_by(Product.created_at.desc()).offset(offset).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def list_categories(self) -> list[str]:
        stmt = (
            select(Product.category)
            .where(Product.status == ProductStatus.APPROVED.value)
            .distinct()
            .order_by(Product.category.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_low_stock(self, *, location_id=None) -> list[tuple[Product, StockBalance]]:
        stmt = (
            select(Product, StockBalance)
            .join(StockBalance, StockBalance.product_id == Product.id)
            .where(
                Product.status == ProductStatus.APPROVED.value,
                StockBalance.quantity <= Product.low_stock_threshold,
            )
        )
        if location_id:
            stmt = stmt.where(StockBalance.location_id == location_id)
        stmt = stmt.order_by(StockBalance.quantity.asc(), Product.name.asc())
        return [(row[0], row[1]) for row in self.db.execute(stmt).all()]

    def add(self, product: Product) -> Product:
        self.db.add(product)
        self.db.flush()
        return product

    def delete(self, product: Product) -> None:
        self.db.delete(product)
        self.db.flush()
