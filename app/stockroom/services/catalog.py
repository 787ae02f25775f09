from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from app.stockroom.core.config import settings
from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.logging import log_event
from app.stockroom.core.states import LocationKind, ProductStatus, next_product_status
from app.stockroom.db.models import MAX_MONEY, MAX_QUANTITY, Product, StockBalance
from app.stockroom.db.session import transaction
from app.stockroom.repos.products import ProductQueryFilters, ProductRepository
from app.stockroom.services.ledger import StockLedger
from app.stockroom.services.locations import LocationRegistry, as_uuid

logger = logging.getLogger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_MAX_SKU_SUFFIX = 1000

_EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "category",
        "brand",
        "cost_price",
        "selling_price",
        "low_stock_threshold",
        "initial_stock",
        "bound_location_id",
    }
)
# The opening balance was credited at these on approval.
_FROZEN_ONCE_APPROVED = frozenset({"initial_stock", "bound_location_id"})
_DELETABLE_STATUSES = frozenset({ProductStatus.PENDING.value, ProductStatus.REJECTED.value})


@dataclass
class ProductDraft:
    name: str
    category: str
    brand: str
    cost_price: Decimal
    selling_price: Decimal
    bound_location_id: str
    bound_location_kind: LocationKind | None = None
    sku: str | None = None
    description: str | None = None
    low_stock_threshold: int = 0
    initial_stock: int = 0


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _code(value: str, length: int, fallback: str) -> str:
    letters = "".join(ch for ch in value.upper() if ch.isalnum())
    if not letters:
        return fallback
    return letters[:length].ljust(length, "X")


def build_sku(category: str, brand: str, at: datetime) -> str:
    millis = int(at.timestamp() * 1000)
    return f"{settings.SKU_PREFIX}-{_code(category, 3, 'GEN')}-{_code(brand, 2, 'GN')}-{_to_base36(millis)}"


def _money(value, field_name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field_name} must be a number", field_name: str(value)},
        ) from None
    if not amount.is_finite() or amount < 0:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field_name} must be zero or positive", field_name: str(value)},
        )
    if amount > MAX_MONEY:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field_name} must not exceed {MAX_MONEY}", field_name: str(value)},
        )
    return amount.quantize(Decimal("0.01"))


def _required_text(value: str | None, field_name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field_name} is required"},
        )
    return text


def _non_negative_int(value: int, field_name: str) -> int:
    if value is None or value < 0:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field_name} must be zero or positive", field_name: value},
        )
    if value > MAX_QUANTITY:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field_name} must not exceed {MAX_QUANTITY}", field_name: value},
        )
    return value


def _check_price_floor(cost_price: Decimal, selling_price: Decimal) -> None:
    if selling_price < cost_price:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={
                "message": "selling_price must be greater than or equal to cost_price",
                "cost_price": str(cost_price),
                "selling_price": str(selling_price),
            },
        )


class ProductCatalogService:
    """Product identity, pricing and the Pending -> Approved/Rejected gate.

    Only approved products are movable. Approval is the moment a product starts
    being tracked by the stock ledger at its bound location.
    """

    def __init__(self, db, *, ledger: StockLedger | None = None, registry: LocationRegistry | None = None):
        self.db = db
        self.repo = ProductRepository(db)
        self.ledger = ledger or StockLedger(db)
        self.registry = registry or LocationRegistry(db)

    def get(self, product_id) -> Product:
        product = self.repo.get_by_id(as_uuid(product_id, field_name="product_id"))
        if product is None:
            raise AppError(
                ErrorCatalog.NOT_FOUND,
                details={"message": "product not found", "product_id": str(product_id)},
            )
        return product

    def list_pending(self, *, limit: int = 50, offset: int = 0) -> list[Product]:
        return self.repo.list_products(
            ProductQueryFilters(status=ProductStatus.PENDING.value), limit=limit, offset=offset
        )

    def list_products(self, filters: ProductQueryFilters, *, limit: int = 50, offset: int = 0) -> list[Product]:
        return self.repo.list_products(filters, limit=limit, offset=offset)

    def list_categories(self) -> list[str]:
        return self.repo.list_categories()

    def list_low_stock(self, *, location_id=None) -> list[tuple[Product, StockBalance]]:
        if location_id is not None:
            location_id = self.registry.resolve(location_id).id
        return self.repo.list_low_stock(location_id=location_id)

    def submit(self, draft: ProductDraft, *, submitted_by: str) -> Product:
        name = _required_text(draft.name, "name")
        category = _required_text(draft.category, "category")
        brand = _required_text(draft.brand, "brand")
        cost_price = _money(draft.cost_price, "cost_price")
        selling_price = _money(draft.selling_price, "selling_price")
        _check_price_floor(cost_price, selling_price)
        low_stock_threshold = _non_negative_int(draft.low_stock_threshold, "low_stock_threshold")
        initial_stock = _non_negative_int(draft.initial_stock, "initial_stock")

        with transaction(self.db):
            location = self.registry.resolve(draft.bound_location_id, field_name="bound_location_id")
            if draft.bound_location_kind is not None and draft.bound_location_kind.value != location.kind:
                raise AppError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={
                        "message": "bound_location_kind does not match the location",
                        "bound_location_kind": draft.bound_location_kind.value,
                        "location_kind": location.kind,
                    },
                )
            now = datetime.utcnow()
            sku = self._resolve_sku(draft.sku, category, brand, now)
            product = self.repo.add(
                Product(
                    sku=sku,
                    name=name,
                    description=draft.description,
                    category=category,
                    brand=brand,
                    cost_price=cost_price,
                    selling_price=selling_price,
                    low_stock_threshold=low_stock_threshold,
                    initial_stock=initial_stock,
                    status=ProductStatus.PENDING.value,
                    bound_location_id=location.id,
                    bound_location_kind=location.kind,
                    submitted_by=submitted_by,
                    created_at=now,
                    updated_at=now,
                )
            )
        log_event(logger, "product.submitted", product_id=str(product.id), sku=sku, submitted_by=submitted_by)
        return product

    def update(self, product_id, changes: dict, *, updated_by: str) -> Product:
        """Edit product details. Transfers already created keep their price snapshot."""
        unknown = sorted(set(changes) - _EDITABLE_FIELDS)
        if unknown:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "fields cannot be updated", "fields": unknown},
            )
        with transaction(self.db):
            product = self._get_for_update(product_id)
            frozen = sorted(_FROZEN_ONCE_APPROVED & set(changes))
            if frozen and product.status == ProductStatus.APPROVED.value:
                raise AppError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={
                        "message": "fields cannot change once the product is approved",
                        "fields": frozen,
                        "status": product.status,
                    },
                )
            for field_name in ("name", "category", "brand"):
                if field_name in changes:
                    setattr(product, field_name, _required_text(changes[field_name], field_name))
            if "description" in changes:
                product.description = changes["description"]
            cost_price = product.cost_price
            selling_price = product.selling_price
            if "cost_price" in changes:
                cost_price = _money(changes["cost_price"], "cost_price")
            if "selling_price" in changes:
                selling_price = _money(changes["selling_price"], "selling_price")
            _check_price_floor(Decimal(cost_price), Decimal(selling_price))
            product.cost_price = cost_price
            product.selling_price = selling_price
            for field_name in ("low_stock_threshold", "initial_stock"):
                if field_name in changes:
                    setattr(product, field_name, _non_negative_int(changes[field_name], field_name))
            if "bound_location_id" in changes:
                location = self.registry.resolve(changes["bound_location_id"], field_name="bound_location_id")
                product.bound_location_id = location.id
                product.bound_location_kind = location.kind
            product.updated_at = datetime.utcnow()
        log_event(
            logger,
            "product.updated",
            product_id=str(product.id),
            updated_by=updated_by,
            fields=sorted(changes),
        )
        return product

    def delete(self, product_id, *, deleted_by: str) -> str:
        """Remove a product that never reached the ledger. Returns its sku."""
        with transaction(self.db):
            product = self._get_for_update(product_id)
            if product.status not in _DELETABLE_STATUSES:
                raise AppError(
                    ErrorCatalog.INVALID_STATE_TRANSITION,
                    details={
                        "message": f"cannot delete a product in status {product.status}",
                        "status": product.status,
                        "action": "delete",
                    },
                )
            sku = product.sku
            self.repo.delete(product)
        log_event(logger, "product.deleted", product_id=str(product_id), sku=sku, deleted_by=deleted_by)
        return sku

    def approve(self, product_id, approver_id: str) -> Product:
        with transaction(self.db):
            product = self._get_for_update(product_id)
            product.status = next_product_status(product.status, "approve").value
            now = datetime.utcnow()
            product.approved_by = approver_id
            product.approved_at = now
            product.updated_at = now
            self.db.flush()
            self.ledger.open_balance(
                product.id,
                product.bound_location_id,
                product.initial_stock,
                actor=approver_id,
            )
        log_event(
            logger,
            "product.approved",
            product_id=str(product.id),
            approved_by=approver_id,
            location_id=str(product.bound_location_id),
            initial_stock=product.initial_stock,
        )
        return product

    def reject(self, product_id, approver_id: str, reason: str | None) -> Product:
        reason = (reason or "").strip()
        if not reason:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "rejection_reason is required"},
            )
        with transaction(self.db):
            product = self._get_for_update(product_id)
            product.status = next_product_status(product.status, "reject").value
            now = datetime.utcnow()
            product.rejected_by = approver_id
            product.rejected_at = now
            product.rejection_reason = reason
            product.updated_at = now
        log_event(logger, "product.rejected", product_id=str(product.id), rejected_by=approver_id)
        return product

    def _get_for_update(self, product_id) -> Product:
        product = self.repo.get_by_id(as_uuid(product_id, field_name="product_id"), for_update=True)
        if product is None:
            raise AppError(
                ErrorCatalog.NOT_FOUND,
                details={"message": "product not found", "product_id": str(product_id)},
            )
        return product

    def _resolve_sku(self, requested: str | None, category: str, brand: str, now: datetime) -> str:
        if requested and requested.strip():
            sku = requested.strip().upper()
            if self.repo.sku_exists(sku):
                raise AppError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={"message": "sku already exists", "sku": sku},
                )
            return sku
        base = build_sku(category, brand, now)
        if not self.repo.sku_exists(base):
            return base
        for suffix in range(1, _MAX_SKU_SUFFIX):
            candidate = f"{base}-{suffix}"
            if not self.repo.sku_exists(candidate):
                return candidate
        raise AppError(
            ErrorCatalog.CONCURRENCY_CONFLICT,
            details={"message": "could not allocate a unique sku", "sku": base},
        )
