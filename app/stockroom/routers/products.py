from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response

from app.stockroom.core.deps import page_limit, require_actor
from app.stockroom.core.states import LocationKind, ProductStatus
from app.stockroom.db.models import Product
from app.stockroom.db.session import get_db
from app.stockroom.repos.products import ProductQueryFilters
from app.stockroom.schemas.errors import CONFLICT_RESPONSES
from app.stockroom.schemas.products import (
    CategoryListResponse,
    LowStockListResponse,
    LowStockRow,
    ProductActionRequest,
    ProductCreateRequest,
    ProductListResponse,
    ProductResponse,
    ProductUpdateRequest,
)
from app.stockroom.services.audit import AuditService
from app.stockroom.services.catalog import ProductCatalogService, ProductDraft
from app.stockroom.services.idempotency import IdempotencyService

router = APIRouter()


def _product_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=str(product.id),
        sku=product.sku,
        name=product.name,
        description=product.description,
        category=product.category,
        brand=product.brand,
        cost_price=float(product.cost_price),
        selling_price=float(product.selling_price),
        low_stock_threshold=product.low_stock_threshold,
        initial_stock=product.initial_stock,
        status=product.status,
        bound_location_id=str(product.bound_location_id),
        bound_location_kind=product.bound_location_kind,
        submitted_by=product.submitted_by,
        approved_by=product.approved_by,
        approved_at=product.approved_at,
        rejected_by=product.rejected_by,
        rejected_at=product.rejected_at,
        rejection_reason=product.rejection_reason,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


@router.get("/stockroom/products", response_model=ProductListResponse)
def list_products(
    status: ProductStatus | None = None,
    category: str | None = None,
    search: str | None = None,
    location_id: UUID | None = None,
    limit: int = Depends(page_limit),
    offset: int = 0,
    db=Depends(get_db),
):
    filters = ProductQueryFilters(
        status=status.value if status else None,
        category=category,
        search=search,
        location_id=location_id,
    )
    rows = ProductCatalogService(db).list_products(filters, limit=limit, offset=max(offset, 0))
    return ProductListResponse(rows=[_product_response(row) for row in rows])


@router.get("/stockroom/products/pending", response_model=ProductListResponse)
def list_pending_products(limit: int = Depends(page_limit), offset: int = 0, db=Depends(get_db)):
    rows = ProductCatalogService(db).list_pending(limit=limit, offset=max(offset, 0))
    return ProductListResponse(rows=[_product_response(row) for row in rows])


@router.get("/stockroom/products/categories", response_model=CategoryListResponse)
def list_categories(db=Depends(get_db)):
    return CategoryListResponse(categories=ProductCatalogService(db).list_categories())


@router.get("/stockroom/products/low-stock", response_model=LowStockListResponse)
def list_low_stock(location_id: UUID | None = None, db=Depends(get_db)):
    rows = ProductCatalogService(db).list_low_stock(location_id=location_id)
    return LowStockListResponse(
        rows=[
            LowStockRow(
                product_id=str(product.id),
                sku=product.sku,
                name=product.name,
                location_id=str(balance.location_id),
                quantity=balance.quantity,
                reserved_quantity=balance.reserved_quantity,
                available=balance.available,
                low_stock_threshold=product.low_stock_threshold,
            )
            for product, balance in rows
        ]
    )


@router.post(
    "/stockroom/products",
    response_model=ProductResponse,
    status_code=201,
    responses=CONFLICT_RESPONSES,
)
def submit_product(
    request: Request,
    payload: ProductCreateRequest,
    actor: str = Depends(require_actor),
    db=Depends(get_db),
):
    claim, replay = IdempotencyService(db).begin(request, actor=actor, body=payload.model_dump(mode="json"))
    if replay:
        return replay

    draft = ProductDraft(
        name=payload.name,
        category=payload.category,
        brand=payload.brand,
        cost_price=payload.cost_price,
        selling_price=payload.selling_price,
        bound_location_id=payload.bound_location_id,
        bound_location_kind=LocationKind(payload.bound_location_kind) if payload.bound_location_kind else None,
        sku=payload.sku,
        description=payload.description,
        low_stock_threshold=payload.low_stock_threshold,
        initial_stock=payload.initial_stock,
    )
    product = ProductCatalogService(db).submit(draft, submitted_by=actor)
    response = _product_response(product)
    if claim is not None:
        claim.succeed(201, response.model_dump(mode="json"))
    AuditService(db).record_success(
        request,
        action="product.submit",
        entity_type="product",
        entity_id=response.id,
        after=response.model_dump(mode="json"),
        metadata={"idempotency_key": claim.key} if claim else None,
    )
    return response


@router.get("/stockroom/products/{product_id}", response_model=ProductResponse)
def get_product(product_id: UUID, db=Depends(get_db)):
    return _product_response(ProductCatalogService(db).get(product_id))


@router.post(
    "/stockroom/products/{product_id}/actions",
    response_model=ProductResponse,
    responses=CONFLICT_RESPONSES,
)
def product_actions(
    product_id: UUID,
    request: Request,
    payload: ProductActionRequest,
    actor: str = Depends(require_actor),
    db=Depends(get_db),
):
    service = ProductCatalogService(db)
    before = {"status": service.get(product_id).status}
    if payload.action == "approve":
        product = service.approve(product_id, actor)
    else:
        product = service.reject(product_id, actor, payload.rejection_reason)
    response = _product_response(product)
    AuditService(db).record_success(
        request,
        action=f"product.{payload.action}",
        entity_type="product",
        entity_id=response.id,
        before=before,
        after=response.model_dump(mode="json"),
        metadata={"rejection_reason": payload.rejection_reason} if payload.rejection_reason else None,
    )
    return response


@router.patch(
    "/stockroom/products/{product_id}",
    response_model=ProductResponse,
    responses=CONFLICT_RESPONSES,
)
def update_product(
    product_id: UUID,
    request: Request,
    payload: ProductUpdateRequest,
    actor: str = Depends(require_actor),
    db=Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    product = ProductCatalogService(db).update(product_id, changes, updated_by=actor)
    response = _product_response(product)
    AuditService(db).record_success(
        request,
        action="product.update",
        entity_type="product",
        entity_id=response.id,
        after=response.model_dump(mode="json"),
        metadata={"fields": sorted(changes)},
    )
    return response


@router.delete(
    "/stockroom/products/{product_id}",
    status_code=204,
    responses=CONFLICT_RESPONSES,
)
def delete_product(
    product_id: UUID,
    request: Request,
    actor: str = Depends(require_actor),
    db=Depends(get_db),
):
    sku = ProductCatalogService(db).delete(product_id, deleted_by=actor)
    AuditService(db).record_success(
        request,
        action="product.delete",
        entity_type="product",
        entity_id=str(product_id),
        metadata={"sku": sku},
    )
    return Response(status_code=204)
