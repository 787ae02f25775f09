from decimal import Decimal

import pytest

from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.states import LocationKind
from app.stockroom.db.models import MAX_QUANTITY, Product, StockBalance, StockMovement
from app.stockroom.services.catalog import ProductCatalogService, build_sku
from tests.stock_helpers import ACTOR, APPROVER, balance_of, product_draft, seeded_locations


def test_submit_creates_pending_product_without_balance(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = ProductCatalogService(db_session).submit(product_draft(warehouse), submitted_by=ACTOR)

    assert product.status == "PENDING"
    assert product.submitted_by == ACTOR
    assert product.bound_location_id == warehouse.id
    assert product.bound_location_kind == "WAREHOUSE"
    assert product.sku.startswith("TN-SHI-AC-")
    assert db_session.query(StockBalance).count() == 0


def test_submit_rejects_selling_price_below_cost(db_session):
    warehouse, _ = seeded_locations(db_session)
    with pytest.raises(AppError) as exc:
        ProductCatalogService(db_session).submit(
            product_draft(warehouse, cost_price=Decimal("30.00"), selling_price=Decimal("20.00")),
            submitted_by=ACTOR,
        )
    assert exc.value.error is ErrorCatalog.VALIDATION_ERROR


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "  "},
        {"category": ""},
        {"brand": ""},
        {"cost_price": Decimal("-1")},
        {"low_stock_threshold": -1},
        {"initial_stock": -5},
        {"initial_stock": 10**20},
        {"low_stock_threshold": MAX_QUANTITY + 1},
        {"cost_price": Decimal("1e15"), "selling_price": Decimal("1e15")},
    ],
)
def test_submit_validates_fields_and_bounds(db_session, overrides):
    warehouse, _ = seeded_locations(db_session)
    with pytest.raises(AppError) as exc:
        ProductCatalogService(db_session).submit(product_draft(warehouse, **overrides), submitted_by=ACTOR)
    assert exc.value.error is ErrorCatalog.VALIDATION_ERROR


def test_submit_rejects_mismatched_location_kind(db_session):
    warehouse, _ = seeded_locations(db_session)
    with pytest.raises(AppError) as exc:
        ProductCatalogService(db_session).submit(
            product_draft(warehouse, bound_location_kind=LocationKind.OUTLET),
            submitted_by=ACTOR,
        )
    assert exc.value.error is ErrorCatalog.VALIDATION_ERROR


def test_submit_unknown_location_is_not_found(db_session):
    seeded_locations(db_session)

    class _Missing:
        id = "00000000-0000-0000-0000-000000000000"

    with pytest.raises(AppError) as exc:
        ProductCatalogService(db_session).submit(product_draft(_Missing()), submitted_by=ACTOR)
    assert exc.value.error is ErrorCatalog.NOT_FOUND


def test_supplied_sku_must_be_unique(db_session):
    warehouse, _ = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    catalog.submit(product_draft(warehouse, sku="shirt-001"), submitted_by=ACTOR)

    with pytest.raises(AppError) as exc:
        catalog.submit(product_draft(warehouse, sku="SHIRT-001"), submitted_by=ACTOR)
    assert exc.value.error is ErrorCatalog.VALIDATION_ERROR


def test_generated_sku_collision_gets_suffix(db_session, monkeypatch):
    warehouse, _ = seeded_locations(db_session)
    monkeypatch.setattr("app.stockroom.services.catalog.build_sku", lambda category, brand, at: "TN-SHI-AC-FIXED")
    catalog = ProductCatalogService(db_session)

    first = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)
    second = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)
    third = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)

    assert first.sku == "TN-SHI-AC-FIXED"
    assert second.sku == "TN-SHI-AC-FIXED-1"
    assert third.sku == "TN-SHI-AC-FIXED-2"


def test_build_sku_pads_short_codes():
    from datetime import datetime

    sku = build_sku("Hat", "Z", datetime(2024, 1, 1))
    assert sku.startswith("TN-HAT-ZX-")
    assert sku == sku.upper()


def test_approve_opens_balance_at_bound_location(db_session):
    warehouse, outlet = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    product = catalog.submit(product_draft(warehouse, initial_stock=40), submitted_by=ACTOR)

    approved = catalog.approve(product.id, APPROVER)

    assert approved.status == "APPROVED"
    assert approved.approved_by == APPROVER
    assert approved.approved_at is not None
    assert balance_of(db_session, product, warehouse) == (40, 0)
    assert balance_of(db_session, product, outlet) == (0, 0)
    movements = db_session.query(StockMovement).filter(StockMovement.product_id == product.id).all()
    assert [(m.action, m.quantity, m.balance_after) for m in movements] == [("CREDIT", 40, 40)]


def test_approve_with_zero_initial_stock_tracks_empty_row(db_session):
    warehouse, _ = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    product = catalog.submit(product_draft(warehouse, initial_stock=0), submitted_by=ACTOR)

    catalog.approve(product.id, APPROVER)

    row = db_session.get(StockBalance, (product.id, warehouse.id))
    assert row is not None
    assert (row.quantity, row.reserved_quantity) == (0, 0)


def test_second_approve_fails_without_double_initialization(db_session):
    warehouse, _ = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    product = catalog.submit(product_draft(warehouse, initial_stock=25), submitted_by=ACTOR)
    catalog.approve(product.id, APPROVER)

    with pytest.raises(AppError) as exc:
        catalog.approve(product.id, APPROVER)
    assert exc.value.error is ErrorCatalog.INVALID_STATE_TRANSITION
    assert balance_of(db_session, product, warehouse) == (25, 0)

    with pytest.raises(AppError) as exc:
        catalog.reject(product.id, APPROVER, "late")
    assert exc.value.error is ErrorCatalog.INVALID_STATE_TRANSITION


def test_reject_requires_reason(db_session):
    warehouse, _ = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    product = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)

    with pytest.raises(AppError) as exc:
        catalog.reject(product.id, APPROVER, "   ")
    assert exc.value.error is ErrorCatalog.VALIDATION_ERROR
    assert catalog.get(product.id).status == "PENDING"


def test_reject_is_terminal_and_never_touches_ledger(db_session):
    warehouse, _ = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    product = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)

    rejected = catalog.reject(product.id, APPROVER, "duplicate listing")

    assert rejected.status == "REJECTED"
    assert rejected.rejection_reason == "duplicate listing"
    assert rejected.rejected_by == APPROVER
    assert db_session.query(StockBalance).count() == 0
    with pytest.raises(AppError) as exc:
        catalog.approve(product.id, APPROVER)
    assert exc.value.error is ErrorCatalog.INVALID_STATE_TRANSITION


def test_list_pending_and_categories(db_session):
    warehouse, _ = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    pending = catalog.submit(product_draft(warehouse, category="Shoes"), submitted_by=ACTOR)
    approved = catalog.submit(product_draft(warehouse, category="Shirts"), submitted_by=ACTOR)
    catalog.approve(approved.id, APPROVER)

    assert [p.id for p in catalog.list_pending()] == [pending.id]
    assert catalog.list_categories() == ["Shirts"]


def test_list_low_stock(db_session):
    warehouse, _ = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    low = catalog.submit(product_draft(warehouse, name="Socks", initial_stock=3), submitted_by=ACTOR)
    plenty = catalog.submit(product_draft(warehouse, name="Belts", initial_stock=50), submitted_by=ACTOR)
    catalog.approve(low.id, APPROVER)
    catalog.approve(plenty.id, APPROVER)

    rows = catalog.list_low_stock(location_id=warehouse.id)

    assert [product.id for product, _ in rows] == [low.id]
    assert rows[0][1].quantity == 3


def test_get_unknown_product_is_not_found(db_session):
    with pytest.raises(AppError) as exc:
        ProductCatalogService(db_session).get("not-a-uuid")
    assert exc.value.error is ErrorCatalog.NOT_FOUND


def test_update_pending_product_revalidates_and_touches_updated_at(db_session):
    warehouse, outlet = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    product = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)
    submitted_at = product.updated_at

    updated = catalog.update(
        product.id,
        {"name": " Oxford Shirt ", "selling_price": "32.5", "initial_stock": 12, "bound_location_id": str(outlet.id)},
        updated_by=ACTOR,
    )

    assert updated.name == "Oxford Shirt"
    assert updated.selling_price == Decimal("32.50")
    assert updated.initial_stock == 12
    assert (updated.bound_location_id, updated.bound_location_kind) == (outlet.id, "OUTLET")
    assert updated.updated_at >= submitted_at
    assert updated.status == "PENDING"


@pytest.mark.parametrize(
    "changes",
    [
        {"selling_price": Decimal("5.00")},
        {"cost_price": Decimal("40.00")},
        {"name": ""},
        {"low_stock_threshold": MAX_QUANTITY + 1},
        {"status": "APPROVED"},
    ],
)
def test_update_rejects_invalid_changes(db_session, changes):
    warehouse, _ = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    product = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)
    product_id = product.id

    with pytest.raises(AppError) as exc:
        catalog.update(product_id, changes, updated_by=ACTOR)
    assert exc.value.error is ErrorCatalog.VALIDATION_ERROR
    db_session.expire_all()
    stored = db_session.get(Product, product_id)
    assert (stored.status, stored.cost_price, stored.selling_price) == ("PENDING", Decimal("10.00"), Decimal("25.00"))


def test_update_approved_product_keeps_opening_balance_fields(db_session):
    warehouse, outlet = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    product = catalog.submit(product_draft(warehouse, initial_stock=40), submitted_by=ACTOR)
    catalog.approve(product.id, APPROVER)

    for changes in ({"initial_stock": 90}, {"bound_location_id": str(outlet.id)}):
        with pytest.raises(AppError) as exc:
            catalog.update(product.id, changes, updated_by=ACTOR)
        assert exc.value.error is ErrorCatalog.VALIDATION_ERROR

    updated = catalog.update(product.id, {"low_stock_threshold": 8, "brand": "Globex"}, updated_by=ACTOR)

    assert (updated.low_stock_threshold, updated.brand, updated.status) == (8, "Globex", "APPROVED")
    assert updated.initial_stock == 40
    assert balance_of(db_session, product, warehouse) == (40, 0)


def test_delete_only_removes_products_outside_the_ledger(db_session):
    warehouse, _ = seeded_locations(db_session)
    catalog = ProductCatalogService(db_session)
    pending = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)
    rejected = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)
    catalog.reject(rejected.id, APPROVER, "duplicate listing")
    approved = catalog.submit(product_draft(warehouse), submitted_by=ACTOR)
    catalog.approve(approved.id, APPROVER)
    pending_id, rejected_id, approved_id = pending.id, rejected.id, approved.id

    catalog.delete(pending_id, deleted_by=ACTOR)
    catalog.delete(rejected_id, deleted_by=ACTOR)
    with pytest.raises(AppError) as exc:
        catalog.delete(approved_id, deleted_by=ACTOR)

    assert exc.value.error is ErrorCatalog.INVALID_STATE_TRANSITION
    db_session.expire_all()
    assert db_session.get(Product, pending_id) is None
    assert db_session.get(Product, rejected_id) is None
    assert db_session.get(Product, approved_id).status == "APPROVED"
    with pytest.raises(AppError) as exc:
        catalog.delete(pending_id, deleted_by=ACTOR)
    assert exc.value.error is ErrorCatalog.NOT_FOUND
