from datetime import datetime, timedelta

import pytest

from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.metrics import metrics
from app.stockroom.db.models import MAX_QUANTITY, StockHold, StockMovement
from app.stockroom.db.session import transaction
from app.stockroom.repos.stock import StockRepository
from app.stockroom.services.ledger import StockLedger
from tests.stock_helpers import approved_product, balance_of, seeded_locations


def test_reserve_holds_without_moving_quantity(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=100)
    ledger = StockLedger(db_session)

    with transaction(db_session):
        hold = ledger.reserve(product.id, warehouse.id, 30)

    assert hold.status == "ACTIVE"
    assert hold.expires_at is not None
    assert ledger.balance(product.id, warehouse.id) == 100
    assert balance_of(db_session, product, warehouse) == (100, 30)


def test_reserve_beyond_available_fails(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=50)
    ledger = StockLedger(db_session)
    with transaction(db_session):
        ledger.reserve(product.id, warehouse.id, 40)

    with pytest.raises(AppError) as exc:
        with transaction(db_session):
            ledger.reserve(product.id, warehouse.id, 11)
    assert exc.value.error is ErrorCatalog.INSUFFICIENT_STOCK
    assert exc.value.details["available"] == 10
    assert balance_of(db_session, product, warehouse) == (50, 40)


def test_reserve_untracked_row_fails_insufficient(db_session):
    warehouse, outlet = seeded_locations(db_session)
    product = approved_product(db_session, warehouse)

    with pytest.raises(AppError) as exc:
        StockLedger(db_session).reserve(product.id, outlet.id, 1)
    assert exc.value.error is ErrorCatalog.INSUFFICIENT_STOCK


@pytest.mark.parametrize("qty", [0, -3, MAX_QUANTITY + 1])
def test_out_of_range_quantities_are_rejected(db_session, qty):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse)

    with pytest.raises(AppError) as exc:
        StockLedger(db_session).reserve(product.id, warehouse.id, qty)
    assert exc.value.error is ErrorCatalog.VALIDATION_ERROR


def test_release_is_idempotent(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=20)
    ledger = StockLedger(db_session)
    with transaction(db_session):
        hold = ledger.reserve(product.id, warehouse.id, 5)

    with transaction(db_session):
        ledger.release(hold.id)
    with transaction(db_session):
        ledger.release(hold.id)

    assert balance_of(db_session, product, warehouse) == (20, 0)
    assert ledger.get_hold(hold.id).status == "RELEASED"
    releases = (
        db_session.query(StockMovement)
        .filter(StockMovement.hold_id == hold.id, StockMovement.action == "RELEASE")
        .count()
    )
    assert releases == 1


def test_commit_debit_moves_held_quantity(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=100)
    ledger = StockLedger(db_session)
    with transaction(db_session):
        hold = ledger.reserve(product.id, warehouse.id, 30)

    with transaction(db_session):
        ledger.commit_debit(hold.id)

    assert balance_of(db_session, product, warehouse) == (70, 0)
    assert ledger.get_hold(hold.id).status == "COMMITTED"


def test_commit_debit_on_closed_hold_conflicts(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=10)
    ledger = StockLedger(db_session)
    with transaction(db_session):
        hold = ledger.reserve(product.id, warehouse.id, 4)
    with transaction(db_session):
        ledger.release(hold.id)

    with pytest.raises(AppError) as exc:
        with transaction(db_session):
            ledger.commit_debit(hold.id)
    assert exc.value.error is ErrorCatalog.CONCURRENCY_CONFLICT
    assert balance_of(db_session, product, warehouse) == (10, 0)


def test_commit_credit_creates_missing_row(db_session):
    warehouse, outlet = seeded_locations(db_session)
    product = approved_product(db_session, warehouse)
    ledger = StockLedger(db_session)
    assert ledger.balance_row(product.id, outlet.id) is None

    with transaction(db_session):
        ledger.commit_credit(product.id, outlet.id, 12)
    with transaction(db_session):
        ledger.commit_credit(product.id, outlet.id, 3)

    row = ledger.balance_row(product.id, outlet.id)
    assert (row.quantity, row.reserved_quantity) == (15, 0)
    assert row.version == 2


def test_credit_past_integer_ceiling_is_rejected(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=MAX_QUANTITY - 1)
    ledger = StockLedger(db_session)

    with pytest.raises(AppError) as exc:
        with transaction(db_session):
            ledger.commit_credit(product.id, warehouse.id, 2)
    assert exc.value.error is ErrorCatalog.VALIDATION_ERROR
    assert balance_of(db_session, product, warehouse) == (MAX_QUANTITY - 1, 0)


def test_sales_debit_cannot_consume_held_stock(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=10)
    ledger = StockLedger(db_session)
    with transaction(db_session):
        ledger.reserve(product.id, warehouse.id, 8)

    with pytest.raises(AppError) as exc:
        with transaction(db_session):
            ledger.debit(product.id, warehouse.id, 3)
    assert exc.value.error is ErrorCatalog.INSUFFICIENT_STOCK

    with transaction(db_session):
        snapshot = ledger.debit(product.id, warehouse.id, 2, reason="sale")
    assert (snapshot.quantity, snapshot.reserved_quantity, snapshot.available) == (8, 8, 0)


def test_every_mutation_bumps_version_and_logs_movement(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=10)
    ledger = StockLedger(db_session)
    start_version = ledger.balance_row(product.id, warehouse.id).version

    with transaction(db_session):
        hold = ledger.reserve(product.id, warehouse.id, 2)
        ledger.release(hold.id)
        ledger.debit(product.id, warehouse.id, 1)

    assert ledger.balance_row(product.id, warehouse.id).version == start_version + 3
    actions = [
        movement.action
        for movement in db_session.query(StockMovement)
        .filter(StockMovement.product_id == product.id)
        .order_by(StockMovement.created_at.asc())
        .all()
    ]
    assert sorted(actions) == sorted(["CREDIT", "RESERVE", "RELEASE", "DEBIT"])


def test_hold_validity_checks_expiry_and_backing(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=10)
    ledger = StockLedger(db_session)
    with transaction(db_session):
        hold = ledger.reserve(product.id, warehouse.id, 4)

    assert ledger.hold_is_valid(hold) is True
    assert ledger.hold_is_valid(hold, now=hold.expires_at + timedelta(seconds=1)) is False

    with transaction(db_session):
        ledger.clear_expiry([hold])
    assert ledger.hold_is_valid(hold, now=datetime.utcnow() + timedelta(days=365)) is True


def test_ttl_zero_disables_expiry(db_session):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=10)

    with transaction(db_session):
        hold = StockLedger(db_session, hold_ttl_minutes=0).reserve(product.id, warehouse.id, 1)

    assert db_session.get(StockHold, hold.id).expires_at is None


def test_lost_compare_and_swap_is_retried(db_session, monkeypatch):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=10)
    ledger = StockLedger(db_session)
    original = StockRepository.compare_and_swap
    calls = {"count": 0}

    def flaky(self, balance, **kwargs):
        calls["count"] += 1
        if calls["count"] == 1:
            return False
        return original(self, balance, **kwargs)

    monkeypatch.setattr(StockRepository, "compare_and_swap", flaky)
    metrics.reset()
    with transaction(db_session):
        ledger.reserve(product.id, warehouse.id, 3)

    assert calls["count"] == 2
    assert balance_of(db_session, product, warehouse) == (10, 3)
    assert b'ledger_conflict_retries_total{operation="reserve"} 1.0' in metrics.render().content


def test_exhausted_retries_surface_conflict(db_session, monkeypatch):
    warehouse, _ = seeded_locations(db_session)
    product = approved_product(db_session, warehouse, initial_stock=10)
    ledger = StockLedger(db_session, max_retries=3)
    calls = {"count": 0}

    def always_lose(self, balance, **kwargs):
        calls["count"] += 1
        return False

    monkeypatch.setattr(StockRepository, "compare_and_swap", always_lose)
    with pytest.raises(AppError) as exc:
        with transaction(db_session):
            ledger.reserve(product.id, warehouse.id, 3)

    assert exc.value.error is ErrorCatalog.CONCURRENCY_CONFLICT
    assert calls["count"] == 3
    assert db_session.query(StockHold).count() == 0
