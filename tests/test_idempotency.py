from app.stockroom.db.models import AuditEvent, IdempotencyRecord, Transfer
from tests.api_helpers import ACTOR_HEADERS, approved_product, balance, warehouse_and_outlet


def _transfer_body(source_id, dest_id, product_id, qty):
    return {
        "source_location_id": source_id,
        "dest_location_id": dest_id,
        "line_items": [{"product_id": product_id, "quantity": qty}],
    }


def test_create_transfer_replay_returns_stored_response(client, db_session):
    warehouse_id, outlet_id = warehouse_and_outlet(client)
    product = approved_product(client, warehouse_id, initial_stock=100)
    headers = {**ACTOR_HEADERS, "Idempotency-Key": "transfer-create-1"}
    body = _transfer_body(warehouse_id, outlet_id, product["id"], 30)

    first = client.post("/stockroom/transfers", headers=headers, json=body)
    second = client.post("/stockroom/transfers", headers=headers, json=body)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"
    assert second.json() == first.json()
    assert balance(client, product["id"], warehouse_id)["reserved_quantity"] == 30

    assert db_session.query(Transfer).count() == 1
    record = db_session.query(IdempotencyRecord).one()
    assert (record.state, record.status_code) == ("succeeded", 201)
    db_session.rollback()


def test_key_reuse_with_different_payload_is_rejected(client):
    warehouse_id, outlet_id = warehouse_and_outlet(client)
    product = approved_product(client, warehouse_id, initial_stock=100)
    headers = {**ACTOR_HEADERS, "Idempotency-Key": "transfer-create-2"}

    client.post("/stockroom/transfers", headers=headers, json=_transfer_body(warehouse_id, outlet_id, product["id"], 5))
    response = client.post(
        "/stockroom/transfers",
        headers=headers,
        json=_transfer_body(warehouse_id, outlet_id, product["id"], 6),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD"
    assert balance(client, product["id"], warehouse_id)["reserved_quantity"] == 5


def test_failed_request_is_replayed_as_failure(client):
    warehouse_id, outlet_id = warehouse_and_outlet(client)
    product = approved_product(client, warehouse_id, initial_stock=10)
    headers = {**ACTOR_HEADERS, "Idempotency-Key": "transfer-create-3"}
    body = _transfer_body(warehouse_id, outlet_id, product["id"], 50)

    first = client.post("/stockroom/transfers", headers=headers, json=body)
    second = client.post("/stockroom/transfers", headers=headers, json=body)

    assert first.status_code == 409
    assert second.status_code == 409
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"
    assert second.json()["code"] == "INSUFFICIENT_STOCK"


def test_product_submit_replay(client):
    warehouse_id, _ = warehouse_and_outlet(client)
    headers = {**ACTOR_HEADERS, "Idempotency-Key": "product-submit-1"}
    body = {
        "name": "Cap",
        "category": "Hats",
        "brand": "Acme",
        "cost_price": 3,
        "selling_price": 9,
        "bound_location_id": warehouse_id,
    }

    first = client.post("/stockroom/products", headers=headers, json=body)
    second = client.post("/stockroom/products", headers=headers, json=body)

    assert first.status_code == 201
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"
    assert second.json()["id"] == first.json()["id"]
    assert len(client.get("/stockroom/products").json()["rows"]) == 1


def test_successful_actions_are_audited(client, db_session):
    warehouse_id, outlet_id = warehouse_and_outlet(client)
    product = approved_product(client, warehouse_id, initial_stock=100)
    transfer = client.post(
        "/stockroom/transfers",
        headers={**ACTOR_HEADERS, "X-Trace-ID": "trace-audit-1"},
        json=_transfer_body(warehouse_id, outlet_id, product["id"], 10),
    ).json()

    events = db_session.query(AuditEvent).filter(AuditEvent.entity_id == transfer["id"]).all()
    assert [(event.action, event.actor, event.trace_id, event.result) for event in events] == [
        ("transfer.create", "clerk-1", "trace-audit-1", "success")
    ]
    product_actions = {
        event.action for event in db_session.query(AuditEvent).filter(AuditEvent.entity_id == product["id"]).all()
    }
    assert product_actions == {"product.submit", "product.approve"}
    db_session.rollback()
