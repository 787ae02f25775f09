from tests.api_helpers import ACTOR_HEADERS, create_location


def test_register_and_list_locations(client):
    warehouse_id = create_location(client, "wh-north", "WAREHOUSE")
    create_location(client, "OUT-CENTRAL", "OUTLET")

    response = client.get("/stockroom/locations", params={"kind": "WAREHOUSE"})
    assert response.status_code == 200
    rows = response.json()["rows"]
    assert [(row["id"], row["code"]) for row in rows] == [(warehouse_id, "WH-NORTH")]


def test_duplicate_code_is_validation_error(client):
    create_location(client, "WH-1", "WAREHOUSE")
    response = client.post(
        "/stockroom/locations",
        headers=ACTOR_HEADERS,
        json={"code": "wh-1", "name": "Again", "kind": "WAREHOUSE"},
    )
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_deactivate_and_reactivate(client):
    location_id = create_location(client, "OUT-1", "OUTLET")

    response = client.post(
        f"/stockroom/locations/{location_id}/actions",
        headers=ACTOR_HEADERS,
        json={"action": "deactivate"},
    )
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    inactive = client.get("/stockroom/locations", params={"is_active": False}).json()["rows"]
    assert [row["id"] for row in inactive] == [location_id]

    response = client.post(
        f"/stockroom/locations/{location_id}/actions",
        headers=ACTOR_HEADERS,
        json={"action": "activate"},
    )
    assert response.json()["is_active"] is True


def test_unknown_location_is_not_found(client):
    response = client.get("/stockroom/locations/5d0e5a9c-1111-4222-8333-444455556666")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_mutations_require_actor(client):
    response = client.post("/stockroom/locations", json={"code": "X", "name": "X", "kind": "OUTLET"})
    assert response.status_code == 400
    assert response.json()["code"] == "ACTOR_REQUIRED"
