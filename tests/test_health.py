def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["trace_id"]


def test_ready(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_trace_id_is_propagated(client):
    response = client.get("/health", headers={"X-Trace-ID": "trace-abc"})
    assert response.headers["X-Trace-ID"] == "trace-abc"
    assert response.json()["trace_id"] == "trace-abc"


def test_metrics_endpoint_exposes_counters(client):
    client.get("/health")
    response = client.get("/stockroom/ops/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "transfer_transitions_total" in response.text


def test_oversized_trace_id_is_replaced(client):
    response = client.get("/health", headers={"X-Trace-ID": "x" * 200})
    trace_id = response.headers["X-Trace-ID"]
    assert trace_id != "x" * 200
    assert len(trace_id) == 32


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/stockroom/nowhere", headers={"X-Trace-ID": "trace-404"})
    assert response.status_code == 404
    assert response.json() == {"code": "NOT_FOUND", "message": "Not Found", "details": None, "trace_id": "trace-404"}
