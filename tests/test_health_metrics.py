from tests.ledger_helpers import create_batch_via_api


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["trace_id"]


def test_ready(client):
    response = client.get("/ready", headers={"X-Trace-ID": "ready-1"})
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "trace_id": "ready-1"}


def test_metrics_count_movements_and_rejections(client):
    batch = create_batch_via_api(client, "B-700", 10)
    record_id = batch["stock_record"]["id"]
    client.post("/api/movements", json={"stock_record_id": record_id, "movement_type": "transfer", "quantity": 4})
    client.post("/api/movements", json={"stock_record_id": record_id, "movement_type": "transfer", "quantity": 40})

    response = client.get("/ops/metrics")
    assert response.status_code == 200
    content = response.text
    assert 'stock_movements_total{movement_type="transfer"} 1.0' in content
    assert 'movement_rejections_total{code="INSUFFICIENT_STOCK"} 1.0' in content
    assert "http_requests_total" in content


def test_openapi_lists_ledger_routes(client):
    schema = client.get("/openapi.json").json()
    assert "/api/movements" in schema["paths"]
    assert "/api/bulk-transfers" in schema["paths"]
    responses = schema["paths"]["/api/movements"]["post"]["responses"]
    assert "409" in responses
