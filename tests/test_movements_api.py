from tests.ledger_helpers import create_batch_via_api


def _post_movement(client, payload, headers=None):
    return client.post("/api/movements", json=payload, headers=headers or {})


def test_create_transfer_movement(client):
    batch = create_batch_via_api(client, "B-200", 100)
    record_id = batch["stock_record"]["id"]

    response = _post_movement(
        client,
        {"stock_record_id": record_id, "movement_type": "transfer", "quantity": 30, "reason": "Restock"},
        headers={"X-Employee-ID": "emp-42", "X-Trace-ID": "trace-200"},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["stock_record"]["quantity_on_hand"] == 70
    assert payload["stock_record"]["quantity_on_shelf"] == 30
    assert payload["movement"]["performed_by"] == "emp-42"
    assert payload["movement"]["trace_id"] == "trace-200"
    assert payload["movement"]["movement_number"].startswith("BATCHMOV")
    assert response.headers["X-Trace-ID"] == "trace-200"


def test_legacy_field_names_are_accepted(client):
    batch = create_batch_via_api(client, "B-201", 10)

    response = _post_movement(
        client,
        {
            "inventory_detail_id": batch["stock_record"]["id"],
            "movement_type": "in",
            "quantity": 5,
            "date": "2026-01-15T10:00:00",
        },
    )

    assert response.status_code == 201
    assert response.json()["movement"]["movement_date"].startswith("2026-01-15T10:00:00")


def test_insufficient_stock_error_envelope(client):
    batch = create_batch_via_api(client, "B-202", 40)

    response = _post_movement(
        client,
        {"stock_record_id": batch["stock_record"]["id"], "movement_type": "transfer", "quantity": 50},
        headers={"X-Trace-ID": "trace-202"},
    )

    assert response.status_code == 409
    payload = response.json()
    assert payload["code"] == "INSUFFICIENT_STOCK"
    assert payload["details"] == {"stock_side": "on_hand", "current": 40, "requested": 50}
    assert payload["trace_id"] == "trace-202"


def test_invalid_quantity_and_missing_reason(client):
    batch = create_batch_via_api(client, "B-203", 40)
    record_id = batch["stock_record"]["id"]

    fractional = _post_movement(client, {"stock_record_id": record_id, "movement_type": "in", "quantity": 2.5})
    assert fractional.status_code == 422
    assert fractional.json()["code"] == "INVALID_QUANTITY"

    zero = _post_movement(client, {"stock_record_id": record_id, "movement_type": "transfer", "quantity": 0})
    assert zero.json()["code"] == "INVALID_QUANTITY"

    no_reason = _post_movement(client, {"stock_record_id": record_id, "movement_type": "adjustment", "quantity": -1})
    assert no_reason.status_code == 422
    assert no_reason.json()["code"] == "MISSING_REASON"


def test_unknown_movement_type_is_validation_error(client):
    batch = create_batch_via_api(client, "B-204", 40)

    response = _post_movement(
        client, {"stock_record_id": batch["stock_record"]["id"], "movement_type": "teleport", "quantity": 1}
    )

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "VALIDATION_ERROR"
    assert payload["details"]["errors"][0]["field"] == "movement_type"


def test_idempotent_replay(client):
    batch = create_batch_via_api(client, "B-205", 100)
    body = {"stock_record_id": batch["stock_record"]["id"], "movement_type": "transfer", "quantity": 10}
    headers = {"Idempotency-Key": "move-205"}

    first = _post_movement(client, body, headers)
    second = _post_movement(client, body, headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"
    assert second.json() == first.json()

    record = client.get(f"/api/stock-records/{batch['stock_record']['id']}").json()
    assert record["quantity_on_shelf"] == 10

    conflict = _post_movement(client, {**body, "quantity": 11}, headers)
    assert conflict.status_code == 409
    assert conflict.json()["code"] == "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD"


def test_failed_request_is_replayed_as_failure(client):
    batch = create_batch_via_api(client, "B-206", 5)
    body = {"stock_record_id": batch["stock_record"]["id"], "movement_type": "transfer", "quantity": 10}
    headers = {"Idempotency-Key": "move-206"}

    first = _post_movement(client, body, headers)
    second = _post_movement(client, body, headers)

    assert first.status_code == 409
    assert second.status_code == 409
    assert second.json()["code"] == "INSUFFICIENT_STOCK"
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"


def test_list_get_patch_and_reverse(client):
    batch = create_batch_via_api(client, "B-207", 100)
    record_id = batch["stock_record"]["id"]
    created = _post_movement(
        client, {"stock_record_id": record_id, "movement_type": "transfer", "quantity": 20}
    ).json()["movement"]

    listing = client.get("/api/movements", params={"stock_record_id": record_id, "sort_dir": "asc"})
    assert listing.status_code == 200
    payload = listing.json()
    assert payload["total"] == 2
    assert payload["page"] == 1
    assert payload["page_size"] == 20
    assert [item["movement_type"] for item in payload["items"]] == ["in", "transfer"]

    fetched = client.get(f"/api/movements/{created['id']}")
    assert fetched.json()["movement_number"] == created["movement_number"]

    patched = client.patch(f"/api/movements/{created['id']}", json={"notes": "front shelf"})
    assert patched.status_code == 200
    assert patched.json()["notes"] == "front shelf"

    reversed_response = client.delete(f"/api/movements/{created['id']}")
    assert reversed_response.status_code == 200
    reversal = reversed_response.json()
    assert reversal["movement"]["quantity"] == -20
    assert reversal["movement"]["reverses_movement_id"] == created["id"]
    assert reversal["stock_record"]["quantity_on_shelf"] == 0

    again = client.delete(f"/api/movements/{created['id']}")
    assert again.status_code == 409
    assert again.json()["code"] == "MOVEMENT_ALREADY_REVERSED"


def test_get_unknown_movement(client):
    response = client.get("/api/movements/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_list_filters_by_date_range_and_original_query_names(client):
    batch = create_batch_via_api(client, "B-210", 0)
    other = create_batch_via_api(client, "B-211", 0)
    record_id = batch["stock_record"]["id"]
    for stock_record_id, moved_at in (
        (record_id, "2026-03-10T15:30:00"),
        (record_id, "2026-03-11T09:00:00"),
        (other["stock_record"]["id"], "2026-03-10T08:00:00"),
    ):
        response = _post_movement(
            client, {"stock_record_id": stock_record_id, "movement_type": "in", "quantity": 5, "date": moved_at}
        )
        assert response.status_code == 201, response.text

    whole_day = client.get("/api/movements", params={"inventoryDetail": record_id, "endDate": "2026-03-10"})
    assert whole_day.status_code == 200
    assert [item["movement_date"][:16] for item in whole_day.json()["items"]] == ["2026-03-10T15:30"]

    before_noon = client.get("/api/movements", params={"stock_record_id": record_id, "end_date": "2026-03-10T12:00:00"})
    assert before_noon.json()["total"] == 0

    later = client.get(
        "/api/movements",
        params={"inventoryDetail": record_id, "movementType": "in", "startDate": "2026-03-11"},
    )
    assert [item["movement_date"][:16] for item in later.json()["items"]] == ["2026-03-11T09:00"]

    both_days = client.get("/api/movements", params={"startDate": "2026-03-10", "endDate": "2026-03-11"})
    assert both_days.json()["total"] == 3


def test_list_rejects_malformed_date_filter(client):
    response = client.get("/api/movements", params={"endDate": "10/03/2026"})

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"
