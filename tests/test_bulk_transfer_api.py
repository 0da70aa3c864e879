from datetime import date, timedelta

from tests.ledger_helpers import create_batch_via_api


def _expiry(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def test_bulk_transfer_partial_success(client):
    good = create_batch_via_api(client, "B-600", 100, expiry=_expiry(90))
    soon = create_batch_via_api(client, "B-601", 50, expiry=_expiry(5))
    expired = create_batch_via_api(client, "B-602", 50, expiry=_expiry(-1))
    short = create_batch_via_api(client, "B-603", 5, expiry=_expiry(90))

    response = client.post(
        "/api/bulk-transfers",
        json={
            "direction": "to_shelf",
            "items": [
                {"stock_record_id": good["stock_record"]["id"], "quantity": 30},
                {"stock_record_id": soon["stock_record"]["id"], "quantity": 10},
                {"stock_record_id": expired["stock_record"]["id"], "quantity": 10},
                {"stock_record_id": short["stock_record"]["id"], "quantity": 10},
                {"stock_record_id": "00000000-0000-0000-0000-000000000000", "quantity": 1},
            ],
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["succeeded"] == 2
    assert payload["failed"] == 3
    assert payload["summary"] == {"total": 5, "succeeded": 2, "failed": 3}
    assert {item["batch_code"]: item["expiring_soon"] for item in payload["results"]} == {
        "B-600": False,
        "B-601": True,
    }
    assert {item["batch_code"]: item["code"] for item in payload["failures"]} == {
        "B-602": "EXPIRED_BATCH",
        "B-603": "INSUFFICIENT_STOCK",
        None: "NOT_FOUND",
    }

    applied = client.get(f"/api/stock-records/{good['stock_record']['id']}").json()
    assert (applied["quantity_on_hand"], applied["quantity_on_shelf"]) == (70, 30)
    untouched = client.get(f"/api/stock-records/{short['stock_record']['id']}").json()
    assert untouched["quantity_on_shelf"] == 0

    movements = client.get(
        "/api/movements", params={"stock_record_id": good["stock_record"]["id"], "movement_type": "transfer"}
    ).json()
    assert movements["items"][0]["reason"] == "Bulk Stock Transfer"


def test_bulk_transfer_to_warehouse(client):
    batch = create_batch_via_api(client, "B-610", 40, expiry=_expiry(30))
    record_id = batch["stock_record"]["id"]
    client.post("/api/movements", json={"stock_record_id": record_id, "movement_type": "transfer", "quantity": 25})

    response = client.post(
        "/api/bulk-transfers",
        json={
            "direction": "to_warehouse",
            "items": [{"detail_inventory_id": record_id, "quantity": 20}],
            "meta": {"reason": "Close shelf"},
        },
    )

    payload = response.json()
    assert payload["succeeded"] == 1
    assert payload["results"][0]["quantity_on_shelf"] == 5
    assert payload["results"][0]["quantity_on_hand"] == 35


def test_bulk_transfer_rejects_bad_direction_and_empty_items(client):
    bad_direction = client.post("/api/bulk-transfers", json={"direction": "up", "items": []})
    assert bad_direction.status_code == 422
    assert bad_direction.json()["code"] == "VALIDATION_ERROR"

    empty = client.post("/api/bulk-transfers", json={"direction": "to_shelf", "items": []})
    assert empty.status_code == 422


def test_bulk_transfer_idempotent_replay(client):
    batch = create_batch_via_api(client, "B-620", 40, expiry=_expiry(60))
    body = {"direction": "to_shelf", "items": [{"stock_record_id": batch["stock_record"]["id"], "quantity": 10}]}
    headers = {"Idempotency-Key": "bulk-620"}

    first = client.post("/api/bulk-transfers", json=body, headers=headers)
    second = client.post("/api/bulk-transfers", json=body, headers=headers)

    assert second.json() == first.json()
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"
    record = client.get(f"/api/stock-records/{batch['stock_record']['id']}").json()
    assert record["quantity_on_shelf"] == 10


def test_plan_with_fefo_allocation(client):
    late = create_batch_via_api(client, "B-630", 30, expiry=_expiry(60))
    early = create_batch_via_api(client, "B-631", 20, expiry=_expiry(5))
    create_batch_via_api(client, "B-632", 20, expiry=_expiry(-2))

    response = client.post("/api/bulk-transfers/plan", json={"direction": "to_shelf", "product_id": "SKU-1", "quantity": 35})

    assert response.status_code == 200
    payload = response.json()
    assert {item["batch_code"] for item in payload["eligible"]} == {"B-630", "B-631"}
    assert [(item["batch_code"], item["excluded_reason"]) for item in payload["excluded"]] == [("B-632", "EXPIRED")]
    assert [(item["stock_record_id"], item["quantity"]) for item in payload["allocations"]] == [
        (early["stock_record"]["id"], 20),
        (late["stock_record"]["id"], 15),
    ]


def test_plan_allocation_beyond_stock(client):
    create_batch_via_api(client, "B-640", 10, expiry=_expiry(30))

    response = client.post("/api/bulk-transfers/plan", json={"direction": "to_shelf", "quantity": 11})

    assert response.status_code == 409
    assert response.json()["code"] == "INSUFFICIENT_STOCK"
