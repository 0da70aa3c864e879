from tests.ledger_helpers import create_batch_via_api, create_location_via_api


def test_create_and_get_location(client):
    created = create_location_via_api(client, "cold-01", 50)

    assert created["name"] == "COLD-01"
    assert created["location_code"].startswith("LOC")
    assert created["is_occupied"] is False
    assert created["free_capacity"] == 50

    fetched = client.get(f"/api/locations/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["location_code"] == created["location_code"]


def test_default_capacity(client):
    response = client.post("/api/locations", json={"name": "A-10"})
    assert response.status_code == 201
    assert response.json()["max_capacity"] == 100


def test_duplicate_name_and_invalid_capacity(client):
    create_location_via_api(client, "A-11")

    duplicate = client.post("/api/locations", json={"name": "a-11"})
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "DUPLICATE_LOCATION"

    invalid = client.post("/api/locations", json={"name": "A-12", "max_capacity": 0})
    assert invalid.status_code == 422
    assert invalid.json()["code"] == "VALIDATION_ERROR"


def test_list_by_occupancy(client):
    occupied = create_location_via_api(client, "A-20")
    create_location_via_api(client, "A-21")
    create_batch_via_api(client, "B-400", 10, location_id=occupied["id"])

    taken = client.get("/api/locations", params={"occupancy": "occupied"}).json()
    free = client.get("/api/locations", params={"occupancy": "available"}).json()

    assert [item["name"] for item in taken["items"]] == ["A-20"]
    assert [item["name"] for item in free["items"]] == ["A-21"]
    assert taken["items"][0]["occupied_quantity"] == 10


def test_deactivate_activate_and_delete(client):
    location = create_location_via_api(client, "A-30")

    deactivated = client.post(f"/api/locations/{location['id']}/deactivate")
    assert deactivated.status_code == 200
    assert deactivated.json()["is_active"] is False

    activated = client.post(f"/api/locations/{location['id']}/activate")
    assert activated.json()["is_active"] is True

    deleted = client.delete(f"/api/locations/{location['id']}")
    assert deleted.status_code == 204
    assert client.get(f"/api/locations/{location['id']}").status_code == 404


def test_occupied_location_guards(client):
    location = create_location_via_api(client, "A-31", 100)
    create_batch_via_api(client, "B-401", 60, location_id=location["id"])

    shrink = client.patch(f"/api/locations/{location['id']}", json={"max_capacity": 59})
    assert shrink.status_code == 409
    assert shrink.json()["code"] == "LOCATION_CAPACITY_EXCEEDED"

    deactivate = client.post(f"/api/locations/{location['id']}/deactivate")
    assert deactivate.status_code == 409
    assert deactivate.json()["code"] == "LOCATION_NOT_EMPTY"

    delete = client.delete(f"/api/locations/{location['id']}")
    assert delete.status_code == 409
    assert delete.json()["code"] == "LOCATION_NOT_EMPTY"

    rename = client.patch(f"/api/locations/{location['id']}", json={"name": "A-31-X"})
    assert rename.status_code == 200
    assert rename.json()["name"] == "A-31-X"
