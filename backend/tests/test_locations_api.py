from fastapi.testclient import TestClient


def _location(client: TestClient, **fields) -> dict:
    resp = client.post("/api/locations", json=fields)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_and_list_locations(client: TestClient) -> None:
    _location(client, name="Shelf 2", room="101", building="North")
    _location(client, name="Cabinet A", room="101", building="North", storageType="flammables")
    _location(client, name="Fridge", room="003", building="Annex")

    body = client.get("/api/locations").json()

    assert [(loc["building"], loc["room"], loc["name"]) for loc in body] == [
        ("Annex", "003", "Fridge"),
        ("North", "101", "Cabinet A"),
        ("North", "101", "Shelf 2"),
    ]
    assert body[1]["storageType"] == "flammables"
    assert {loc["bottleCount"] for loc in body} == {0}


def test_duplicate_location_is_a_conflict(client: TestClient) -> None:
    existing = _location(client, name="Cabinet A", room="101", building="North")

    resp = client.post("/api/locations", json={"name": "Cabinet A", "room": "101", "building": "North"})

    assert resp.status_code == 409
    assert resp.json()["code"] == "location.duplicate_name"
    assert resp.json()["existingId"] == existing["id"]


def test_same_name_in_another_room_is_allowed(client: TestClient) -> None:
    _location(client, name="Cabinet A", room="101")
    _location(client, name="Cabinet A", room="102")

    # Without room or building the name alone must still be unique
    _location(client, name="Bench")
    assert client.post("/api/locations", json={"name": "Bench"}).status_code == 409


def test_rename_onto_existing_location_conflicts(client: TestClient) -> None:
    _location(client, name="Cabinet A", room="101")
    other = _location(client, name="Cabinet B", room="101")

    resp = client.put(f"/api/locations/{other['id']}", json={"name": "Cabinet A"})
    assert resp.status_code == 409

    moved = client.put(f"/api/locations/{other['id']}", json={"room": "102", "name": "Cabinet A"})
    assert moved.status_code == 200
    assert moved.json()["room"] == "102"


def test_detail_lists_only_active_bottles(client: TestClient) -> None:
    shelf = _location(client, name="Shelf 1")
    chem = client.post("/api/chemicals", json={"name": "Acetone"}).json()
    bottles = client.post(
        "/api/bottles", json={"chemicalId": chem["id"], "numberOfBottles": 3, "locationId": shelf["id"]}
    ).json()["bottles"]
    client.put(f"/api/bottles/{bottles[1]['id']}", json={"status": "empty"})

    detail = client.get(f"/api/locations/{shelf['id']}").json()

    assert detail["name"] == "Shelf 1"
    assert [b["bottleId"] for b in detail["bottles"]] == ["CHEM0001-1", "CHEM0001-3"]
    assert detail["bottles"][0]["chemical"]["name"] == "Acetone"
    # The count in the list covers every bottle stored there
    assert client.get("/api/locations").json()[0]["bottleCount"] == 3


def test_delete_blocked_by_any_bottle(client: TestClient) -> None:
    shelf = _location(client, name="Shelf 1")
    chem = client.post("/api/chemicals", json={"name": "Acetone"}).json()
    bottles = client.post(
        "/api/bottles", json={"chemicalId": chem["id"], "numberOfBottles": 2, "locationId": shelf["id"]}
    ).json()["bottles"]
    client.put(f"/api/bottles/{bottles[0]['id']}", json={"status": "disposed"})

    blocked = client.delete(f"/api/locations/{shelf['id']}")
    assert blocked.status_code == 400
    assert blocked.json()["code"] == "location.has_bottles"
    assert blocked.json()["bottleCount"] == 2

    for bottle in bottles:
        client.put(f"/api/bottles/{bottle['id']}", json={"locationId": None})
    assert client.delete(f"/api/locations/{shelf['id']}").status_code == 200
    assert client.get(f"/api/locations/{shelf['id']}").status_code == 404


def test_moving_bottle_to_unknown_location_is_404(client: TestClient) -> None:
    chem = client.post("/api/chemicals", json={"name": "Acetone"}).json()
    bottle = client.post("/api/bottles", json={"chemicalId": chem["id"]}).json()["bottles"][0]

    resp = client.put(f"/api/bottles/{bottle['id']}", json={"locationId": 404})

    assert resp.status_code == 404
    assert resp.json()["code"] == "location.not_found"
