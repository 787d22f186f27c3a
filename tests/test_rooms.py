from tests.helpers import auth_headers


def test_room_crud(rooms_client, admin):
    headers = auth_headers(admin)

    create_resp = rooms_client.post("/rooms", json={"name": "Board Room", "capacity": 10}, headers=headers)
    assert create_resp.status_code == 201
    room_id = create_resp.json()["id"]
    assert create_resp.json()["type"] == "General"

    list_resp = rooms_client.get("/rooms?min_capacity=5", headers=headers)
    assert [room["name"] for room in list_resp.json()] == ["Board Room"]

    update_resp = rooms_client.put(f"/rooms/{room_id}", json={"capacity": 12, "type": "Meeting"}, headers=headers)
    assert update_resp.status_code == 200
    assert update_resp.json()["capacity"] == 12

    assert rooms_client.get(f"/rooms/{room_id}", headers=headers).json()["type"] == "Meeting"
    assert rooms_client.delete(f"/rooms/{room_id}", headers=headers).status_code == 204
    assert rooms_client.get(f"/rooms/{room_id}", headers=headers).status_code == 404


def test_room_list_cache_is_invalidated_on_write(rooms_client, admin):
    headers = auth_headers(admin)
    rooms_client.post("/rooms", json={"name": "Lab A", "capacity": 20}, headers=headers)
    assert len(rooms_client.get("/rooms", headers=headers).json()) == 1

    rooms_client.post("/rooms", json={"name": "Lab B", "capacity": 20}, headers=headers)
    assert len(rooms_client.get("/rooms", headers=headers).json()) == 2


def test_room_names_are_unique_ignoring_case(rooms_client, admin):
    headers = auth_headers(admin)
    rooms_client.post("/rooms", json={"name": "Lab A", "capacity": 20}, headers=headers)

    response = rooms_client.post("/rooms", json={"name": "lab a", "capacity": 5}, headers=headers)
    assert response.status_code == 400


def test_students_cannot_manage_rooms(rooms_client, student, room):
    headers = auth_headers(student)

    assert rooms_client.post("/rooms", json={"name": "Mine", "capacity": 2}, headers=headers).status_code == 403
    assert rooms_client.delete(f"/rooms/{room.id}", headers=headers).status_code == 403
    assert rooms_client.get("/rooms", headers=headers).status_code == 200


def test_rooms_require_token(rooms_client):
    assert rooms_client.get("/rooms").status_code == 401
