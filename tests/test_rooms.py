from datetime import timedelta

from roomhub.timeutils import utcnow

ROOM_PAYLOAD = {
    "name": "Board Room",
    "capacity": 10,
    "type": "conference",
    "amenities": ["Projector", "Whiteboard"],
    "hourly_rate": 5000,
}


def test_room_crud(client, admin_headers):
    create_resp = client.post("/rooms", json=ROOM_PAYLOAD, headers=admin_headers)
    assert create_resp.status_code == 201
    room = create_resp.json()
    assert room["amenities"] == ["Projector", "Whiteboard"]
    assert room["is_active"] is True

    list_resp = client.get("/rooms")
    assert list_resp.status_code == 200
    listed = list_resp.json()
    assert len(listed) == 1
    assert listed[0]["is_available"] is True
    assert listed[0]["current_booking"] is None

    update_resp = client.put(f"/rooms/{room['id']}", json={"capacity": 14}, headers=admin_headers)
    assert update_resp.status_code == 200
    assert update_resp.json()["capacity"] == 14
    assert update_resp.json()["name"] == "Board Room"

    delete_resp = client.delete(f"/rooms/{room['id']}", headers=admin_headers)
    assert delete_resp.status_code == 204
    assert client.get(f"/rooms/{room['id']}").status_code == 404


def test_room_admin_endpoints_require_admin(client, user_headers):
    response = client.post("/rooms", json=ROOM_PAYLOAD, headers=user_headers)
    assert response.status_code == 403


def test_room_validation(client, admin_headers):
    bad = dict(ROOM_PAYLOAD, capacity=0)
    response = client.post("/rooms", json=bad, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_argument"

    bad_type = dict(ROOM_PAYLOAD, type="ballroom")
    assert client.post("/rooms", json=bad_type, headers=admin_headers).status_code == 422


def test_room_with_bookings_is_deactivated(client, admin_headers):
    room_id = client.post("/rooms", json=ROOM_PAYLOAD, headers=admin_headers).json()["id"]
    start = (utcnow() + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)
    client.post(
        "/bookings",
        json={
            "room_id": room_id,
            "title": "Planning",
            "start_time": start.isoformat(),
            "end_time": (start + timedelta(hours=1)).isoformat(),
        },
        headers=admin_headers,
    )

    assert client.delete(f"/rooms/{room_id}", headers=admin_headers).status_code == 204
    room = client.get(f"/rooms/{room_id}")
    assert room.status_code == 200
    assert room.json()["is_active"] is False
    assert client.get("/rooms").json() == []


def test_room_status_at_instant(client, admin_headers):
    room_id = client.post("/rooms", json=ROOM_PAYLOAD, headers=admin_headers).json()["id"]
    day = (utcnow() + timedelta(days=2)).replace(hour=0, minute=0, second=0, microsecond=0)
    for hour in (9, 14):
        client.post(
            "/bookings",
            json={
                "room_id": room_id,
                "title": f"Slot {hour}",
                "start_time": (day + timedelta(hours=hour)).isoformat(),
                "end_time": (day + timedelta(hours=hour + 1)).isoformat(),
            },
            headers=admin_headers,
        )

    busy = client.get(f"/rooms/{room_id}/status", params={"at": (day + timedelta(hours=9, minutes=30)).isoformat()})
    assert busy.status_code == 200
    assert busy.json()["is_available"] is False
    assert busy.json()["current_booking"]["title"] == "Slot 9"
    assert busy.json()["next_booking"]["title"] == "Slot 14"

    free = client.get("/rooms", params={"date": (day + timedelta(hours=12)).isoformat()})
    assert free.json()[0]["is_available"] is True
    assert free.json()[0]["next_booking"]["title"] == "Slot 14"

    assert client.get("/rooms/999/status").status_code == 404
