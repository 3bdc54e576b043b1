from datetime import timedelta

from roomhub.timeutils import utcnow


def _create_room(client, headers, name, rate):
    response = client.post(
        "/rooms",
        json={"name": name, "capacity": 8, "type": "meeting", "hourly_rate": rate},
        headers=headers,
    )
    return response.json()["id"]


def test_dashboard_stats_for_day(client, admin_headers, user_headers):
    room_a = _create_room(client, admin_headers, "Room A", 5000)
    room_b = _create_room(client, admin_headers, "Room B", 3000)
    day = (utcnow() + timedelta(days=3)).replace(hour=0, minute=0, second=0, microsecond=0)

    for room_id, hour in ((room_a, 9), (room_b, 13)):
        client.post(
            "/bookings",
            json={
                "room_id": room_id,
                "title": f"Meeting {hour}",
                "start_time": (day + timedelta(hours=hour)).isoformat(),
                "end_time": (day + timedelta(hours=hour + 1)).isoformat(),
            },
            headers=user_headers,
        )

    response = client.get(
        "/dashboard/stats",
        params={"date": (day + timedelta(hours=9, minutes=30)).isoformat()},
        headers=user_headers,
    )
    assert response.status_code == 200
    assert response.json() == {
        "available_rooms": 1,
        "total_rooms": 2,
        "booked_today": 2,
        "pending_bookings": 0,
        "revenue_today": 8000,
    }


def test_dashboard_requires_authentication(client):
    assert client.get("/dashboard/stats").status_code == 401


def test_cached_stats_are_invalidated_by_writes(client, admin_headers):
    first = client.get("/dashboard/stats", headers=admin_headers).json()
    assert first["total_rooms"] == 0

    _create_room(client, admin_headers, "Room A", 5000)
    second = client.get("/dashboard/stats", headers=admin_headers).json()
    assert second["total_rooms"] == 1


def test_todays_bookings(client, admin_headers):
    room_id = _create_room(client, admin_headers, "Room A", 5000)
    now = utcnow()
    day_end = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
    # a short slot that still fits inside today
    start = min(now + timedelta(minutes=1), day_end - timedelta(minutes=2))
    client.post(
        "/bookings",
        json={
            "room_id": room_id,
            "title": "Today",
            "start_time": start.isoformat(),
            "end_time": (start + timedelta(minutes=1)).isoformat(),
        },
        headers=admin_headers,
    )
    client.post(
        "/bookings",
        json={
            "room_id": room_id,
            "title": "Tomorrow",
            "start_time": (day_end + timedelta(hours=9)).isoformat(),
            "end_time": (day_end + timedelta(hours=10)).isoformat(),
        },
        headers=admin_headers,
    )

    response = client.get("/dashboard/todays-bookings", headers=admin_headers)
    assert response.status_code == 200
    assert [b["title"] for b in response.json()] == ["Today"]
    assert response.json()[0]["room"]["name"] == "Room A"


def test_recent_activities(client, admin_headers):
    for name in ("Room A", "Room B", "Room C"):
        _create_room(client, admin_headers, name, 1000)

    response = client.get("/dashboard/recent-activities", params={"limit": 2}, headers=admin_headers)
    assert response.status_code == 200
    activities = response.json()
    assert [a["description"] for a in activities] == ['Room "Room C" was created', 'Room "Room B" was created']
    assert activities[0]["type"] == "room_created"

    everything = client.get("/dashboard/recent-activities", headers=admin_headers).json()
    # the admin registration is recorded as well
    assert everything[-1]["type"] == "user_registered"
    assert len(everything) == 4
