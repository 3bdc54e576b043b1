import asyncio
from datetime import timedelta
from types import SimpleNamespace

import pytest

from roomhub.notifications import ChannelRegistry
from roomhub.timeutils import utcnow
from services.api.routers.events import events


def test_websocket_receives_lifecycle_events(client, admin_headers):
    with client.websocket_connect("/ws") as websocket:
        room = client.post(
            "/rooms",
            json={"name": "Live Room", "capacity": 4, "type": "huddle", "hourly_rate": 2000},
            headers=admin_headers,
        ).json()
        event = websocket.receive_json()
        assert event["type"] == "room_created"
        assert event["data"]["id"] == room["id"]

        start = (utcnow() + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)
        booking = client.post(
            "/bookings",
            json={
                "room_id": room["id"],
                "title": "Sync",
                "start_time": start.isoformat(),
                "end_time": (start + timedelta(hours=1)).isoformat(),
            },
            headers=admin_headers,
        ).json()
        event = websocket.receive_json()
        assert event["type"] == "booking_created"
        assert event["data"]["id"] == booking["id"]
        assert event["data"]["room"]["name"] == "Live Room"

        clash = client.post(
            "/bookings",
            json={
                "room_id": room["id"],
                "title": "Clash",
                "start_time": (start + timedelta(minutes=30)).isoformat(),
                "end_time": (start + timedelta(minutes=90)).isoformat(),
            },
            headers=admin_headers,
        )
        assert clash.status_code == 409
        event = websocket.receive_json()
        assert event["type"] == "conflict_detected"
        assert event["data"]["conflicting_booking_ids"] == [booking["id"]]

        client.delete(f"/bookings/{booking['id']}", headers=admin_headers)
        event = websocket.receive_json()
        assert event == {"type": "booking_deleted", "data": {"id": booking["id"], "status": "cancelled"}}


def create_room(client, headers, name):
    return client.post(
        "/rooms",
        json={"name": name, "capacity": 4, "type": "huddle", "hourly_rate": 2000},
        headers=headers,
    ).json()


def test_disconnected_client_is_dropped(client, admin_headers):
    registry = client.app.state.services.registry
    assert len(registry) == 0
    with client.websocket_connect("/ws") as websocket:
        create_room(client, admin_headers, "Registered Room")
        # the first event proves the channel is registered
        assert websocket.receive_json()["type"] == "room_created"
        assert len(registry) == 1
    assert len(registry) == 0


def test_binary_frames_are_ignored(client, admin_headers):
    registry = client.app.state.services.registry
    with client.websocket_connect("/ws") as websocket:
        websocket.send_bytes(b"\x00\x01")
        websocket.send_text("hello")
        room = create_room(client, admin_headers, "Binary Room")
        event = websocket.receive_json()
        assert event["type"] == "room_created"
        assert event["data"]["id"] == room["id"]
        assert len(registry) == 1
    assert len(registry) == 0


def test_failed_handshake_unregisters_channel():
    registry = ChannelRegistry()

    async def send_text(message):
        pass

    async def accept():
        raise ConnectionResetError("handshake aborted")

    websocket = SimpleNamespace(
        app=SimpleNamespace(state=SimpleNamespace(services=SimpleNamespace(registry=registry))),
        send_text=send_text,
        accept=accept,
    )

    with pytest.raises(ConnectionResetError):
        asyncio.run(events(websocket))

    assert len(registry) == 0
