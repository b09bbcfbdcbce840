from __future__ import annotations

import pytest
from conftest import FakeAdvisory, make_settings
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from crisisguard.main import app
from crisisguard.routers.sessions import get_registry
from crisisguard.runtime_state import SessionRegistry


@pytest.fixture
def registry():
    return SessionRegistry(advisory_factory=FakeAdvisory, config=make_settings())


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_registry] = lambda: registry
    # One event loop for the whole test so background location tasks survive between requests.
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _new_session(client, **body) -> str:
    resp = client.post("/sessions", json=body or {"voice_supported": False})
    assert resp.status_code == 201
    return resp.json()["session_id"]


def test_meta_endpoints(client):
    assert client.get("/health").json()["status"] == "ok"
    catalog = client.get("/catalog").json()
    assert len(catalog) == 12
    assert {"name": "Flood", "icon": "🌊"} in catalog


def test_full_flood_flow(client):
    sid = _new_session(client)

    state = client.post(f"/sessions/{sid}/assessment", json={"disaster": "flood"}).json()
    assert state["view_state"] == "assessing"
    assert state["selected_disaster"] == "Flood"
    assert state["location"]["loading"] is True

    state = client.post(f"/sessions/{sid}/location/failure", json={"kind": "permission_denied"}).json()
    assert state["location"]["is_fallback_mode"] is True
    assert state["location"]["loading"] is False
    assert state["location"]["error"] == "User denied the request for Geolocation."

    state = client.put(f"/sessions/{sid}/location/address", json={"address": "123 Main St"}).json()
    assert state["location"]["manual_address"] == "123 Main St"
    assert state["map_query_url"].endswith("123%20Main%20St")

    state = client.post(f"/sessions/{sid}/protocol", json={"severity": "water rising fast"}).json()
    assert state["view_state"] == "protocol"
    assert state["protocol_result"] == "Stay calm. Move to higher ground."
    assert [m["role"] for m in state["chat_history"]] == ["user", "model"]
    assert state["chat_history"][0]["text"] == (
        "EMERGENCY ALERT: Flood. Location: 123 Main St. Info: water rising fast"
    )
    assert state["is_generating"] is False

    state = client.post(f"/sessions/{sid}/chat-mode").json()
    assert state["view_state"] == "chat"

    state = client.post(f"/sessions/{sid}/chat", json={"text": "Should I go to the roof?"}).json()
    assert [m["text"] for m in state["chat_history"][2:]] == [
        "Should I go to the roof?",
        "reply to Should I go to the roof?",
    ]

    state = client.post(f"/sessions/{sid}/reset").json()
    assert state["view_state"] == "home"
    assert state["chat_history"] == []
    assert state["selected_disaster"] == ""


def test_gps_fix_reported_by_client(client):
    sid = _new_session(client)
    client.post(f"/sessions/{sid}/assessment", json={"disaster": "Fire"})

    state = client.post(f"/sessions/{sid}/location/fix", json={"latitude": 48.85, "longitude": 2.35}).json()
    assert state["location"]["coordinates"] == {"lat": 48.85, "lng": 2.35}
    assert state["location"]["loading"] is False
    assert state["map_query_url"].endswith("query=48.85,2.35")


def test_manual_entry_before_fix_wins(client):
    sid = _new_session(client)
    client.post(f"/sessions/{sid}/assessment", json={"disaster": "Fire"})
    client.post(f"/sessions/{sid}/location/manual", json={"reason": "GPS off"})

    state = client.post(f"/sessions/{sid}/location/fix", json={"latitude": 1.0, "longitude": 2.0}).json()
    assert state["location"]["coordinates"] is None
    assert state["location"]["is_fallback_mode"] is True
    assert state["location"]["error"] == "GPS off"


def test_skip_to_chat_from_home(client):
    sid = _new_session(client)
    state = client.post(f"/sessions/{sid}/skip").json()
    assert state["view_state"] == "chat"
    assert state["chat_history"] == []


def test_blank_chat_message_is_ignored(client):
    sid = _new_session(client)
    client.post(f"/sessions/{sid}/skip")
    state = client.post(f"/sessions/{sid}/chat", json={"text": "   "}).json()
    assert state["chat_history"] == []


def test_voice_flow(client):
    sid = _new_session(client, voice_supported=True)
    client.post(f"/sessions/{sid}/skip")

    state = client.post(f"/sessions/{sid}/voice/toggle").json()
    assert state["voice"] == {"supported": True, "listening": True}

    state = client.post(f"/sessions/{sid}/voice/result", json={"transcript": "need a doctor"}).json()
    assert state["voice"]["listening"] is False
    assert [m["text"] for m in state["chat_history"]] == ["need a doctor", "reply to need a doctor"]


def test_error_statuses(client):
    assert client.get("/sessions/does-not-exist").status_code == 404

    sid = _new_session(client)
    assert client.post(f"/sessions/{sid}/protocol", json={"severity": "x"}).status_code == 409
    assert client.post(f"/sessions/{sid}/chat-mode").status_code == 409
    assert client.post(f"/sessions/{sid}/assessment", json={"disaster": "   "}).status_code == 422
    assert client.post(f"/sessions/{sid}/location/fix", json={"latitude": 123, "longitude": 0}).status_code == 422


def test_delete_session(client):
    sid = _new_session(client)
    assert client.delete(f"/sessions/{sid}").status_code == 204
    assert client.delete(f"/sessions/{sid}").status_code == 404


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------


def test_ws_initial_snapshot_and_command(client):
    sid = _new_session(client)
    with client.websocket_connect(f"/ws/sessions/{sid}") as ws:
        first = ws.receive_json()
        assert first["type"] == "snapshot"
        assert first["changed"] == []
        assert first["state"]["view_state"] == "home"

        ws.send_json({"type": "skip_to_chat", "payload": {}})
        frame = ws.receive_json()
        assert frame["type"] == "snapshot"
        assert "view_state" in frame["changed"]
        assert frame["state"]["view_state"] == "chat"


def test_ws_error_frames(client):
    sid = _new_session(client)
    with client.websocket_connect(f"/ws/sessions/{sid}") as ws:
        ws.receive_json()

        ws.send_text("not json")
        assert ws.receive_json()["code"] == "invalid_json"

        ws.send_json({"payload": {}})
        assert ws.receive_json()["code"] == "missing_type"

        ws.send_json({"type": "launch_rocket"})
        assert ws.receive_json()["code"] == "unknown_type"

        ws.send_json({"type": "enter_chat_mode"})
        assert ws.receive_json()["code"] == "invalid_transition"

        ws.send_json({"type": "report_position", "payload": {"latitude": "north"}})
        assert ws.receive_json()["code"] == "invalid_payload"

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_ws_unknown_session_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws/sessions/nope") as ws:
            ws.receive_json()
    assert excinfo.value.code == 4404
