"""Tests for the HTTP API."""

import time

import pytest
from fastapi.testclient import TestClient

from switchboard.main import create_app
from switchboard.settings import Settings

API = "/api/v1"


@pytest.fixture
def client(tmp_path):
    """Create a test FastAPI client acting for "alice" on a temporary database."""
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        local_participant_id="alice",
        signal_transport="memory",
        message_transport_url=None,
        call_no_answer_timeout_seconds=30,
    )
    app = create_app(settings)

    with TestClient(app) as test_client:
        yield test_client


def wait_for_status(client, conversation_id, message_id, status, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        response = client.get(f"{API}/conversations/{conversation_id}/messages")
        for message in response.json():
            if message["id"] == message_id and message["status"] == status:
                return message
        time.sleep(0.02)
    raise AssertionError(f"Message {message_id} never reached {status}")


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_send_message(client):
    """Test that a sent message is accepted and delivered in the background."""
    response = client.post(f"{API}/conversations/conv-1/messages", json={"content": "Hello"})

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "sending"
    assert data["sender_id"] == "alice"

    delivered = wait_for_status(client, "conv-1", data["id"], "sent")
    assert delivered["server_id"] is not None


def test_send_empty_message_rejected(client):
    response = client.post(f"{API}/conversations/conv-1/messages", json={"content": ""})

    assert response.status_code == 422


def test_send_voice_and_file_messages(client):
    voice = client.post(
        f"{API}/conversations/conv-1/voice-messages",
        json={"audio_uri": "file:///note.m4a", "duration": 9},
    )
    document = client.post(
        f"{API}/conversations/conv-1/file-messages",
        json={"file_uri": "file:///cv.pdf", "file_name": "cv.pdf"},
    )
    bad_media = client.post(
        f"{API}/conversations/conv-1/media-messages",
        json={"media_uri": "file:///x", "media_type": "voice"},
    )

    assert voice.status_code == 201
    assert voice.json()["type"] == "voice"
    assert document.status_code == 201
    assert document.json()["type"] == "file"
    assert bad_media.status_code == 422


def test_send_location_message(client):
    response = client.post(
        f"{API}/conversations/conv-3/location-messages",
        json={"latitude": 48.8584, "longitude": 2.2945, "name": "Eiffel Tower"},
    )
    out_of_range = client.post(
        f"{API}/conversations/conv-3/location-messages",
        json={"latitude": 120, "longitude": 0},
    )

    assert response.status_code == 201
    assert response.json()["type"] == "location"
    assert out_of_range.status_code == 422

    conversations = client.get(f"{API}/conversations").json()
    conversation = next(c for c in conversations if c["id"] == "conv-3")
    assert conversation["last_message_preview"] == "Eiffel Tower"


def test_typing_indicator(client):
    started = client.post(f"{API}/conversations/conv-1/typing")
    stopped = client.post(f"{API}/conversations/conv-1/typing", json={"is_typing": False})
    client.put(f"{API}/connectivity", json={"network_online": False})
    offline = client.post(f"{API}/conversations/conv-1/typing")

    assert started.json() == {"sent": True}
    assert stopped.json() == {"sent": True}
    assert offline.json() == {"sent": False}


def test_inbound_message_and_read(client):
    """Test receiving a message, the unread count and marking it read."""
    payload = {
        "id": "msg_remote_1",
        "conversation_id": "conv-2",
        "sender_id": "bob",
        "body": "Hi Alice",
    }
    first = client.post(f"{API}/messages/inbound", json=payload)
    repeat = client.post(f"{API}/messages/inbound", json=payload)

    assert first.status_code == 201
    assert repeat.status_code == 201
    assert first.json()["status"] == "delivered"

    conversations = client.get(f"{API}/conversations").json()
    conversation = next(c for c in conversations if c["id"] == "conv-2")
    assert conversation["unread_count"] == 1
    assert conversation["last_message_preview"] == "Hi Alice"
    assert sorted(conversation["participant_ids"]) == ["alice", "bob"]

    read = client.post(f"{API}/conversations/conv-2/read")
    assert read.status_code == 200
    assert read.json() == {"marked": 1}

    conversations = client.get(f"{API}/conversations").json()
    conversation = next(c for c in conversations if c["id"] == "conv-2")
    assert conversation["unread_count"] == 0


def test_status_update(client):
    """Test applying receipts to an outbound message."""
    sent = client.post(f"{API}/conversations/conv-1/messages", json={"content": "Hi"}).json()
    wait_for_status(client, "conv-1", sent["id"], "sent")

    delivered = client.post(f"{API}/messages/{sent['id']}/status", json={"status": "delivered"})
    stale = client.post(f"{API}/messages/{sent['id']}/status", json={"status": "sent"})

    assert delivered.status_code == 200
    assert delivered.json()["status"] == "delivered"
    assert stale.json()["status"] == "delivered"


def test_status_update_unknown_message(client):
    response = client.post(f"{API}/messages/msg_missing/status", json={"status": "read"})

    assert response.status_code == 404


def test_offline_cancel_and_resend(client):
    """Test cancelling a queued message and sending it again."""
    offline = client.put(f"{API}/connectivity", json={"network_online": False})
    assert offline.json()["is_online"] is False

    sent = client.post(f"{API}/conversations/conv-1/messages", json={"content": "Later"}).json()
    status = client.get(f"{API}/connectivity").json()
    assert status["queued_messages"] == 1

    cancelled = client.post(f"{API}/messages/{sent['id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "failed"

    online = client.put(f"{API}/connectivity", json={"network_online": True})
    assert online.json()["is_online"] is True

    resent = client.post(f"{API}/messages/{sent['id']}/resend")
    assert resent.status_code == 201
    assert resent.json()["id"] != sent["id"]
    wait_for_status(client, "conv-1", resent.json()["id"], "sent")

    conflict = client.post(f"{API}/messages/{resent.json()['id']}/resend")
    assert conflict.status_code == 409


def test_delete_message(client):
    sent = client.post(f"{API}/conversations/conv-1/messages", json={"content": "oops"}).json()

    assert client.delete(f"{API}/messages/{sent['id']}").status_code == 204
    assert client.delete(f"{API}/messages/{sent['id']}").status_code == 404


def test_retry_flush_worker(client):
    response = client.post("/workers/retry-flush")

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert response.json()["queued_messages"] == 0


def test_call_lifecycle(client):
    """Test placing, inspecting and ending a call, then reading history."""
    assert client.get(f"{API}/calls/active").status_code == 404

    started = client.post(
        f"{API}/calls", json={"remote_participant_id": "bob", "call_type": "video"}
    )
    assert started.status_code == 201
    call = started.json()
    assert call["state"] == "ringing"
    assert call["direction"] == "outgoing"
    assert call["controls"]["video_enabled"] is True

    assert client.get(f"{API}/calls/active").json()["call_id"] == call["call_id"]
    assert client.get(f"{API}/calls/{call['call_id']}").status_code == 200

    muted = client.post(f"{API}/calls/{call['call_id']}/mute")
    assert muted.json() == {"enabled": True}

    answer = client.post(f"{API}/calls/{call['call_id']}/answer")
    assert answer.status_code == 409

    ended = client.post(f"{API}/calls/{call['call_id']}/end")
    assert ended.status_code == 200
    entry = ended.json()
    assert entry["final_status"] == "missed"
    assert entry["callee_id"] == "bob"
    assert entry["duration_label"] == "0s"

    again = client.post(f"{API}/calls/{call['call_id']}/end")
    assert again.json()["id"] == entry["id"]

    history = client.get(f"{API}/calls/history").json()
    assert [h["call_id"] for h in history] == [call["call_id"]]

    assert client.delete(f"{API}/calls/history/{entry['id']}").status_code == 204
    assert client.get(f"{API}/calls/history").json() == []
    assert client.delete(f"{API}/calls/history/{entry['id']}").status_code == 404


def test_unknown_call(client):
    assert client.get(f"{API}/calls/missing").status_code == 404
    assert client.post(f"{API}/calls/missing/answer").status_code == 404
    assert client.post(f"{API}/calls/missing/end").status_code == 404
    assert client.post(f"{API}/calls/missing/mute").json() == {"enabled": False}
