"""WebSocket live channel tests: auth handshake, join/leave, event delivery."""

import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.limiter import limiter
from app.main import app
from app.sync.routes import AUTH_FAILED_CLOSE_CODE

PASSWORD = "password123"


@pytest.fixture
def client(init_test_db):
    """Context-managed TestClient: HTTP calls and sockets share one event loop."""
    limiter.reset()
    with TestClient(app) as c:
        yield c


def _token(client: TestClient, email: str) -> str:
    r = client.post("/api/auth/authenticate", json={"email": email, "password": PASSWORD})
    return r.json()["access_token"]


def _connect_authenticated(ws, token: str, email: str) -> None:
    ws.send_json({"type": "auth", "token": token})
    assert ws.receive_json() == {"type": "authenticated", "email": email}


def test_bad_token_closes_with_4401(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "auth", "token": "not-a-token"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["status"] == 401
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == AUTH_FAILED_CLOSE_CODE


def test_first_frame_must_be_auth(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "join", "projectName": "demo"})
        assert ws.receive_json()["status"] == 401
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == AUTH_FAILED_CLOSE_CODE


def test_join_receives_updates_and_deletes(client: TestClient, unique_email) -> None:
    alice = unique_email("alice")
    token = _token(client, alice)
    headers = {"Authorization": f"Bearer {token}"}
    name = f"live-{uuid.uuid4().hex[:8]}"
    client.post("/api/projects", json={"name": name}, headers=headers)

    with client.websocket_connect("/ws") as ws:
        _connect_authenticated(ws, token, alice)
        ws.send_json({"type": "join", "projectName": name})
        assert ws.receive_json() == {"type": "joined", "projectName": name, "owner": alice}

        files = f"/api/projects/{name}/files"
        client.put(files, json={"path": "a.txt", "content": "hi"}, headers=headers)
        client.delete(files, params={"path": "a.txt"}, headers=headers)
        updated = ws.receive_json()
        deleted = ws.receive_json()

        ws.send_json({"type": "leave", "projectName": name})
        assert ws.receive_json()["type"] == "left"
        ws.send_json({"type": "leave", "projectName": name})
        assert ws.receive_json()["status"] == 404

    assert updated == {
        "type": "file-updated",
        "projectName": name,
        "owner": alice,
        "path": "a.txt",
        "content": "hi",
        "encoding": "utf8",
        "version": 1,
    }
    assert deleted == {"type": "file-deleted", "projectName": name, "owner": alice, "path": "a.txt"}


def test_join_requires_read_access(client: TestClient, unique_email) -> None:
    alice, bob = unique_email("alice"), unique_email("bob")
    alice_h = {"Authorization": f"Bearer {_token(client, alice)}"}
    bob_token = _token(client, bob)
    name = f"live-{uuid.uuid4().hex[:8]}"
    client.post("/api/projects", json={"name": name}, headers=alice_h)

    with client.websocket_connect("/ws") as ws:
        _connect_authenticated(ws, bob_token, bob)
        ws.send_json({"type": "join", "projectName": name, "owner": alice})
        assert ws.receive_json() == {"type": "error", "status": 403, "detail": "access denied"}
        ws.send_json({"type": "join", "projectName": f"missing-{uuid.uuid4().hex}"})
        assert ws.receive_json()["status"] == 404
        ws.send_json({"type": "dance"})
        assert ws.receive_json()["status"] == 400
        ws.send_json({"type": "join", "projectName": name, "owner": 123})
        assert ws.receive_json() == {"type": "error", "status": 400, "detail": "owner must be an email"}
        ws.send_json({"type": "join", "projectName": name, "owner": alice})
        assert ws.receive_json()["status"] == 403
