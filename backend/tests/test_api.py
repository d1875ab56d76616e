"""API tests with TestClient: auth, projects, links, permissions and files over HTTP."""

import base64
import uuid

import pytest
from fastapi.testclient import TestClient

from app.limiter import limiter
from app.main import app

PASSWORD = "password123"


@pytest.fixture
def client(init_test_db):
    """TestClient for the FastAPI app. Use as context manager so lifespan runs (init_db)."""
    limiter.reset()
    with TestClient(app) as c:
        yield c


def _login(client: TestClient, email: str) -> dict:
    """Authenticate-or-register and return Authorization headers."""
    r = client.post("/api/auth/authenticate", json={"email": email, "password": PASSWORD})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def _project_name() -> str:
    return f"demo-{uuid.uuid4().hex[:8]}"


def test_health(client: TestClient) -> None:
    """GET /health returns 200 and status ok."""
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_authenticate_registers_then_logs_in(client: TestClient, unique_email) -> None:
    email = unique_email()
    first = client.post("/api/auth/authenticate", json={"email": email, "password": PASSWORD})
    assert first.status_code == 200
    data = first.json()
    assert data["registered"] is True
    assert data["token_type"] == "bearer"
    assert data["expires_in"] > 0
    second = client.post("/api/auth/authenticate", json={"email": email, "password": PASSWORD})
    assert second.json()["registered"] is False
    wrong = client.post("/api/auth/authenticate", json={"email": email, "password": "wrong-pass"})
    assert wrong.status_code == 401


def test_register_login_refresh_verify(client: TestClient, unique_email) -> None:
    email = unique_email()
    r = client.post("/api/auth/register", json={"email": email, "password": PASSWORD})
    assert r.status_code == 201
    assert client.post("/api/auth/register", json={"email": email, "password": PASSWORD}).status_code == 409
    tokens = client.post("/api/auth/login", json={"email": email, "password": PASSWORD}).json()
    refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    assert client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]}).status_code == 401
    verified = client.post("/api/auth/verify", json={"token": tokens["access_token"]}).json()
    assert verified == {"valid": True, "email": email}
    assert client.post("/api/auth/verify", json={"token": "garbage"}).json()["valid"] is False


def test_me_requires_auth(client: TestClient, unique_email) -> None:
    """GET /api/users/me without Bearer returns 401; with a token returns the user."""
    r = client.get("/api/users/me")
    assert r.status_code == 401
    assert r.headers.get("WWW-Authenticate") == "Bearer"
    email = unique_email()
    me = client.get("/api/users/me", headers=_login(client, email))
    assert me.status_code == 200
    assert me.json()["email"] == email
    assert "password_hash" not in me.json()


@pytest.mark.parametrize(
    "method,url",
    [
        ("get", "/api/projects"),
        ("post", "/api/projects/link"),
        ("get", "/api/projects/demo/files/all"),
        ("get", "/api/projects/demo/files?path=a.txt"),
        ("get", "/api/projects/demo/permissions"),
    ],
)
def test_core_routes_require_token(client: TestClient, method: str, url: str) -> None:
    kwargs = {"json": {"projectName": "demo"}} if method == "post" else {}
    assert getattr(client, method)(url, **kwargs).status_code == 401


def test_alice_bob_public_read_scenario(client: TestClient, unique_email) -> None:
    alice, bob = unique_email("alice"), unique_email("bob")
    alice_h, bob_h = _login(client, alice), _login(client, bob)
    name = _project_name()

    assert client.post("/api/projects", json={"name": name}, headers=alice_h).status_code == 201
    files = f"/api/projects/{name}/files"
    r = client.put(files, json={"path": "a.txt", "content": "hi"}, headers=alice_h)
    assert r.status_code == 200
    assert r.json()["version"] == 1
    r = client.put(files, json={"path": "a.txt", "content": "hello"}, headers=alice_h)
    assert r.json()["version"] == 2
    got = client.get(files, params={"path": "a.txt"}, headers=alice_h).json()
    assert got == {"path": "a.txt", "content": "hello", "encoding": "utf8", "version": 2}

    # Private until shared
    assert client.get(files, params={"path": "a.txt"}, headers=bob_h).status_code == 403

    r = client.put(
        f"/api/projects/{name}/permissions",
        json={"email": None, "permission": "read"},
        headers=alice_h,
    )
    assert r.status_code == 200
    assert r.json()["publicAccess"] is True
    assert r.json()["publicPermission"] == "read"

    bob_get = client.get(files, params={"path": "a.txt"}, headers=bob_h)
    assert bob_get.status_code == 200
    assert bob_get.json()["content"] == "hello"
    bob_put = client.put(files, json={"path": "a.txt", "content": "mine"}, headers=bob_h)
    assert bob_put.status_code == 403
    assert bob_put.json()["detail"] == "insufficient permission"


def test_grant_read_write_and_revoke(client: TestClient, unique_email) -> None:
    alice, bob = unique_email("alice"), unique_email("bob")
    alice_h, bob_h = _login(client, alice), _login(client, bob)
    name = _project_name()
    client.post("/api/projects", json={"name": name}, headers=alice_h)
    perms = f"/api/projects/{name}/permissions"

    r = client.put(perms, json={"email": bob, "permission": "read-write"}, headers=alice_h)
    assert r.json()["grants"] == [{"email": bob, "permission": "read-write"}]
    assert client.get(perms, headers=bob_h).status_code == 403

    files = f"/api/projects/{name}/files"
    assert client.put(files, json={"path": "b.txt", "content": "from bob"}, headers=bob_h).status_code == 200
    listing = client.get("/api/projects", headers=bob_h).json()
    assert {"name": name, "role": "read-write"}.items() <= next(p for p in listing if p["name"] == name).items()

    r = client.delete(perms, params={"email": bob}, headers=alice_h)
    assert r.status_code == 200
    assert r.json()["grants"] == []
    assert client.get(files, params={"path": "b.txt"}, headers=bob_h).status_code == 403
    assert client.delete(perms, params={"email": bob}, headers=alice_h).status_code == 404
    unknown = client.put(perms, json={"email": "ghost@example.com", "permission": "read"}, headers=alice_h)
    assert unknown.status_code == 404


def test_link_scenario(client: TestClient, unique_email) -> None:
    alice = unique_email("alice")
    alice_h = _login(client, alice)
    name = _project_name()

    r = client.post("/api/projects/link", json={"projectName": name}, headers=alice_h)
    assert r.status_code == 200
    link = r.json()
    assert link["projectName"] == name
    assert link["link"].endswith("/" + link["linkId"])
    again = client.post("/api/projects/link", json={"projectName": name}, headers=alice_h).json()
    assert again["linkId"] == link["linkId"]

    # Resolving needs no token
    summary = client.get(f"/api/projects/link/{link['linkId']}")
    assert summary.status_code == 200
    body = summary.json()
    assert body["name"] == name
    assert body["owner"] == alice
    assert body["linkId"] == link["linkId"]
    assert body["publicAccess"] is False
    assert client.get(f"/api/projects/link/{uuid.uuid4()}").status_code == 404


def test_project_named_link_keeps_its_routes(client: TestClient, unique_email) -> None:
    alice_h = _login(client, unique_email("alice"))
    assert client.post("/api/projects", json={"name": "link"}, headers=alice_h).status_code == 201
    r = client.put("/api/projects/link/files", json={"path": "x.txt", "content": "x"}, headers=alice_h)
    assert r.status_code == 200
    assert client.get("/api/projects/link/files/all", headers=alice_h).json()[0]["path"] == "x.txt"


def test_delete_scenario(client: TestClient, unique_email) -> None:
    alice_h = _login(client, unique_email("alice"))
    name = _project_name()
    client.post("/api/projects", json={"name": name}, headers=alice_h)
    files = f"/api/projects/{name}/files"

    assert client.delete(files, params={"path": "missing.txt"}, headers=alice_h).status_code == 404
    client.put(files, json={"path": "keep.txt", "content": "k"}, headers=alice_h)
    client.put(files, json={"path": "gone.txt", "content": "g"}, headers=alice_h)
    r = client.delete(files, params={"path": "/gone.txt"}, headers=alice_h)
    assert r.status_code == 200
    assert r.json() == {"deleted": True, "path": "gone.txt"}
    listing = client.get(f"{files}/all", headers=alice_h).json()
    assert [e["path"] for e in listing] == ["keep.txt"]
    assert listing[0]["size"] == 1
    assert client.get(files, params={"path": "gone.txt"}, headers=alice_h).status_code == 404


def test_binary_upload_and_bad_requests(client: TestClient, unique_email) -> None:
    alice_h = _login(client, unique_email("alice"))
    name = _project_name()
    client.post("/api/projects", json={"name": name}, headers=alice_h)
    files = f"/api/projects/{name}/files"
    blob = bytes(range(200, 256))
    payload = {"path": "logo.png", "content": base64.b64encode(blob).decode(), "encoding": "base64"}
    r = client.put(files, json=payload, headers=alice_h)
    assert r.json()["size"] == len(blob)
    got = client.get(files, params={"path": "logo.png"}, headers=alice_h).json()
    assert got["encoding"] == "base64"
    assert base64.b64decode(got["content"]) == blob

    bad_b64 = client.put(
        files, json={"path": "x.bin", "content": "@@@", "encoding": "base64"}, headers=alice_h
    )
    assert bad_b64.status_code == 400
    traversal = client.put(files, json={"path": "../x", "content": "x"}, headers=alice_h)
    assert traversal.status_code == 400
    surrogate = client.put(
        files,
        content=b'{"path": "s.txt", "content": "\\ud800", "encoding": "utf8"}',
        headers={**alice_h, "Content-Type": "application/json"},
    )
    assert surrogate.status_code == 400
    assert client.post("/api/projects", json={"name": name}, headers=alice_h).status_code == 409
