from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from giftflow.agent.flow import generate
from giftflow.auth import deps
from giftflow.auth.deps import require_user_id
from giftflow.main import app
from giftflow.routes import editor
from giftflow.services.assets import get_object_storage
from giftflow.services.errors import AuthenticationError
from giftflow.storage import get_store

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class _Storage:
    bucket = "project-assets"

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def upload(self, path, data, content_type):
        self.objects[path] = data

    def remove(self, path):
        self.objects.pop(path, None)

    def public_url(self, path):
        return f"https://cdn.example.com/{path}"


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[require_user_id] = lambda: "user-1"
    app.dependency_overrides[get_object_storage] = _Storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client) -> None:
    assert client.get("/").json() == {"status": "ok"}


def test_requests_without_a_token_are_unauthorized(store) -> None:
    app.dependency_overrides[get_store] = lambda: store
    try:
        with TestClient(app) as anonymous:
            res = anonymous.get("/projects")
    finally:
        app.dependency_overrides.clear()
    assert res.status_code == 401
    assert res.json() == {"error": "Missing bearer token"}


def test_generate_flow_route(client, monkeypatch, flow_payload) -> None:
    monkeypatch.delenv("UNSPLASH_ACCESS_KEY", raising=False)

    async def fake_complete(system_prompt, user_prompt, **kwargs):
        return json.dumps(flow_payload(4))

    monkeypatch.setattr(generate, "complete", fake_complete)
    res = client.post("/flows", json={"prompt": "A birthday surprise for my sister Sam"})
    assert res.status_code == 201
    body = res.json()
    assert body["project"]["ownerId"] == "user-1"
    assert [n["orderIndex"] for n in body["nodes"]] == [0, 1, 2, 3]
    # no photo provider configured: background image dropped
    assert "backgroundImage" not in body["nodes"][0]["content"]


def test_generate_flow_route_rejects_short_prompt(client) -> None:
    res = client.post("/flows", json={"prompt": "hi"})
    assert res.status_code == 400
    assert "more detailed" in res.json()["error"]


def test_project_lifecycle(client, make_project) -> None:
    project, nodes = make_project()

    listed = client.get("/projects").json()["projects"]
    assert [p["id"] for p in listed] == [project.id]

    detail = client.get(f"/projects/{project.id}").json()
    assert [n["id"] for n in detail["nodes"]] == [n.id for n in nodes]

    assert client.patch(f"/projects/{project.id}", json={"title": "Renamed"}).json()["title"] == "Renamed"
    assert client.put(f"/projects/{project.id}/theme", json={"theme": "elegant-dark"}).json()["theme"] == "elegant-dark"
    assert client.put(f"/projects/{project.id}/theme", json={"theme": "glitter"}).status_code == 400

    slug = client.post(f"/projects/{project.id}/publish").json()["shareSlug"]
    played = client.get(f"/play/{slug}").json()
    assert played["title"] == "Renamed"
    assert "ownerId" not in played

    session = client.post(f"/play/{slug}/sessions").json()["session"]
    answered = client.post(
        f"/sessions/{session['id']}/answers",
        json={"answers": [{"nodeId": nodes[1].id, "answer": "Cake"}], "completed": True},
    ).json()["session"]
    assert answered["completed"] is True
    assert answered["answers"][0]["nodeId"] == nodes[1].id

    assert client.post(f"/projects/{project.id}/unpublish").json()["shareSlug"] is None
    assert client.get(f"/play/{slug}").status_code == 404

    assert client.delete(f"/projects/{project.id}").json() == {"ok": True}
    assert client.get(f"/projects/{project.id}").status_code == 404


def test_node_routes(client, make_project, positions) -> None:
    project, nodes = make_project(count=4)
    base = f"/projects/{project.id}/nodes"

    created = client.post(base, json={"type": "end", "content": {"headline": "P.S."}, "atIndex": 1})
    assert created.status_code == 201
    new_id = created.json()["node"]["id"]
    assert created.json()["node"]["orderIndex"] == 1

    bad = client.post(base, json={"type": "choice", "content": {"question": "?", "options": []}})
    assert bad.status_code == 422

    edited = client.patch(f"{base}/{nodes[1].id}", json={"content": {"question": "New?"}})
    assert edited.json()["node"]["content"] == {"question": "New?", "maxLength": 200}

    order = [node_id for node_id, _ in positions(project.id)][::-1]
    assert client.put(f"{base}/order", json={"nodeIds": order}).json() == {"ok": True}
    assert [node_id for node_id, _ in positions(project.id)] == order

    assert client.delete(f"{base}/{new_id}").json() == {"ok": True}
    stale = client.put(f"{base}/order", json={"nodeIds": order})
    assert stale.status_code == 409
    assert stale.json()["needsRefresh"] is True


def test_asset_routes(client) -> None:
    res = client.post(
        "/assets",
        files={"file": ("photo.png", PNG, "image/png")},
        data={"altText": "Us"},
    )
    assert res.status_code == 201
    asset = res.json()["asset"]
    assert asset["mimeType"] == "image/png"
    assert asset["altText"] == "Us"

    rejected = client.post("/assets", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert rejected.status_code == 400

    assert client.delete(f"/assets/{asset['id']}").json() == {"ok": True}
    assert client.delete(f"/assets/{asset['id']}").status_code == 404


def _fake_token_check(token):
    if token != "good":
        raise AuthenticationError("Invalid token")
    return "user-1"


def test_editor_channel_debounces_reorders(client, make_project, positions, monkeypatch) -> None:
    monkeypatch.setenv("REORDER_SETTLE_SECONDS", "0")
    monkeypatch.setattr(editor, "user_id_from_token", _fake_token_check)
    project, nodes = make_project(count=3)
    wanted = [n.id for n in reversed(nodes)]

    with client.websocket_connect(f"/projects/{project.id}/editor?token=good") as ws:
        ws.send_json({"type": "reorder", "nodeIds": wanted})
        assert ws.receive_json() == {"type": "queued"}
        applied = ws.receive_json()
        assert applied["type"] == "reordered"
        assert applied["nodeIds"] == wanted

        ws.send_json({"type": "reorder", "nodeIds": wanted[:1]})
        assert ws.receive_json() == {"type": "queued"}
        stale = ws.receive_json()
        assert stale["type"] == "error"
        assert stale["needsRefresh"] is True

    assert [node_id for node_id, _ in positions(project.id)] == wanted


def test_editor_channel_rejects_bad_tokens(client, make_project, monkeypatch) -> None:
    monkeypatch.setattr(editor, "user_id_from_token", _fake_token_check)
    project, _ = make_project()
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect(f"/projects/{project.id}/editor?token=bad") as ws:
            ws.receive_json()
    assert excinfo.value.code == 1008


def test_jwks_url_resolution(monkeypatch) -> None:
    monkeypatch.delenv("SUPABASE_JWKS_URL", raising=False)
    monkeypatch.setenv("SUPABASE_URL", "proj.supabase.co/")
    assert deps._compute_jwks_url() == "https://proj.supabase.co/auth/v1/.well-known/jwks.json"

    monkeypatch.setenv("SUPABASE_JWKS_URL", "//keys.example.com/jwks")
    assert deps._compute_jwks_url() == "https://keys.example.com/jwks"

    monkeypatch.delenv("SUPABASE_JWKS_URL")
    monkeypatch.delenv("SUPABASE_URL")
    with pytest.raises(RuntimeError):
        deps._compute_jwks_url()


def test_user_id_from_token_requires_subject(monkeypatch) -> None:
    monkeypatch.setattr(deps, "decode_token", lambda token: {"role": "authenticated"})
    with pytest.raises(AuthenticationError):
        deps.user_id_from_token("abc")
    with pytest.raises(AuthenticationError):
        deps.user_id_from_token(None)
    monkeypatch.setattr(deps, "decode_token", lambda token: {"sub": 42})
    assert deps.user_id_from_token("abc") == "42"
