import json

import pytest
from fastapi.testclient import TestClient

from chat_relay.api import app, format_sse, get_chat_service

from conftest import TEXT_MODEL, VISION_MODEL


@pytest.fixture
def client(service):
    app.dependency_overrides[get_chat_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, user_id="u1", model=TEXT_MODEL):
    resp = client.post("/api/sessions", json={"user_id": user_id, "model": model})
    assert resp.status_code == 201
    return resp.json()


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_model_endpoints(client):
    models = client.get("/api/models").json()
    assert [m["id"] for m in models] == [TEXT_MODEL, VISION_MODEL]
    assert [m["id"] for m in client.get("/api/models/vision").json()] == [VISION_MODEL]

    body = client.get(f"/api/models/{VISION_MODEL}/supports-vision").json()
    assert body == {"model_id": VISION_MODEL, "supports_vision": True}
    body = client.get("/api/models/google/some-model:free/supports-vision").json()
    assert body == {"model_id": "google/some-model:free", "supports_vision": False}


def test_session_crud(client):
    created = _create(client)
    assert created["user_id"] == "u1"
    assert created["selected_model"] == TEXT_MODEL
    assert created["message_count"] == 0

    sid = created["id"]
    assert client.get(f"/api/sessions/{sid}").json()["id"] == sid
    assert [s["id"] for s in client.get("/api/sessions", params={"user_id": "u1"}).json()] == [sid]

    resp = client.patch(f"/api/sessions/{sid}/model", json={"model": VISION_MODEL})
    assert resp.json()["selected_model"] == VISION_MODEL
    resp = client.patch(f"/api/sessions/{sid}/title", json={"title": "Renamed"})
    assert resp.json()["title"] == "Renamed"
    assert client.get(f"/api/history/{sid}").json()["title"] == "Renamed"

    assert client.delete(f"/api/sessions/{sid}", params={"user_id": "other"}).status_code == 404
    assert client.delete(f"/api/sessions/{sid}", params={"user_id": "u1"}).status_code == 204
    assert client.get(f"/api/sessions/{sid}").status_code == 404


def test_error_body_shape(client):
    resp = client.get("/api/sessions/missing")
    assert resp.status_code == 404
    body = resp.json()
    assert body["status"] == 404
    assert body["error"] == "SessionNotFound"
    assert body["message"] == "Chat session not found: missing"
    assert "timestamp" in body


def test_session_limit_is_bad_request(client, settings):
    for _ in range(settings.max_sessions_per_user):
        _create(client)
    resp = client.post("/api/sessions", json={"user_id": "u1", "model": TEXT_MODEL})
    assert resp.status_code == 400
    assert resp.json()["error"] == "SessionLimitExceeded"


def test_validation_errors_are_reported_per_field(client):
    resp = client.post("/api/chat", json={"session_id": " ", "message": ""})
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Validation failed"
    assert body["details"] == {
        "session_id": "Session ID is required",
        "message": "Message content is required",
    }

    resp = client.post("/api/sessions", json={})
    assert resp.json()["details"] == {
        "user_id": "User ID is required",
        "model": "Model selection is required",
    }


def test_chat(client, fake_client):
    fake_client.reply = "Bonjour"
    sid = _create(client)["id"]

    resp = client.post("/api/chat", json={"session_id": sid, "message": "Hello"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["session_id"] == sid
    assert body["model"] == TEXT_MODEL
    assert body["total_messages"] == 2
    assert body["assistant_message"]["content"] == "Bonjour"
    assert body["assistant_message"]["model"] == TEXT_MODEL


def test_chat_image_too_large(client, settings):
    sid = _create(client, model=VISION_MODEL)["id"]
    data = "A" * (int(settings.max_image_size_bytes / 0.75) + 4)
    resp = client.post(
        "/api/chat",
        json={
            "session_id": sid,
            "message": "what is this?",
            "images": [{"type": "base64", "data": data, "media_type": "image/png"}],
        },
    )
    assert resp.status_code == 413
    assert resp.json()["error"] == "ImageTooLarge"


def test_chat_stream(client, fake_client, store):
    fake_client.deltas = ["Hi", " there"]
    sid = _create(client)["id"]

    resp = client.post("/api/chat/stream", json={"session_id": sid, "message": "Hello"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.text == "data: Hi\n\ndata:  there\n\n"
    assert store.get(sid).messages[-1].content == "Hi there"


def test_chat_stream_error_event(client, store):
    sid = _create(client)["id"]

    resp = client.post(
        "/api/chat/stream",
        json={
            "session_id": sid,
            "message": "look",
            "images": [{"type": "url", "data": "https://example.com/a.png"}],
        },
    )

    assert resp.status_code == 200
    assert resp.text.startswith("event: error\ndata: ")
    payload = json.loads(resp.text.split("data: ", 1)[1])
    assert payload["error"] == "VisionNotSupported"
    assert store.get(sid).messages == []


def test_unexpected_errors_hide_detail(service):
    class Broken:
        def list_models(self):
            raise RuntimeError("secret internals")

    app.dependency_overrides[get_chat_service] = lambda: Broken()
    try:
        resp = TestClient(app, raise_server_exceptions=False).get("/api/models")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 500
    assert "secret" not in resp.text
    assert resp.json()["error"] == "InternalError"


def test_format_sse_splits_lines():
    assert format_sse("a\nb") == "data: a\ndata: b\n\n"
    assert format_sse("{}", event="error") == "event: error\ndata: {}\n\n"
