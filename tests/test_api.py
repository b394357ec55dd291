"""HTTP-level tests for the FastAPI app, with the LLM replaced by a fake."""

import pytest
from fastapi.testclient import TestClient

from tamagotchat import main
from tamagotchat.main import INVALID_MESSAGE_FORMAT, INVALID_REQUEST_FORMAT, app, get_pipeline
from tamagotchat.politeness import POLITENESS_REPLY
from tamagotchat.router import ModerationPipeline


@pytest.fixture
def llm_client(fake_llm, structured_answer):
    return fake_llm([structured_answer])


@pytest.fixture
def client(llm_client):
    pipeline = ModerationPipeline(llm_client=llm_client, use_tech_filter=False, use_intermediate_classifier=False)
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["service"] == "Tamagotchat"


def test_session_init_creates_session(client):
    response = client.get("/session/init")

    assert response.status_code == 200
    data = response.json()
    assert data["session"] == "created"
    assert data["points"] == 100
    assert data["mood"] == "thriving"
    assert response.cookies.get("session_id") == data["session_id"]
    assert response.cookies.get("pseudo") == data["pseudo"]


def test_session_init_reports_existing_session(client):
    first = client.get("/session/init").json()
    second = client.get("/session/init").json()

    assert second["session"] == "existing"
    assert second["session_id"] == first["session_id"]
    assert second["pseudo"] == first["pseudo"]


def test_greeting_costs_five_points(client):
    response = client.post("/chat", json={"message": "hello"})

    assert response.status_code == 200
    data = response.json()
    assert data["content"] == POLITENESS_REPLY
    assert data["points"] == 95
    assert data["delta"] == -5
    assert data["role"] == "assistant"

    score = client.get("/session/score").json()
    assert score["points"] == 95


def test_technical_answer_is_free(client):
    response = client.post("/chat", json={
        "messages": [{"role": "user", "content": "How do I implement a binary search tree in Python?"}]
    })

    assert response.status_code == 200
    data = response.json()
    assert data["delta"] == 0
    assert data["points"] == 100
    assert data["metadata"]["confidence"] == 85


def test_bare_message_continues_stored_history(client, llm_client):
    client.post("/chat", json={"message": "hello"})
    client.post("/chat", json={"message": "Explain closures in javascript"})

    history = llm_client.calls[0]["history"]
    assert [turn["content"] for turn in history] == ["hello", POLITENESS_REPLY]


@pytest.mark.parametrize("body,message", [
    ({"messages": []}, "No messages provided"),
    ({"messages": [{"role": "assistant", "content": "hi"}]}, "The last message must be from the user"),
    ({"messages": [{"role": "system", "content": "x"}]}, INVALID_MESSAGE_FORMAT),
    ({"foo": 1}, INVALID_REQUEST_FORMAT),
])
def test_malformed_chat_request_costs_two_points(client, body, message):
    response = client.post("/chat", json=body)

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "INVALID_REQUEST"
    assert data["message"] == message
    assert data["details"]["points"] == 98
    assert data["details"]["delta"] == -2


def test_non_json_body_is_rejected(client):
    response = client.post("/chat", content=b"not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["message"] == INVALID_REQUEST_FORMAT


def test_score_update_is_clamped_and_reset(client):
    client.get("/session/init")

    updated = client.post("/session/score", json={"delta": -150}).json()
    assert updated == {"updated": 0, "mood": "distressed"}

    reset = client.post("/session/reset").json()
    assert reset == {"updated": 100, "mood": "thriving"}


def test_login_flow(client):
    assert client.get("/auth/me").status_code == 401

    response = client.post("/auth/login", json={"username": "admin", "password": "1234"})
    assert response.status_code == 200
    assert response.json() == {"message": "Logged in"}

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json() == {"authenticated": True, "user": "admin"}


def test_login_rejects_wrong_password(client):
    response = client.post("/auth/login", json={"username": "admin", "password": "nope"})

    assert response.status_code == 401
    assert response.json()["message"] == "Unauthorized"


def test_metrics_count_categories(client):
    client.post("/chat", json={"message": "hello"})
    client.post("/chat", json={"message": "ls -la"})

    data = client.get("/metrics").json()

    assert data["total_requests"] == 2
    assert data["category_distribution"] == {"politeness": 1, "manpage": 1}


def test_health_reports_llm_status(client, fake_llm, monkeypatch, llm_down):
    monkeypatch.setattr(main, "get_llm_client", lambda: fake_llm())
    healthy = client.get("/health")
    assert healthy.status_code == 200
    assert healthy.json()["status"] == "healthy"

    monkeypatch.setattr(main, "get_llm_client", lambda: fake_llm(error=llm_down))
    degraded = client.get("/health")
    assert degraded.status_code == 503
    assert degraded.json()["status"] == "degraded"
