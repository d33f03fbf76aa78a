from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from coach.app import create_app
from coach.auth import TokenValidator

JWT_SECRET = "coach-test-secret-0123456789abcdef"

REVIEW = {
    "period": "day",
    "startDate": "2024-03-25T00:00:00+08:00",
    "endDate": "2024-03-25T23:59:59+08:00",
    "timeRecords": [{"taskId": "t1", "title": "阅读", "totalTime": 1800}],
}


@pytest.fixture
def cleanup():
    return AsyncMock()


@pytest.fixture
def app(metrics, assistant, store, tracker, cleanup):
    return create_app(
        metrics=metrics,
        assistant=assistant,
        store=store,
        tokens=TokenValidator(JWT_SECRET),
        tracker=tracker,
        shutdown_timeout=1,
        on_shutdown=[cleanup],
    )


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def test_ping(client):
    response = client.get("/ping")
    assert response.status_code == 200
    assert response.json() == {"message": "pong"}


def test_chat_requires_token(client, add_user):
    add_user("u1")
    response = client.post("/api/v1/chat", json={"message": "hi"})
    assert response.status_code == 401
    assert "error" in response.json()


def test_chat_rejects_foreign_token(client, add_user, auth_header):
    add_user("u1")
    response = client.post("/api/v1/chat", json={"message": "hi"}, headers=auth_header(secret="x" * 32))
    assert response.status_code == 401


def test_chat_streams_plain_text(client, add_user, auth_header, store, metrics):
    add_user("u1", energy=20)

    response = client.post(
        "/api/v1/chat",
        json={"message": "帮我定个目标", "scene": "goal", "coach_type": "orange"},
        headers=auth_header(),
    )

    assert response.status_code == 200
    assert response.text == "abc"
    assert response.headers["content-type"] == "text/event-stream"
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"
    assert store.get_energy("u1") == 19
    metrics.incr.assert_any_call("chat")


def test_chat_accepts_bearer_prefix(client, add_user, auth_header):
    add_user("u1")
    headers = {"Authorization": "Bearer " + auth_header()["Authorization"]}
    response = client.post("/api/v1/chat", json={"message": "hi"}, headers=headers)
    assert response.status_code == 200


@pytest.mark.parametrize("body", [{}, {"message": ""}, {"scene": "goal"}])
def test_invalid_chat_is_rejected_before_debit(client, add_user, auth_header, store, model, body):
    add_user("u1", energy=5)
    response = client.post("/api/v1/chat", json=body, headers=auth_header())

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid request")
    assert store.get_energy("u1") == 5
    assert model.calls == []


def test_chat_body_must_be_json(client, add_user, auth_header):
    add_user("u1")
    response = client.post("/api/v1/chat", content=b"not json", headers=auth_header())
    assert response.status_code == 400


def test_chat_without_energy(client, add_user, auth_header, model):
    add_user("u1", energy=0)
    response = client.post("/api/v1/chat", json={"message": "hi"}, headers=auth_header())

    assert response.status_code == 403
    assert response.json()["remainingEnergy"] == 0
    assert model.calls == []


def test_chat_for_unknown_user(client, auth_header):
    response = client.post("/api/v1/chat", json={"message": "hi"}, headers=auth_header("ghost"))
    assert response.status_code == 404


def test_analysis_rejects_reversed_range(client, add_user, auth_header, store, model):
    add_user("u1", energy=5)
    body = dict(REVIEW, startDate="2024-03-26T00:00:00Z", endDate="2024-03-25T00:00:00Z")

    response = client.post("/api/v1/analysis", json=body, headers=auth_header())

    assert response.status_code == 400
    assert store.get_energy("u1") == 5
    assert model.calls == []


def test_analysis_rejects_unknown_period(client, add_user, auth_header, store):
    add_user("u1", energy=5)
    response = client.post("/api/v1/analysis", json=dict(REVIEW, period="year"), headers=auth_header())
    assert response.status_code == 400
    assert store.get_energy("u1") == 5


def test_month_analysis_reports_balance_when_short(client, add_user, auth_header):
    add_user("u1", energy=2)
    body = dict(REVIEW, period="month", startDate="2024-03-01T00:00:00Z", endDate="2024-03-31T23:59:59Z")

    response = client.post("/api/v1/analysis", json=body, headers=auth_header())

    assert response.status_code == 403
    assert response.json()["remainingEnergy"] == 2
    assert "需要3点" in response.json()["error"]


def test_analysis_is_stored_and_fetchable(app, add_user, auth_header, store, cleanup):
    add_user("u1", energy=5)

    with TestClient(app) as client:
        response = client.post("/api/v1/analysis", json=REVIEW, headers=auth_header())
        assert response.text == "abc"
    # leaving the client runs shutdown, which drains the write-back
    cleanup.assert_awaited()
    assert store.get_energy("u1") == 4

    with TestClient(app) as client:
        response = client.get(
            "/api/v1/review-analyses",
            params={"period": "day", "startDate": "2024-03-24T16:00:00Z", "endDate": "2024-03-25T15:59:59Z"},
            headers=auth_header(),
        )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["summary"] == "abc"
    assert data["startDate"] == "2024-03-24T16:00:00Z"


def test_review_analysis_not_found(client, auth_header):
    response = client.get(
        "/api/v1/review-analyses",
        params={"period": "week", "startDate": "2024-03-18T00:00:00Z", "endDate": "2024-03-24T23:59:59Z"},
        headers=auth_header(),
    )
    assert response.status_code == 404


def test_review_analysis_needs_window(client, auth_header):
    response = client.get("/api/v1/review-analyses", params={"period": "day"}, headers=auth_header())
    assert response.status_code == 400


def test_energy(client, add_user, auth_header):
    add_user("u1", energy=7)
    response = client.get("/api/v1/user/energy", headers=auth_header())
    assert response.json() == {"energy": 7}
