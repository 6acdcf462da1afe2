"""
Tests for the LMS webhook: user registration, auto-enrollment, signature
"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from ecosbot.api.deps import get_now
from ecosbot.api.main import create_app
from ecosbot.database.repositories import TrainingSessionRepository, UserRepository
from ecosbot.services.registration import verify_webhook_signature, webhook_signature

from .conftest import STUDENT, TEACHER


def test_first_visit_creates_user(client, db):
    response = client.post("/api/webhook", json={"email": "Alice@Example.org", "firstName": "Alice"})

    assert response.status_code == 200
    body = response.json()
    assert body["email"] == STUDENT
    assert body["isNewUser"] is True
    user = UserRepository(db).get_by_email(STUDENT)
    assert user.first_name == "Alice"


def test_second_visit_refreshes_user(client):
    client.post("/api/webhook", json={"email": STUDENT})

    body = client.post("/api/webhook", json={"email": STUDENT}).json()

    assert body["isNewUser"] is False


def test_webhook_requires_email(client):
    response = client.post("/api/webhook", json={"firstName": "Alice"})

    assert response.status_code == 400


def test_unenrolled_student_is_auto_enrolled_in_open_training(client, scenario, clock, db):
    training = client.post(
        "/api/training-sessions",
        json={
            "email": TEACHER,
            "title": "Ouverte",
            "startDate": (clock.now - timedelta(days=1)).isoformat(),
            "endDate": (clock.now + timedelta(days=1)).isoformat(),
            "scenarioIds": [scenario["id"]],
            "studentEmails": [],
        },
    ).json()["trainingSession"]

    body = client.post("/api/webhook", json={"email": "new@example.org"}).json()

    assert body["autoEnrolledTrainingSessionId"] == training["id"]
    assert TrainingSessionRepository(db).is_student_enrolled_anywhere("new@example.org")
    scenarios = client.get("/api/student/available-scenarios", params={"email": "new@example.org"}).json()
    assert [s["id"] for s in scenarios["scenarios"]] == [scenario["id"]]


def test_enrolled_student_is_not_auto_enrolled_again(client, open_training):
    body = client.post("/api/webhook", json={"email": STUDENT}).json()

    assert body["autoEnrolledTrainingSessionId"] is None


def test_teacher_is_not_auto_enrolled(client, open_training):
    body = client.post("/api/webhook", json={"email": TEACHER}).json()

    assert body["autoEnrolledTrainingSessionId"] is None


def test_signature_helpers():
    payload = {"email": STUDENT}
    signature = webhook_signature(payload, "s3cret")

    assert verify_webhook_signature(payload, signature, "s3cret")
    assert verify_webhook_signature(payload, signature.upper(), "s3cret")
    assert not verify_webhook_signature(payload, signature, "other")
    assert not verify_webhook_signature(payload, None, "s3cret")


@pytest.fixture
def signed_client(config, llm, clock):
    config.webhook_secret = "s3cret"
    app = create_app(config, llm_provider=llm)
    app.dependency_overrides[get_now] = lambda: clock.now
    with TestClient(app) as test_client:
        yield test_client


def test_signed_webhook_accepts_valid_signature(signed_client):
    payload = {"email": STUDENT}

    response = signed_client.post(
        "/api/webhook",
        json=payload,
        headers={"X-Webhook-Signature": webhook_signature(payload, "s3cret")},
    )

    assert response.status_code == 200


@pytest.mark.parametrize("headers", [{}, {"X-Webhook-Signature": "deadbeef"}])
def test_signed_webhook_rejects_bad_signature(signed_client, headers):
    response = signed_client.post("/api/webhook", json={"email": STUDENT}, headers=headers)

    assert response.status_code == 401
    assert response.json()["errorCode"] == "INVALID_SIGNATURE"


@pytest.mark.parametrize(
    "payload",
    [{"email": ["a@b.org"]}, {"email": "a@b.org", "firstName": 42}],
)
def test_wrongly_typed_webhook_fields_are_rejected(client, payload):
    response = client.post("/api/webhook", json=payload)

    assert response.status_code == 422
