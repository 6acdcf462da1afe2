"""
Tests for training sessions and scenario visibility
"""
from datetime import timedelta

from .conftest import ADMIN, OTHER_STUDENT, STUDENT, TEACHER


def available(client, email=STUDENT):
    response = client.get("/api/student/available-scenarios", params={"email": email})
    assert response.status_code == 200, response.text
    return response.json()


def create_training(client, clock, scenario_ids, students, start=-1, end=7, email=TEACHER):
    return client.post(
        "/api/training-sessions",
        json={
            "email": email,
            "title": "Session",
            "startDate": (clock.now + timedelta(days=start)).isoformat(),
            "endDate": (clock.now + timedelta(days=end)).isoformat(),
            "scenarioIds": scenario_ids,
            "studentEmails": students,
        },
    )


def test_enrolled_student_sees_scenario_in_open_window(client, scenario, open_training):
    body = available(client)

    assert [s["id"] for s in body["scenarios"]] == [scenario["id"]]
    assert [t["id"] for t in body["trainingSessions"]] == [open_training["id"]]
    assert body["trainingSessions"][0]["isActive"] is True


def test_student_not_on_roster_sees_nothing(client, scenario, open_training):
    assert available(client, OTHER_STUDENT)["scenarios"] == []


def test_scenario_hidden_before_and_after_window(client, scenario, open_training, clock):
    clock.now = clock.now - timedelta(days=2)
    assert available(client)["scenarios"] == []

    clock.now = clock.now + timedelta(days=20)
    assert available(client)["scenarios"] == []


def test_window_bounds_are_inclusive(client, scenario, clock):
    training = create_training(client, clock, [scenario["id"]], [STUDENT], start=0, end=1).json()["trainingSession"]

    assert [s["id"] for s in available(client)["scenarios"]] == [scenario["id"]]
    clock.advance(days=1)
    assert [s["id"] for s in available(client)["scenarios"]] == [scenario["id"]]
    clock.advance(seconds=1)
    assert available(client)["scenarios"] == []
    assert training["studentCount"] == 1


def test_student_cannot_start_scenario_outside_training(client, scenario):
    response = client.post("/api/ecos/sessions", json={"email": STUDENT, "scenarioId": scenario["id"]})

    assert response.status_code == 403
    assert response.json()["errorCode"] == "SCENARIO_ACCESS_DENIED"


def test_teacher_is_never_scoped(client, scenario):
    assert [s["id"] for s in available(client, TEACHER)["scenarios"]] == [scenario["id"]]

    response = client.post("/api/ecos/sessions", json={"email": TEACHER, "scenarioId": scenario["id"]})
    assert response.status_code == 201
    assert response.json()["session"]["trainingSessionId"] is None


def test_scoping_can_be_disabled(config, client, scenario):
    config.require_training_session = False

    assert [s["id"] for s in available(client)["scenarios"]] == [scenario["id"]]
    response = client.post("/api/ecos/sessions", json={"email": STUDENT, "scenarioId": scenario["id"]})
    assert response.status_code == 201


def test_end_must_be_after_start(client, scenario, clock):
    response = create_training(client, clock, [scenario["id"]], [STUDENT], start=1, end=1)

    assert response.status_code == 400
    assert response.json()["errorCode"] == "INVALID_TRAINING_WINDOW"


def test_update_cannot_invert_window(client, open_training, clock):
    response = client.put(
        f"/api/training-sessions/{open_training['id']}",
        json={"email": TEACHER, "endDate": (clock.now - timedelta(days=3)).isoformat()},
    )

    assert response.status_code == 400


def test_unknown_scenario_is_rejected(client, clock):
    response = create_training(client, clock, ["missing-scenario"], [STUDENT])

    assert response.status_code == 404
    assert response.json()["errorCode"] == "SCENARIO_NOT_FOUND"


def test_only_teachers_manage_training_sessions(client, scenario, clock):
    assert create_training(client, clock, [scenario["id"]], [STUDENT], email=STUDENT).status_code == 403
    assert client.get("/api/training-sessions", params={"email": STUDENT}).status_code == 403
    assert create_training(client, clock, [scenario["id"]], [STUDENT], email=ADMIN).status_code == 201


def test_roster_emails_are_normalized_and_deduplicated(client, scenario, clock):
    training = create_training(
        client, clock, [scenario["id"]], [" Alice@Example.org", "alice@example.org", "BOB@example.org"]
    ).json()["trainingSession"]

    assert sorted(training["studentEmails"]) == [STUDENT, OTHER_STUDENT]
    assert training["studentCount"] == 2


def test_update_replaces_roster(client, open_training):
    response = client.put(
        f"/api/training-sessions/{open_training['id']}",
        json={"email": TEACHER, "studentEmails": [OTHER_STUDENT]},
    )

    assert response.status_code == 200
    assert response.json()["trainingSession"]["studentEmails"] == [OTHER_STUDENT]
    assert available(client, STUDENT)["scenarios"] == []
    assert len(available(client, OTHER_STUDENT)["scenarios"]) == 1


def test_list_get_and_delete(client, open_training):
    listed = client.get("/api/training-sessions", params={"email": TEACHER}).json()["trainingSessions"]
    assert [t["id"] for t in listed] == [open_training["id"]]

    detail = client.get(f"/api/training-sessions/{open_training['id']}", params={"email": TEACHER})
    assert detail.json()["trainingSession"]["title"] == "ECOS mars"

    deleted = client.delete(f"/api/training-sessions/{open_training['id']}", params={"email": TEACHER})
    assert deleted.status_code == 200
    missing = client.get(f"/api/training-sessions/{open_training['id']}", params={"email": TEACHER})
    assert missing.status_code == 404


def test_deleting_training_keeps_exam_sessions(client, started_session, open_training):
    client.delete(f"/api/training-sessions/{open_training['id']}", params={"email": TEACHER})

    response = client.get(f"/api/ecos/sessions/{started_session['id']}", params={"email": STUDENT})
    assert response.status_code == 200
    assert response.json()["session"]["trainingSessionId"] is None
