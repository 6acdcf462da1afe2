"""
Tests for ECOS session lifecycle: start, manual end, expiry, sweep, patient turns
"""
import asyncio
from datetime import datetime, timedelta

from ecosbot.core.constants import ensure_utc
from ecosbot.database.repositories import EcosMessageRepository, EcosSessionRepository
from ecosbot.services.evaluation import EvaluationEngine
from ecosbot.services.session_lifecycle import SessionLifecycleManager
from ecosbot.services.sweeper import SessionExpirySweeper

from .conftest import OTHER_STUDENT, STUDENT, TEACHER, T0, evaluation_json


def parse_ts(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def end_session(client, session_id, email=STUDENT, status="completed"):
    return client.put(f"/api/ecos/sessions/{session_id}", json={"email": email, "status": status})


def test_start_session_links_training_session(started_session, open_training):
    assert started_session["status"] == "in_progress"
    assert started_session["studentEmail"] == STUDENT
    assert started_session["trainingSessionId"] == open_training["id"]
    assert started_session["secondsRemaining"] == 8 * 60
    assert started_session["endTime"] is None


def test_timestamps_are_returned_with_utc_offset(client, started_session):
    detail = client.get(f"/api/ecos/sessions/{started_session['id']}", params={"email": STUDENT}).json()

    start_time = datetime.fromisoformat(detail["session"]["startTime"].replace("Z", "+00:00"))
    assert start_time.utcoffset() == timedelta(0)
    assert start_time == T0
    assert datetime.fromisoformat(detail["scenario"]["createdAt"].replace("Z", "+00:00")).tzinfo is not None


def test_manual_end_completes_and_evaluates(client, started_session, llm):
    llm.json_replies.append(evaluation_json({"anamnese": 16, "examen_physique": 25}))
    client.post(
        "/api/ecos/patient-simulator",
        json={"email": STUDENT, "sessionId": started_session["id"], "query": "Où avez-vous mal ?"},
    )

    response = end_session(client, started_session["id"])

    assert response.status_code == 200
    body = response.json()
    assert body["alreadyCompleted"] is False
    assert body["session"]["status"] == "completed"
    assert body["session"]["completionReason"] == "manual"
    assert body["session"]["secondsRemaining"] == 0

    report = client.get(f"/api/ecos/reports/{started_session['id']}", params={"email": STUDENT})
    assert report.status_code == 200
    assert report.json()["report"]["percentage"] == 82


def test_second_end_is_idempotent(client, started_session, llm, clock):
    first = end_session(client, started_session["id"]).json()
    calls = len(llm.calls)

    clock.advance(minutes=1)
    second = end_session(client, started_session["id"])

    assert second.status_code == 200
    assert second.json()["alreadyCompleted"] is True
    assert second.json()["session"]["endTime"] == first["session"]["endTime"]
    assert len(llm.calls) == calls


def test_only_completed_transition_is_accepted(client, started_session):
    response = end_session(client, started_session["id"], status="in_progress")

    assert response.status_code == 400
    assert response.json()["errorCode"] == "INVALID_SESSION_TRANSITION"


def test_session_expires_on_access_with_deadline_as_end_time(client, started_session, clock):
    clock.advance(minutes=9)

    response = client.get(f"/api/ecos/sessions/{started_session['id']}", params={"email": STUDENT})

    assert response.status_code == 200
    session = response.json()["session"]
    assert session["status"] == "completed"
    assert session["completionReason"] == "expired"
    assert parse_ts(session["endTime"]) == T0 + timedelta(minutes=8)


def test_ending_an_overdue_session_reports_expiry(client, started_session, clock):
    clock.advance(minutes=9)

    body = end_session(client, started_session["id"]).json()

    assert body["alreadyCompleted"] is True
    assert body["session"]["completionReason"] == "expired"
    assert parse_ts(body["session"]["endTime"]) == T0 + timedelta(minutes=8)


def test_session_still_running_just_before_deadline(client, started_session, clock):
    clock.advance(minutes=7, seconds=30)

    session = client.get(f"/api/ecos/sessions/{started_session['id']}", params={"email": STUDENT}).json()["session"]

    assert session["status"] == "in_progress"
    assert session["secondsRemaining"] == 30


def test_patient_turn_after_expiry_is_rejected(client, started_session, clock, db):
    clock.advance(minutes=8)

    response = client.post(
        "/api/ecos/patient-simulator",
        json={"email": STUDENT, "sessionId": started_session["id"], "query": "Avez-vous de la fièvre ?"},
    )

    assert response.status_code == 409
    assert response.json()["errorCode"] == "SESSION_NOT_ACTIVE"
    assert response.json()["completionReason"] == "expired"
    assert EcosMessageRepository(db).get_by_session(started_session["id"]) == []


def test_patient_turn_on_completed_session_is_rejected(client, started_session):
    end_session(client, started_session["id"])

    response = client.post(
        "/api/ecos/patient-simulator",
        json={"email": STUDENT, "sessionId": started_session["id"], "query": "Bonjour"},
    )

    assert response.status_code == 409


def test_patient_turns_are_stored_in_order(client, started_session, llm, db):
    llm.replies.extend(["J'ai mal à la poitrine.", "Depuis deux heures."])
    session_id = started_session["id"]

    first = client.post(
        "/api/ecos/patient-simulator",
        json={"email": STUDENT, "sessionId": session_id, "query": "Qu'est-ce qui vous amène ?"},
    )
    second = client.post(
        "/api/ecos/patient-simulator",
        json={"email": STUDENT, "sessionId": session_id, "message": "Depuis quand ?"},
    )

    assert first.status_code == 200
    assert first.json()["response"] == "J'ai mal à la poitrine."
    assert second.json()["response"] == "Depuis deux heures."

    # Second call replays the first turn after the system prompt
    replayed = [m.content for m in llm.calls[1]["messages"][1:]]
    assert replayed == ["Qu'est-ce qui vous amène ?", "J'ai mal à la poitrine.", "Depuis quand ?"]

    messages = EcosMessageRepository(db).get_by_session(session_id)
    assert [(m.sequence, m.role) for m in messages] == [
        (1, "user"), (2, "assistant"), (3, "user"), (4, "assistant"),
    ]


def test_patient_llm_failure_records_nothing(client, started_session, llm, db):
    llm.error = RuntimeError("timeout")

    response = client.post(
        "/api/ecos/patient-simulator",
        json={"email": STUDENT, "sessionId": started_session["id"], "query": "Bonjour"},
    )

    assert response.status_code == 502
    assert EcosMessageRepository(db).get_by_session(started_session["id"]) == []


def test_empty_patient_message_is_rejected(client, started_session):
    response = client.post(
        "/api/ecos/patient-simulator",
        json={"email": STUDENT, "sessionId": started_session["id"], "query": "   "},
    )

    assert response.status_code == 400
    assert response.json()["errorCode"] == "MESSAGE_REQUIRED"


def test_other_student_cannot_access_session(client, started_session):
    response = client.get(f"/api/ecos/sessions/{started_session['id']}", params={"email": OTHER_STUDENT})

    assert response.status_code == 403


def test_teacher_can_read_any_session(client, started_session):
    response = client.get(f"/api/ecos/sessions/{started_session['id']}", params={"email": TEACHER})

    assert response.status_code == 200
    assert response.json()["scenario"]["title"] == "Douleur thoracique"


def test_unknown_session_is_404(client):
    response = client.get("/api/ecos/sessions/does-not-exist", params={"email": STUDENT})

    assert response.status_code == 404
    assert response.json()["errorCode"] == "SESSION_NOT_FOUND"


def test_listing_applies_expiry(client, started_session, clock):
    clock.advance(minutes=10)

    sessions = client.get("/api/ecos/sessions", params={"email": STUDENT}).json()["sessions"]

    assert [s["status"] for s in sessions] == ["completed"]
    assert sessions[0]["completionReason"] == "expired"


def test_completion_happens_exactly_once(app, started_session, clock, llm):
    db = app.state.db_config.session()
    try:
        engine = EvaluationEngine(db, llm, app.state.config)
        lifecycle = SessionLifecycleManager(db, app.state.config, evaluation_engine=engine)
        session = lifecycle.get(started_session["id"])

        async def race():
            return await asyncio.gather(
                lifecycle.complete(session, "manual", clock.now),
                lifecycle.complete(session, "evaluation", clock.now),
            )

        results = asyncio.run(race())
    finally:
        db.close()

    assert sorted(transitioned for _, transitioned in results) == [False, True]


def test_sweep_expires_abandoned_sessions(app, started_session, clock, llm, db):
    sweeper = SessionExpirySweeper(app.state.db_config, app.state.config, llm)

    assert asyncio.run(sweeper.sweep_now(clock.now + timedelta(minutes=5))) == []
    expired = asyncio.run(sweeper.sweep_now(clock.now + timedelta(minutes=30)))

    assert expired == [started_session["id"]]
    session = EcosSessionRepository(db).get_by_id(started_session["id"], refresh=True)
    assert session.status == "completed"
    assert session.completion_reason == "expired"
    assert ensure_utc(session.end_time) == T0 + timedelta(minutes=8)


def test_evaluation_failure_does_not_undo_completion(client, started_session, llm):
    client.post(
        "/api/ecos/patient-simulator",
        json={"email": STUDENT, "sessionId": started_session["id"], "query": "Bonjour"},
    )
    llm.json_replies.append("pas du JSON")

    response = end_session(client, started_session["id"])

    assert response.status_code == 200
    assert response.json()["session"]["status"] == "completed"
    missing = client.get(f"/api/ecos/reports/{started_session['id']}", params={"email": STUDENT})
    assert missing.status_code == 404

    llm.json_replies.append(evaluation_json({"anamnese": 10, "examen_physique": 15}))
    retried = client.post("/api/ecos/evaluate", json={"email": STUDENT, "sessionId": started_session["id"]})
    assert retried.status_code == 200
    assert retried.json()["totalScore"] == 25
