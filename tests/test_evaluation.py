"""
Tests for the ECOS evaluation engine: criteria, scoring, reports
"""
import pytest

from ecosbot.core.constants import DEFAULT_EVALUATION_CRITERIA
from ecosbot.services.evaluation import (
    Criterion,
    aggregate_scores,
    build_summary,
    clamp_score,
    normalize_criteria,
    performance_label,
)

from .conftest import STUDENT, evaluation_json


def talk(client, session_id, text="Où avez-vous mal ?"):
    response = client.post(
        "/api/ecos/patient-simulator",
        json={"email": STUDENT, "sessionId": session_id, "query": text},
    )
    assert response.status_code == 200, response.text


def evaluate(client, session_id, email=STUDENT):
    return client.post("/api/ecos/evaluate", json={"email": email, "sessionId": session_id})


def test_weighted_aggregate():
    criteria = normalize_criteria({"anamnese": 20, "examen_physique": 30})

    totals = aggregate_scores(criteria, {"anamnese": 16, "examen_physique": 25})

    assert totals == {"total_score": 41.0, "max_score": 50.0, "percentage": 82}


def test_scores_are_clamped():
    assert clamp_score(35, 30) == 30
    assert clamp_score(-4, 30) == 0
    assert clamp_score("12.5", 30) == 12.5
    assert clamp_score({"score": 3}, 4) == 3
    assert clamp_score(None, 4) == 0
    assert clamp_score(True, 4) == 0


def test_missing_scores_count_as_zero():
    criteria = [Criterion("a", "A", 10), Criterion("b", "B", 10)]

    assert aggregate_scores(criteria, {"a": 10}) == {"total_score": 10.0, "max_score": 20.0, "percentage": 50}


def test_object_criteria_format():
    criteria = normalize_criteria({
        "communication": {"name": "Communication", "maxScore": 4},
        "anamnese": {"name": "Anamnèse", "weight": 6},
    })

    assert [(c.id, c.name, c.max_score) for c in criteria] == [
        ("communication", "Communication", 4.0),
        ("anamnese", "Anamnèse", 6.0),
    ]


@pytest.mark.parametrize("raw", [None, {}, {"bad": 0}, {"bad": "vingt"}])
def test_default_rubric_when_no_usable_criteria(raw):
    criteria = normalize_criteria(raw)

    assert [c.id for c in criteria] == list(DEFAULT_EVALUATION_CRITERIA)
    assert sum(c.max_score for c in criteria) == 20


@pytest.mark.parametrize("percentage,label", [
    (82, "excellente"), (80, "excellente"), (75, "bonne"), (60, "satisfaisante"), (59, "à améliorer"),
])
def test_performance_label(percentage, label):
    assert performance_label(percentage) == label


def test_summary_mentions_score():
    summary = build_summary(41.0, 50.0, 82)

    assert "excellente" in summary
    assert "41/50 (82%)" in summary


def test_evaluate_in_progress_session(client, started_session, llm):
    talk(client, started_session["id"])
    llm.json_replies.append(evaluation_json(
        {"anamnese": 16, "examen_physique": 25},
        {"anamnese": "Bonne anamnèse", "examen_physique": "Examen correct"},
    ))

    response = evaluate(client, started_session["id"])

    assert response.status_code == 200
    report = response.json()
    assert report["totalScore"] == 41
    assert report["maxScore"] == 50
    assert report["percentage"] == 82
    assert report["scores"] == {"anamnese": 16, "examen_physique": 25}
    assert report["comments"]["anamnese"] == "Bonne anamnèse"
    assert {c["id"]: c["maxScore"] for c in report["criteria"]} == {"anamnese": 20, "examen_physique": 30}
    assert report["strengths"] == ["Écoute active"]

    session = client.get(f"/api/ecos/sessions/{started_session['id']}", params={"email": STUDENT}).json()
    assert session["session"]["status"] == "completed"
    assert session["session"]["completionReason"] == "evaluation"


def test_out_of_range_scores_are_clamped_in_report(client, started_session, llm):
    talk(client, started_session["id"])
    llm.json_replies.append(evaluation_json({"anamnese": 99, "examen_physique": -3}))

    report = evaluate(client, started_session["id"]).json()

    assert report["scores"] == {"anamnese": 20, "examen_physique": 0}
    assert report["totalScore"] == 20
    assert report["percentage"] == 40


def test_report_is_generated_once(client, started_session, llm):
    talk(client, started_session["id"])
    llm.json_replies.append(evaluation_json({"anamnese": 16, "examen_physique": 25}))
    first = evaluate(client, started_session["id"]).json()
    calls = len(llm.calls)

    llm.json_replies.append(evaluation_json({"anamnese": 0, "examen_physique": 0}))
    second = evaluate(client, started_session["id"]).json()

    assert second == first
    assert len(llm.calls) == calls


def test_unparseable_evaluation_is_502(client, started_session, llm):
    talk(client, started_session["id"])
    llm.json_replies.append("Je ne peux pas évaluer.")

    response = evaluate(client, started_session["id"])

    assert response.status_code == 502
    assert response.json()["errorCode"] == "EVALUATION_FAILED"


def test_session_without_questions_scores_zero_without_model(client, started_session, llm):
    report = evaluate(client, started_session["id"]).json()

    assert report["totalScore"] == 0
    assert report["percentage"] == 0
    assert not any(call["json_mode"] for call in llm.calls)


def test_default_rubric_used_for_scenario_without_criteria(client, open_training, llm):
    scenario = client.post(
        "/api/ecos/scenarios",
        json={
            "email": "prof@example.org",
            "title": "Épaule douloureuse",
            "description": "Douleur chronique de l'épaule",
            "patientPrompt": "Tu as mal à l'épaule droite depuis 3 mois.",
        },
    ).json()
    client.put(
        f"/api/training-sessions/{open_training['id']}",
        json={"email": "prof@example.org", "scenarioIds": [scenario["id"]]},
    )
    session = client.post("/api/ecos/sessions", json={"email": STUDENT, "scenarioId": scenario["id"]}).json()
    talk(client, session["sessionId"])
    llm.json_replies.append(evaluation_json({"communication": 4, "anamnese": 3}))

    report = evaluate(client, session["sessionId"]).json()

    assert report["maxScore"] == 20
    assert report["totalScore"] == 7
    assert {c["id"] for c in report["criteria"]} == set(DEFAULT_EVALUATION_CRITERIA)


def test_other_student_cannot_evaluate(client, started_session):
    response = evaluate(client, started_session["id"], email="bob@example.org")

    assert response.status_code == 403
