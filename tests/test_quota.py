"""
Tests for the daily question quota (status, ask, history)
"""
from datetime import timedelta

from ecosbot.core.constants import local_day
from ecosbot.database.repositories import DailyCounterRepository, ExchangeRepository

from .conftest import STUDENT, T0


def ask(client, question="Qu'est-ce que la sémiologie ?", email=STUDENT):
    response = client.post("/api/ask", json={"email": email, "question": question})
    assert response.status_code == 200, response.text
    return response.json()


def test_status_of_new_user(client):
    response = client.get("/api/status", params={"email": STUDENT})

    assert response.status_code == 200
    assert response.json() == {
        "email": STUDENT,
        "questionsUsed": 0,
        "questionsRemaining": 20,
        "maxDailyQuestions": 20,
        "limitReached": False,
    }


def test_status_requires_email(client):
    response = client.get("/api/status")

    assert response.status_code == 400
    assert response.json()["errorCode"] == "EMAIL_REQUIRED"


def test_email_is_normalized(client):
    ask(client, email="  Alice%40Example.org ")

    status = client.get("/api/status", params={"email": "ALICE@example.org"}).json()
    assert status["questionsUsed"] == 1


def test_ask_counts_question_and_stores_exchange(client, llm):
    llm.replies.append("La sémiologie étudie les signes cliniques.")

    body = ask(client)

    assert body["status"] == "success"
    assert body["response"] == "La sémiologie étudie les signes cliniques."
    assert body["questionsUsed"] == 1
    assert body["questionsRemaining"] == 19
    assert body["limitReached"] is False

    history = client.get("/api/history", params={"email": STUDENT}).json()
    assert [e["id"] for e in history["exchanges"]] == [body["id"]]


def test_twentieth_question_reaches_limit_and_twenty_first_is_blocked(client, llm, db):
    for i in range(19):
        body = ask(client, question=f"Question {i}")
        assert body["questionsUsed"] + body["questionsRemaining"] == 20

    twentieth = ask(client, question="Question 20")
    assert twentieth["status"] == "success"
    assert twentieth["questionsUsed"] == 20
    assert twentieth["questionsRemaining"] == 0
    assert twentieth["limitReached"] is True

    calls_before = len(llm.calls)
    blocked = ask(client, question="Question 21")
    assert blocked["status"] == "error"
    assert blocked["limitReached"] is True
    assert blocked["questionsRemaining"] == 0
    assert "response" not in blocked
    assert len(llm.calls) == calls_before

    day = local_day(T0, "Europe/Paris")
    assert DailyCounterRepository(db).get_count(STUDENT, day) == 20
    assert ExchangeRepository(db).count_by_email(STUDENT) == 20


def test_new_day_starts_a_new_counter(client, clock, db):
    for i in range(20):
        ask(client, question=f"Question {i}")
    assert ask(client)["limitReached"] is True

    clock.advance(days=1)
    body = ask(client)

    assert body["status"] == "success"
    assert body["questionsUsed"] == 1
    counters = DailyCounterRepository(db)
    assert counters.get_count(STUDENT, local_day(T0, "Europe/Paris")) == 20
    assert counters.get_count(STUDENT, local_day(T0 + timedelta(days=1), "Europe/Paris")) == 1


def test_day_follows_quota_timezone(client, clock):
    # 23:30 UTC on March 10 is already March 11 in Paris
    clock.now = T0.replace(hour=23, minute=30)
    ask(client)

    clock.now = T0.replace(hour=12)
    status = client.get("/api/status", params={"email": STUDENT}).json()
    assert status["questionsUsed"] == 0


def test_llm_failure_is_not_counted(client, llm, db):
    llm.error = RuntimeError("model down")

    response = client.post("/api/ask", json={"email": STUDENT, "question": "Bonjour ?"})

    assert response.status_code == 502
    assert response.json()["errorCode"] == "LLM_UNAVAILABLE"
    assert DailyCounterRepository(db).get_count(STUDENT, local_day(T0, "Europe/Paris")) == 0
    assert ExchangeRepository(db).count_by_email(STUDENT) == 0


def test_counters_are_per_user(client):
    ask(client, email=STUDENT)
    ask(client, email="bob@example.org")
    ask(client, email="bob@example.org")

    assert client.get("/api/status", params={"email": STUDENT}).json()["questionsUsed"] == 1
    assert client.get("/api/status", params={"email": "bob@example.org"}).json()["questionsUsed"] == 2


def test_try_increment_refuses_past_limit(db):
    counters = DailyCounterRepository(db)
    day = local_day(T0, "Europe/Paris")
    counters.ensure_row(STUDENT, day)

    assert counters.try_increment(STUDENT, day, limit=2) == 1
    assert counters.try_increment(STUDENT, day, limit=2) == 2
    assert counters.try_increment(STUDENT, day, limit=2) is None
    db.commit()

    assert counters.get_count(STUDENT, day) == 2


def test_answer_is_discarded_when_last_slot_is_taken_during_generation(client, app, llm, db):
    for i in range(19):
        ask(client, question=f"Question {i}")
    day = local_day(T0, "Europe/Paris")

    def concurrent_ask():
        other = app.state.db_config.session()
        try:
            assert DailyCounterRepository(other).try_increment(STUDENT, day, limit=20) == 20
            other.commit()
        finally:
            other.close()

    llm.on_generate = concurrent_ask
    body = ask(client, question="Dernière question")

    assert body["status"] == "error"
    assert body["limitReached"] is True
    assert body["questionsUsed"] == 20
    db.expire_all()
    assert DailyCounterRepository(db).get_count(STUDENT, day) == 20
    assert ExchangeRepository(db).count_by_email(STUDENT) == 19
    assert "Dernière question" not in [e.question for e in ExchangeRepository(db).get_by_email(STUDENT)]


def test_history_is_newest_first(client, clock):
    ask(client, question="Première")
    clock.advance(minutes=5)
    ask(client, question="Deuxième")

    exchanges = client.get("/api/history", params={"email": STUDENT}).json()["exchanges"]
    assert [e["question"] for e in exchanges] == ["Deuxième", "Première"]
