"""
Shared fixtures: in-memory database, scripted language model, movable clock
"""
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from ecosbot.api.deps import get_now
from ecosbot.api.main import create_app
from ecosbot.core.config import AppConfig
from ecosbot.llm.base import LLMMessage, LLMProvider, LLMResponse

TEACHER = "prof@example.org"
ADMIN = "admin@example.org"
STUDENT = "alice@example.org"
OTHER_STUDENT = "bob@example.org"

# Noon in Paris, well inside one calendar day
T0 = datetime(2025, 3, 10, 11, 0, tzinfo=timezone.utc)


class ScriptedLLMProvider(LLMProvider):
    """
    Returns queued answers in order; JSON requests use their own queue.
    Set ``error`` to make every call fail; ``on_generate`` runs before each
    answer is returned.
    """

    name = "scripted"

    def __init__(self):
        super().__init__({"model": "scripted-model"})
        self.replies: List[str] = []
        self.json_replies: List[str] = []
        self.error: Optional[Exception] = None
        self.calls: List[Dict[str, Any]] = []
        self.on_generate: Optional[Callable[[], None]] = None

    async def generate(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "json_mode": json_mode, "model": model})
        if self.error is not None:
            raise self.error
        if self.on_generate is not None:
            self.on_generate()

        if json_mode:
            content = self.json_replies.pop(0) if self.json_replies else json.dumps({"scores": {}})
        else:
            content = self.replies.pop(0) if self.replies else "Réponse scriptée"
        return LLMResponse(content=content, model="scripted-model", usage={"total_tokens": 10})


class Clock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        database_url="sqlite://",
        llm_provider="mock",
        teacher_emails=[TEACHER],
        admin_emails=[ADMIN],
        session_sweep_enabled=False,
    )


@pytest.fixture
def llm() -> ScriptedLLMProvider:
    return ScriptedLLMProvider()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def app(config, llm, clock):
    app = create_app(config, llm_provider=llm)
    app.dependency_overrides[get_now] = lambda: clock.now
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db(app):
    session = app.state.db_config.session()
    try:
        yield session
    finally:
        session.close()


def evaluation_json(scores: Dict[str, float], comments: Optional[Dict[str, str]] = None) -> str:
    return json.dumps({
        "scores": scores,
        "comments": comments or {key: f"Commentaire {key}" for key in scores},
        "strengths": ["Écoute active"],
        "weaknesses": ["Examen incomplet"],
        "recommendations": ["Revoir la sémiologie"],
    }, ensure_ascii=False)


@pytest.fixture
def scenario(client) -> Dict[str, Any]:
    response = client.post(
        "/api/ecos/scenarios",
        json={
            "email": TEACHER,
            "title": "Douleur thoracique",
            "description": "Homme de 55 ans, douleur thoracique aiguë",
            "patientPrompt": "Tu es un homme de 55 ans avec une douleur dans la poitrine.",
            "evaluationCriteria": {"anamnese": 20, "examen_physique": 30},
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def open_training(client, scenario, clock) -> Dict[str, Any]:
    """Training session open around T0 with STUDENT on the roster"""
    response = client.post(
        "/api/training-sessions",
        json={
            "email": TEACHER,
            "title": "ECOS mars",
            "startDate": (clock.now - timedelta(days=1)).isoformat(),
            "endDate": (clock.now + timedelta(days=7)).isoformat(),
            "scenarioIds": [scenario["id"]],
            "studentEmails": [STUDENT],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["trainingSession"]


@pytest.fixture
def started_session(client, scenario, open_training) -> Dict[str, Any]:
    response = client.post("/api/ecos/sessions", json={"email": STUDENT, "scenarioId": scenario["id"]})
    assert response.status_code == 201, response.text
    return response.json()["session"]
