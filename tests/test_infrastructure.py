"""
Tests for the retrieval cache, LLM factory, dashboard and metrics endpoint
"""
import asyncio
import json

import pytest

from ecosbot.core.cache import LRUCache, RetrievalCache
from ecosbot.core.config import AppConfig
from ecosbot.llm import LLMMessage, LLMProviderFactory, LLMRole
from ecosbot.llm.factory import MeteredLLMProvider
from ecosbot.llm.mock import MockLLMProvider
from ecosbot.llm.ollama_provider import OllamaProvider

from .conftest import STUDENT, TEACHER


def test_lru_cache_evicts_oldest():
    cache = LRUCache(max_size=2, ttl_seconds=60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.get("a") == 1
    assert cache.get("b") is None
    assert cache.get("c") == 3


def test_lru_cache_expires_entries(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr("ecosbot.core.cache.time.monotonic", lambda: now[0])
    cache = LRUCache(max_size=2, ttl_seconds=60)
    cache.set("a", 1)
    now[0] += 61

    assert cache.get("a") is None
    assert cache.get_stats()["misses"] == 1


def test_retrieval_cache_normalizes_question():
    cache = RetrievalCache(redis_url=None)
    passages = [{"content": "La sémiologie...", "source": "cours.pdf"}]
    cache.set("Qu'est-ce que la  Sémiologie ?", "courses", passages)

    assert cache.backend == "memory"
    assert cache.get("qu'est-ce que la sémiologie ?", "courses") == passages
    assert cache.get("qu'est-ce que la sémiologie ?", "other-index") is None


def test_unreachable_redis_falls_back_to_memory():
    cache = RetrievalCache(redis_url="redis://127.0.0.1:1/0")

    assert cache.backend == "memory"


def test_factory_without_openai_key_falls_back_to_mock():
    provider = LLMProviderFactory.create_from_config(AppConfig(llm_provider="openai", openai_api_key=None))

    assert isinstance(provider, MeteredLLMProvider)
    assert isinstance(provider.inner, MockLLMProvider)


def test_factory_builds_ollama_from_config():
    config = AppConfig(llm_provider="ollama", ollama_base_url="http://ollama:11434/", ollama_model="mistral")

    provider = LLMProviderFactory.create_from_config(config)

    assert isinstance(provider.inner, OllamaProvider)
    assert provider.inner.base_url == "http://ollama:11434"
    assert provider.get_model_info()["model"] == "mistral"


def test_factory_rejects_unknown_provider():
    with pytest.raises(ValueError):
        LLMProviderFactory.create("unknown")


def test_mock_provider_json_mode_returns_json():
    provider = MockLLMProvider()
    messages = [LLMMessage(role=LLMRole.USER, content="Évalue")]

    response = asyncio.run(provider.generate(messages, json_mode=True))

    assert "scores" in json.loads(response.content)


def test_teacher_dashboard(client, started_session):
    client.put(f"/api/ecos/sessions/{started_session['id']}", json={"email": STUDENT, "status": "completed"})

    response = client.get("/api/teacher/dashboard", params={"email": TEACHER})

    assert response.status_code == 200
    body = response.json()
    assert body["scenarioCount"] == 1
    assert body["trainingSessionCount"] == 1
    assert body["sessionsByStatus"] == {"in_progress": 0, "completed": 1}
    assert [s["id"] for s in body["recentSessions"]] == [started_session["id"]]


def test_dashboard_requires_teacher(client):
    assert client.get("/api/teacher/dashboard", params={"email": STUDENT}).status_code == 403


def test_metrics_endpoint(client):
    client.post("/api/ask", json={"email": STUDENT, "question": "Bonjour ?"})

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "ecosbot_questions_asked_total" in response.text


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["retrieval"] is False
