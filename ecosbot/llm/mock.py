"""
Deterministic provider for development without API keys
"""
import json
from typing import List, Optional

from .base import LLMMessage, LLMProvider, LLMResponse, LLMRole


class MockLLMProvider(LLMProvider):
    """
    Returns canned answers.

    - JSON requests get a well-formed evaluation payload with no scores, so
      every criterion is recorded at 0.
    - Other requests echo a short patient-style or assistant-style sentence.
    """

    name = "mock"

    async def generate(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        last_user = next(
            (m.content for m in reversed(messages) if m.role == LLMRole.USER),
            "",
        )

        if json_mode:
            content = json.dumps({
                "scores": {},
                "feedback": {},
                "summary": "Évaluation simulée (fournisseur mock).",
                "strengths": ["Bonne communication"],
                "weaknesses": ["Anamnèse incomplète"],
                "recommendations": ["Structurer davantage l'interrogatoire"],
            }, ensure_ascii=False)
        else:
            preview = last_user[:80]
            content = f"[mock] Réponse simulée à : {preview}"

        return LLMResponse(
            content=content,
            model=model or self.config.get("model", "mock"),
            usage={"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
        )
