"""
Ollama provider (local models) over its HTTP API
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import LLMMessage, LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class OllamaProvider(LLMProvider):
    """
    Calls ``POST {base_url}/api/chat`` with ``stream: false``.

    Config keys:
        base_url (default http://localhost:11434), model, timeout, keep_alive,
        options (dict forwarded as Ollama options)
    """

    name = "ollama"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.base_url = self.config.get("base_url", "http://localhost:11434").rstrip("/")
        self.model = self.config.get("model", "llama3")
        self.timeout = float(self.config.get("timeout", 120.0))

    async def generate(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        options = dict(self.config.get("options") or {})
        options["temperature"] = temperature
        if max_tokens:
            options["num_predict"] = max_tokens

        payload: Dict[str, Any] = {
            "model": model or self.model,
            "messages": [m.to_dict() for m in messages],
            "stream": False,
            "options": options,
        }
        if json_mode:
            payload["format"] = "json"
        if self.config.get("keep_alive"):
            payload["keep_alive"] = self.config["keep_alive"]

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.base_url}/api/chat", json=payload)
            response.raise_for_status()
            data = response.json()

        prompt_tokens = data.get("prompt_eval_count", 0)
        completion_tokens = data.get("eval_count", 0)
        return LLMResponse(
            content=data.get("message", {}).get("content", ""),
            model=data.get("model", payload["model"]),
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        )
