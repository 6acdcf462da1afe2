"""
OpenAI chat completions provider
"""
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from .base import LLMMessage, LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """
    Config keys:
        api_key (required), model (default gpt-4o), timeout (seconds)
    """

    name = "openai"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        api_key = self.config.get("api_key")
        if not api_key:
            raise ValueError("OpenAI provider requires an api_key")

        self.model = self.config.get("model", "gpt-4o")
        self.client = AsyncOpenAI(
            api_key=api_key,
            timeout=float(self.config.get("timeout", 60.0)),
        )

    async def generate(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        params: Dict[str, Any] = {
            "model": model or self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
        }
        if max_tokens:
            params["max_tokens"] = max_tokens
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        completion = await self.client.chat.completions.create(**params)

        usage = {}
        if completion.usage is not None:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens,
            }

        content = completion.choices[0].message.content or ""
        logger.debug(f"OpenAI completion: {usage.get('total_tokens', 0)} tokens", extra={"model": completion.model})
        return LLMResponse(content=content, model=completion.model, usage=usage)
