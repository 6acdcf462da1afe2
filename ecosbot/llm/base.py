"""
Base abstractions for language model providers
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class LLMRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class LLMMessage:
    role: LLMRole
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class LLMResponse:
    """Completion returned by a provider"""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """
    Interface every provider implements.

    Providers are built from a plain config dict (see ``LLMProviderFactory``)
    and must be safe to share between concurrent requests.
    """

    name = "base"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}

    @abstractmethod
    async def generate(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion for ``messages``.

        Args:
            model: overrides the configured model for this call
            json_mode: ask the provider for a JSON object when supported

        Raises:
            Exception: provider errors propagate; callers decide the fallback
        """

    def get_model_info(self) -> Dict[str, Any]:
        return {"provider": self.name, "model": self.config.get("model")}
