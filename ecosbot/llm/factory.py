"""
LLM Provider Factory

Centralizes creation and configuration of LLM providers.

Supports:
- mock: simulated provider for tests/development (no API calls)
- openai: OpenAI chat completions (official SDK)
- ollama: Ollama (local models)

Usage:
    >>> from ecosbot.llm import LLMProviderFactory
    >>>
    >>> # From the application configuration (recommended)
    >>> provider = LLMProviderFactory.create_from_config(app_config)
    >>>
    >>> # Manual configuration
    >>> provider = LLMProviderFactory.create("ollama", {
    ...     "base_url": "http://localhost:11434",
    ...     "model": "llama3"
    ... })
    >>>
    >>> response = await provider.generate(messages, temperature=0.7)
"""
import logging
import time
from typing import Any, Dict, List, Optional

from ..core import metrics
from ..core.config import AppConfig
from .base import LLMMessage, LLMProvider, LLMResponse
from .mock import MockLLMProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)


class MeteredLLMProvider(LLMProvider):
    """Wraps a provider to record request counts and latency in Prometheus."""

    def __init__(self, inner: LLMProvider):
        super().__init__(inner.config)
        self.inner = inner
        self.name = inner.name

    async def generate(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        start = time.perf_counter()
        try:
            response = await self.inner.generate(
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                model=model,
                json_mode=json_mode,
            )
        except Exception:
            metrics.llm_requests_total.labels(provider=self.name, status="error").inc()
            raise
        finally:
            metrics.llm_request_duration_seconds.labels(provider=self.name).observe(time.perf_counter() - start)

        metrics.llm_requests_total.labels(provider=self.name, status="success").inc()
        return response

    def get_model_info(self) -> Dict[str, Any]:
        return self.inner.get_model_info()


class LLMProviderFactory:
    """
    Factory for creating LLM providers

    Usage:
        >>> provider = LLMProviderFactory.create("mock")
        >>> provider = LLMProviderFactory.create("ollama", {"base_url": "http://localhost:11434"})
    """

    # Registry of available providers
    _providers = {
        "mock": MockLLMProvider,
        "openai": OpenAIProvider,
        "ollama": OllamaProvider,
    }

    @classmethod
    def create(
        cls,
        provider_type: str,
        config: Optional[Dict[str, Any]] = None
    ) -> LLMProvider:
        """
        Create LLM provider instance

        Raises:
            ValueError: If provider type is not registered
        """
        if provider_type not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {available}"
            )

        provider_class = cls._providers[provider_type]
        return provider_class(config)

    @classmethod
    def create_from_config(cls, config: AppConfig) -> LLMProvider:
        """
        Create the provider selected by ``config.llm_provider``, wrapped with
        metrics.

        An ``openai`` selection without API key degrades to ``mock`` with a
        warning so the service can still start in development.
        """
        provider_type = config.llm_provider
        provider_config: Dict[str, Any] = {}

        if provider_type == "openai":
            if not config.openai_api_key:
                logger.warning("OPENAI_API_KEY not set, falling back to mock LLM provider")
                provider_type = "mock"
            else:
                provider_config = {
                    "api_key": config.openai_api_key,
                    "model": config.openai_model,
                    "timeout": config.llm_timeout_seconds,
                }

        elif provider_type == "ollama":
            provider_config = {
                "base_url": config.ollama_base_url,
                "model": config.ollama_model,
                "timeout": config.llm_timeout_seconds,
            }

        provider = cls.create(provider_type, provider_config)
        logger.info(f"LLM provider initialized: {provider_type}", extra=provider.get_model_info())
        return MeteredLLMProvider(provider)
