"""
Language model providers
"""
from .base import LLMMessage, LLMProvider, LLMResponse, LLMRole
from .factory import LLMProviderFactory, MeteredLLMProvider

__all__ = [
    "LLMMessage",
    "LLMProvider",
    "LLMResponse",
    "LLMRole",
    "LLMProviderFactory",
    "MeteredLLMProvider",
]
