"""Inference providers for the Tandem gateway."""

from .anthropic import AnthropicProvider
from .base import BaseProvider, ProviderFactory, is_transient
from .gemini import GeminiProvider
from .mock import MockProvider
from .openai import OpenAIProvider

ProviderFactory.register("openai", OpenAIProvider)
ProviderFactory.register("anthropic", AnthropicProvider)
ProviderFactory.register("gemini", GeminiProvider)
ProviderFactory.register("mock", MockProvider)

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "GeminiProvider",
    "MockProvider",
    "OpenAIProvider",
    "ProviderFactory",
    "is_transient",
]
