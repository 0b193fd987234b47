"""Inference gateway and providers for Tandem."""

from .gateway import CallRecord, Gateway
from .providers import (
    AnthropicProvider,
    BaseProvider,
    GeminiProvider,
    MockProvider,
    OpenAIProvider,
    ProviderFactory,
)

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "CallRecord",
    "GeminiProvider",
    "Gateway",
    "MockProvider",
    "OpenAIProvider",
    "ProviderFactory",
]
