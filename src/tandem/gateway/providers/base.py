"""Base provider interface for the Tandem gateway.

A provider turns an InferenceRequest into one model call and converts the
reply back into an InferenceResponse. Wire formats stay inside the
provider module.
"""

import time
from abc import ABC, abstractmethod
from typing import Any

from ...exceptions import InferenceError, ProviderNotFoundError
from ...types import InferenceRequest, InferenceResponse, ModelProvider

# HTTP status codes worth retrying.
TRANSIENT_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504, 529})

_TRANSIENT_NAME_HINTS = ("timeout", "connection", "ratelimit", "rate_limit", "overloaded", "unavailable")


def is_transient(error: Exception) -> bool:
    """Best-effort classification of an SDK exception as retryable."""
    if isinstance(error, InferenceError):
        return error.transient
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    status = getattr(error, "status_code", None) or getattr(error, "code", None)
    if isinstance(status, int) and status in TRANSIENT_STATUS_CODES:
        return True
    name = type(error).__name__.lower()
    return any(hint in name for hint in _TRANSIENT_NAME_HINTS)


class BaseProvider(ABC):
    """Abstract base class for inference providers.

    Example:
        class EchoProvider(BaseProvider):
            provider_type = ModelProvider.MOCK

            async def infer(self, request):
                return InferenceResponse(content=request.turns[-1].text)
    """

    provider_type: ModelProvider

    # Default model
    default_model: str = ""

    # Pricing per 1M tokens (input, output)
    pricing: dict[str, tuple[float, float]] = {}

    def __init__(self):
        self._total_calls = 0
        self._total_errors = 0
        self._total_tokens = 0
        self._total_cost = 0.0
        self._total_latency_ms = 0.0

    @property
    def name(self) -> str:
        return self.provider_type.value

    @abstractmethod
    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        """Answer one inference request.

        Raises:
            InferenceError: If the call fails. ``transient`` tells the
                caller whether retrying may help.
        """

    def resolve_model(self, request: InferenceRequest) -> str:
        if request.model is not None and request.model.model_id:
            return request.model.model_id
        return self.default_model

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """Cost in dollars, matching on the longest known model prefix."""
        price = self.pricing.get(model)
        if price is None:
            candidates = [key for key in self.pricing if model.startswith(key)]
            if not candidates:
                return 0.0
            price = self.pricing[max(candidates, key=len)]
        input_price, output_price = price
        return (input_tokens * input_price + output_tokens * output_price) / 1_000_000

    def wrap_error(self, error: Exception) -> InferenceError:
        """Convert an SDK exception into an InferenceError."""
        if isinstance(error, InferenceError):
            return error
        return InferenceError(self.name, f"{type(error).__name__}: {error}", is_transient(error), error)

    def record_metrics(self, response: InferenceResponse) -> None:
        self._total_calls += 1
        self._total_tokens += response.input_tokens + response.output_tokens
        self._total_cost += response.cost
        self._total_latency_ms += response.latency_ms

    def record_error(self) -> None:
        self._total_errors += 1

    def get_metrics(self) -> dict[str, Any]:
        return {
            "total_calls": self._total_calls,
            "total_errors": self._total_errors,
            "total_tokens": self._total_tokens,
            "total_cost": self._total_cost,
            "avg_latency_ms": (
                self._total_latency_ms / self._total_calls if self._total_calls > 0 else 0.0
            ),
        }

    def reset_metrics(self) -> None:
        self._total_calls = 0
        self._total_errors = 0
        self._total_tokens = 0
        self._total_cost = 0.0
        self._total_latency_ms = 0.0

    @staticmethod
    def elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000


class ProviderFactory:
    """Registry of provider classes by name.

    Example:
        ProviderFactory.register("openai", OpenAIProvider)
        provider = ProviderFactory.create("openai", api_key="sk-...")
    """

    _providers: dict[str, type[BaseProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: type[BaseProvider]) -> None:
        cls._providers[name] = provider_class

    @classmethod
    def create(cls, name: str, **kwargs: Any) -> BaseProvider:
        """Create a provider instance.

        Raises:
            ProviderNotFoundError: If no class is registered under ``name``.
        """
        if name not in cls._providers:
            raise ProviderNotFoundError(name)
        return cls._providers[name](**kwargs)

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers)

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._providers
