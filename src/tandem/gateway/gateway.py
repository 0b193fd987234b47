"""Gateway: the inference collaborator used by agent executors.

Every inference call flows through ``Gateway.infer``:

1. pick the provider named by the agent's ModelConfig, else the default;
2. call it, through a RetryStrategy when one is configured;
3. record the call for history and metrics.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Any, Callable

from ..control.retry import RetryStrategy
from ..exceptions import InferenceError, ProviderNotFoundError, RetryExhaustedError
from ..types import InferenceRequest, InferenceResponse, ModelProvider
from .providers import BaseProvider, ProviderFactory

logger = logging.getLogger(__name__)


class CallRecord:
    """Record of a single inference call."""

    __slots__ = ("agent_id", "provider", "model", "response", "error", "timestamp")

    def __init__(
        self,
        agent_id: str,
        provider: str,
        model: str,
        response: InferenceResponse | None = None,
        error: str | None = None,
    ):
        self.agent_id = agent_id
        self.provider = provider
        self.model = model
        self.response = response
        self.error = error
        self.timestamp = datetime.now()

    @property
    def success(self) -> bool:
        return self.response is not None and self.error is None

    @property
    def cost(self) -> float:
        return self.response.cost if self.response else 0.0

    @property
    def latency_ms(self) -> float:
        return self.response.latency_ms if self.response else 0.0

    @property
    def tokens(self) -> int:
        if self.response is None:
            return 0
        return self.response.input_tokens + self.response.output_tokens


class Gateway:
    """Routes inference requests to configured providers.

    Usage:
        gateway = Gateway(default_provider="mock")
        gateway.configure_provider("mock", default_response="Hello!")
        gateway.configure_provider("openai", api_key="sk-...")
        response = await gateway.infer(request)
    """

    def __init__(
        self,
        default_provider: str | ModelProvider | None = None,
        retry: RetryStrategy | None = None,
        history_size: int = 10000,
        on_before_call: Callable[[InferenceRequest], None] | None = None,
        on_after_call: Callable[[InferenceRequest, InferenceResponse], None] | None = None,
    ):
        """Create gateway.

        Args:
            default_provider: Provider for agents that do not name one.
                Defaults to the first provider configured.
            retry: Optional retry policy for transient provider failures.
            history_size: Number of CallRecords kept.
            on_before_call: Hook run before each call.
            on_after_call: Hook run after each successful call.
        """
        self._providers: dict[str, BaseProvider] = {}
        self._default = _provider_name(default_provider) if default_provider else None
        self._retry = retry
        self._call_history: deque[CallRecord] = deque(maxlen=history_size)
        self._on_before_call = on_before_call
        self._on_after_call = on_after_call
        self._lock = threading.Lock()

    # =========================================================================
    # Provider configuration
    # =========================================================================

    def configure_provider(self, provider: str | ModelProvider, **kwargs: Any) -> "Gateway":
        """Create and register a provider by name.

        Raises:
            ProviderNotFoundError: If the provider name is unknown.
        """
        name = _provider_name(provider)
        return self.add_provider(ProviderFactory.create(name, **kwargs), name=name)

    def add_provider(self, provider: BaseProvider, name: str | None = None) -> "Gateway":
        """Register an already built provider instance."""
        name = name or provider.name
        with self._lock:
            self._providers[name] = provider
            if self._default is None:
                self._default = name
        logger.debug(f"Configured provider '{name}'")
        return self

    def get_provider(self, provider: str | ModelProvider) -> BaseProvider:
        name = _provider_name(provider)
        with self._lock:
            if name not in self._providers:
                raise ProviderNotFoundError(name)
            return self._providers[name]

    @property
    def providers(self) -> list[str]:
        with self._lock:
            return list(self._providers)

    @property
    def default_provider(self) -> str | None:
        return self._default

    # =========================================================================
    # Inference
    # =========================================================================

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        """Answer one inference request.

        Raises:
            ProviderNotFoundError: If the requested provider is not configured.
            InferenceError: If the provider call fails (after retries, if any).
        """
        provider = self._resolve(request)
        model = provider.resolve_model(request)

        if self._on_before_call:
            self._on_before_call(request)

        try:
            if self._retry is not None:
                response = await self._retry.execute(provider.infer, request)
            else:
                response = await provider.infer(request)
        except RetryExhaustedError as e:
            error = e.last_error
            if not isinstance(error, InferenceError):
                error = InferenceError(provider.name, str(e), transient=True, original_error=e)
            self._record(CallRecord(request.agent_id, provider.name, model, error=str(error)))
            raise error from e
        except InferenceError as e:
            self._record(CallRecord(request.agent_id, provider.name, model, error=str(e)))
            raise
        except Exception as e:
            wrapped = provider.wrap_error(e)
            self._record(CallRecord(request.agent_id, provider.name, model, error=str(wrapped)))
            raise wrapped from e

        self._record(CallRecord(request.agent_id, provider.name, model, response=response))
        if self._on_after_call:
            self._on_after_call(request, response)
        return response

    def _resolve(self, request: InferenceRequest) -> BaseProvider:
        if request.model is not None and request.model.provider is not None:
            return self.get_provider(request.model.provider)
        if self._default is None:
            raise ProviderNotFoundError("<default>")
        return self.get_provider(self._default)

    # =========================================================================
    # History and metrics
    # =========================================================================

    def _record(self, record: CallRecord) -> None:
        with self._lock:
            self._call_history.append(record)
        if record.error:
            logger.warning(f"Inference failed for agent '{record.agent_id}' via {record.provider}: {record.error}")

    def get_call_history(self, agent_id: str | None = None, limit: int | None = None) -> list[CallRecord]:
        """Most recent calls, newest last."""
        with self._lock:
            records = list(self._call_history)
        if agent_id is not None:
            records = [r for r in records if r.agent_id == agent_id]
        if limit is not None:
            records = records[-limit:]
        return records

    def get_metrics(self) -> dict[str, Any]:
        """Aggregate metrics over the recorded history."""
        with self._lock:
            records = list(self._call_history)

        by_agent: dict[str, dict[str, float]] = {}
        for r in records:
            entry = by_agent.setdefault(r.agent_id, {"calls": 0, "errors": 0, "tokens": 0, "cost": 0.0})
            entry["calls"] += 1
            entry["errors"] += 0 if r.success else 1
            entry["tokens"] += r.tokens
            entry["cost"] += r.cost

        successful = [r for r in records if r.success]
        return {
            "total_calls": len(records),
            "failed_calls": len(records) - len(successful),
            "total_tokens": sum(r.tokens for r in records),
            "total_cost": sum(r.cost for r in records),
            "avg_latency_ms": (
                sum(r.latency_ms for r in successful) / len(successful) if successful else 0.0
            ),
            "by_agent": by_agent,
            "providers": {name: p.get_metrics() for name, p in list(self._providers.items())},
        }

    def clear_history(self) -> None:
        with self._lock:
            self._call_history.clear()


def _provider_name(provider: str | ModelProvider) -> str:
    return provider.value if isinstance(provider, ModelProvider) else provider
