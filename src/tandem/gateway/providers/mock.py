"""Mock provider for running Tandem without external API calls."""

import asyncio
import inspect
import random
import time
from collections import defaultdict, deque
from typing import Any, Callable, Union

from ...exceptions import InferenceError
from ...types import InferenceRequest, InferenceResponse, ModelProvider, ToolCallRequest, TurnRole
from .base import BaseProvider

ScriptItem = Union[str, InferenceResponse, ToolCallRequest, list[ToolCallRequest], Exception]


class MockProvider(BaseProvider):
    """Mock inference provider for tests, demos and development.

    Responses are chosen in this order:

    1. the next scripted item queued for the calling agent (``script``);
    2. ``response_generator(request)`` if set;
    3. the first ``responses`` keyword found in the latest user turn;
    4. ``default_response``.

    A scripted item may be text, a ready InferenceResponse, one or more
    ToolCallRequests (the reply then asks for those tools), or an
    exception, which is raised from ``infer``.

    Example:
        provider = MockProvider(default_response="done")
        provider.script(
            "researcher",
            [ToolCallRequest(name="search_web", arguments={"query": "asyncio"})],
            "asyncio is a library for concurrent code.",
        )
    """

    provider_type = ModelProvider.MOCK
    default_model = "mock-model"

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        default_response: str = "This is a mock response from Tandem MockProvider.",
        latency_ms: float = 0.0,
        tokens_per_call: tuple[int, int] = (100, 50),
        cost_per_call: float = 0.0,
        fail_rate: float = 0.0,
        response_generator: Callable[[InferenceRequest], Any] | None = None,
        seed: int | None = None,
    ):
        """Initialize mock provider.

        Args:
            responses: Keyword to response text.
            default_response: Used when nothing else matches.
            latency_ms: Simulated latency for every call.
            tokens_per_call: (input_tokens, output_tokens) reported per call.
            cost_per_call: Reported cost per call.
            fail_rate: Probability (0.0-1.0) of a transient InferenceError.
            response_generator: Function (sync or async) returning a ScriptItem.
            seed: Seed for the failure RNG.
        """
        super().__init__()
        self._responses = dict(responses or {})
        self._default_response = default_response
        self._latency_ms = latency_ms
        self._agent_latency_ms: dict[str, float] = {}
        self._tokens_per_call = tokens_per_call
        self._cost_per_call = cost_per_call
        self._fail_rate = fail_rate
        self._response_generator = response_generator
        self._rng = random.Random(seed)
        self._scripts: dict[str, deque[ScriptItem]] = defaultdict(deque)
        self._call_log: list[InferenceRequest] = []

    @property
    def call_log(self) -> list[InferenceRequest]:
        """Every request received, in order."""
        return self._call_log

    def calls_for(self, agent_id: str) -> list[InferenceRequest]:
        return [r for r in self._call_log if r.agent_id == agent_id]

    def script(self, agent_id: str, *items: ScriptItem) -> "MockProvider":
        """Queue replies for one agent. Each call consumes one item."""
        self._scripts[agent_id].extend(items)
        return self

    def remaining(self, agent_id: str) -> int:
        return len(self._scripts.get(agent_id, ()))

    def set_response(self, keyword: str, response: str) -> None:
        self._responses[keyword] = response

    def set_generator(self, generator: Callable[[InferenceRequest], Any]) -> None:
        self._response_generator = generator

    def set_latency(self, agent_id: str, latency_ms: float) -> None:
        """Override the simulated latency for one agent."""
        self._agent_latency_ms[agent_id] = latency_ms

    def reset(self) -> None:
        self._scripts.clear()
        self._call_log.clear()
        self.reset_metrics()

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        self._call_log.append(request)
        start = time.perf_counter()

        latency_ms = self._agent_latency_ms.get(request.agent_id, self._latency_ms)
        if latency_ms > 0:
            await asyncio.sleep(latency_ms / 1000)

        if self._fail_rate > 0 and self._rng.random() < self._fail_rate:
            self.record_error()
            raise InferenceError(self.name, "Simulated failure", transient=True)

        item = await self._next_item(request)
        if isinstance(item, Exception):
            self.record_error()
            raise item

        response = self._to_response(item, request)
        response.latency_ms = self.elapsed_ms(start)
        self.record_metrics(response)
        return response

    async def _next_item(self, request: InferenceRequest) -> ScriptItem:
        queue = self._scripts.get(request.agent_id)
        if queue:
            return queue.popleft()

        if self._response_generator is not None:
            item = self._response_generator(request)
            if inspect.isawaitable(item):
                item = await item
            return item

        prompt = _latest_user_text(request).lower()
        for keyword, response in self._responses.items():
            if keyword.lower() in prompt:
                return response
        return self._default_response

    def _to_response(self, item: ScriptItem, request: InferenceRequest) -> InferenceResponse:
        if isinstance(item, InferenceResponse):
            return item.model_copy()

        input_tokens, output_tokens = self._tokens_per_call
        base = {
            "model": self.resolve_model(request),
            "provider": self.name,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cost": self._cost_per_call,
        }
        if isinstance(item, ToolCallRequest):
            return InferenceResponse(tool_call_requests=[item], **base)
        if isinstance(item, list):
            return InferenceResponse(tool_call_requests=list(item), **base)
        return InferenceResponse(content=str(item), **base)


def _latest_user_text(request: InferenceRequest) -> str:
    for turn in reversed(request.turns):
        if turn.role == TurnRole.USER:
            return turn.text
    return ""
