"""OpenAI provider implementation for the Tandem gateway."""

import json
import time
from typing import Any

from ...types import (
    ConversationTurn,
    InferenceRequest,
    InferenceResponse,
    ModelProvider,
    ToolCallRequest,
    TurnRole,
)
from .base import BaseProvider


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions provider.

    Example:
        provider = OpenAIProvider(api_key="sk-...")
        response = await provider.infer(request)
    """

    provider_type = ModelProvider.OPENAI

    default_model = "gpt-4o"

    # Pricing per 1M tokens (input, output)
    pricing = {
        "gpt-4o-mini": (0.15, 0.60),
        "gpt-4o": (2.5, 10.0),
        "gpt-4-turbo": (10.0, 30.0),
        "gpt-4": (30.0, 60.0),
        "gpt-3.5-turbo": (0.5, 1.5),
        "o1-mini": (3.0, 12.0),
        "o1": (15.0, 60.0),
    }

    def __init__(
        self,
        api_key: str | None = None,
        organization: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        default_model: str | None = None,
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key. If None, the SDK reads OPENAI_API_KEY.
            organization: Optional organization ID.
            base_url: Optional custom base URL (Azure, proxies, compatible APIs).
            timeout: Request timeout in seconds.
            default_model: Model used when an agent does not name one.
        """
        super().__init__()
        self._api_key = api_key
        self._organization = organization
        self._base_url = base_url
        self._timeout = timeout
        if default_model:
            self.default_model = default_model
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                raise ImportError(
                    "OpenAI package not installed. Install with: pip install tandem-agents[openai]"
                )

            kwargs: dict[str, Any] = {"timeout": self._timeout}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            if self._organization:
                kwargs["organization"] = self._organization
            if self._base_url:
                kwargs["base_url"] = self._base_url

            self._client = AsyncOpenAI(**kwargs)

        return self._client

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        """Send one chat completion request.

        Raises:
            InferenceError: If the request fails.
        """
        client = self._get_client()
        model = self.resolve_model(request)
        start = time.perf_counter()

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": self.format_messages(request),
        }
        if request.model is not None:
            if request.model.temperature is not None:
                kwargs["temperature"] = request.model.temperature
            if request.model.max_tokens is not None:
                kwargs["max_tokens"] = request.model.max_tokens
        if request.available_tool_schemas:
            kwargs["tools"] = self.format_tools(request.available_tool_schemas)

        try:
            response = await client.chat.completions.create(**kwargs)
        except Exception as e:
            self.record_error()
            raise self.wrap_error(e) from e

        message = response.choices[0].message
        requests = [
            ToolCallRequest(
                call_id=tc.id,
                name=tc.function.name,
                arguments=_decode_arguments(tc.function.arguments),
            )
            for tc in (message.tool_calls or [])
        ]

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        result = InferenceResponse(
            content=message.content,
            tool_call_requests=requests,
            model=model,
            provider=self.name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.calculate_cost(model, input_tokens, output_tokens),
            latency_ms=self.elapsed_ms(start),
            raw_response=response.model_dump() if hasattr(response, "model_dump") else None,
        )
        self.record_metrics(result)
        return result

    def format_messages(self, request: InferenceRequest) -> list[dict[str, Any]]:
        """Convert conversation turns to OpenAI chat messages."""
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": request.system_instructions}
        ]
        for turn in request.turns:
            messages.extend(self._format_turn(turn))
        return messages

    def _format_turn(self, turn: ConversationTurn) -> list[dict[str, Any]]:
        if turn.role == TurnRole.TOOL:
            return [
                {
                    "role": "tool",
                    "tool_call_id": result.call_id,
                    "content": result.content_for_model(),
                }
                for result in turn.tool_results
            ]

        if turn.role == TurnRole.ASSISTANT and turn.tool_calls:
            return [
                {
                    "role": "assistant",
                    "content": turn.text or None,
                    "tool_calls": [
                        {
                            "id": call.call_id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments),
                            },
                        }
                        for call in turn.tool_calls
                    ],
                }
            ]

        return [{"role": turn.role.value, "content": turn.text}]

    def format_tools(self, schemas: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [{"type": "function", "function": schema} for schema in schemas]


def _decode_arguments(raw: str | None) -> dict[str, Any]:
    # Malformed arguments are passed through so schema validation reports them.
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {"_raw_arguments": raw}
    return value if isinstance(value, dict) else {"_raw_arguments": value}
