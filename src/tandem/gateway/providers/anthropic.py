"""Anthropic provider implementation for the Tandem gateway."""

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


class AnthropicProvider(BaseProvider):
    """Anthropic Messages API provider.

    Example:
        provider = AnthropicProvider(api_key="sk-ant-...")
        response = await provider.infer(request)
    """

    provider_type = ModelProvider.ANTHROPIC

    default_model = "claude-3-5-sonnet-latest"

    # Pricing per 1M tokens (input, output)
    pricing = {
        "claude-3-5-haiku": (0.8, 4.0),
        "claude-3-5-sonnet": (3.0, 15.0),
        "claude-3-opus": (15.0, 75.0),
        "claude-3-sonnet": (3.0, 15.0),
        "claude-3-haiku": (0.25, 1.25),
    }

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_tokens: int = 4096,
        default_model: str | None = None,
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key. If None, the SDK reads ANTHROPIC_API_KEY.
            base_url: Optional custom base URL.
            timeout: Request timeout in seconds.
            max_tokens: Used when an agent does not set max_tokens (required by the API).
            default_model: Model used when an agent does not name one.
        """
        super().__init__()
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._max_tokens = max_tokens
        if default_model:
            self.default_model = default_model
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError:
                raise ImportError(
                    "Anthropic package not installed. Install with: pip install tandem-agents[anthropic]"
                )

            kwargs: dict[str, Any] = {"timeout": self._timeout}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            if self._base_url:
                kwargs["base_url"] = self._base_url

            self._client = AsyncAnthropic(**kwargs)

        return self._client

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        """Send one Messages API request.

        Raises:
            InferenceError: If the request fails.
        """
        client = self._get_client()
        model = self.resolve_model(request)
        start = time.perf_counter()

        kwargs: dict[str, Any] = {
            "model": model,
            "system": request.system_instructions,
            "messages": self.format_messages(request),
            "max_tokens": self._max_tokens,
        }
        if request.model is not None:
            if request.model.temperature is not None:
                # Anthropic caps temperature at 1.0
                kwargs["temperature"] = min(request.model.temperature, 1.0)
            if request.model.max_tokens is not None:
                kwargs["max_tokens"] = request.model.max_tokens
        if request.available_tool_schemas:
            kwargs["tools"] = self.format_tools(request.available_tool_schemas)

        try:
            response = await client.messages.create(**kwargs)
        except Exception as e:
            self.record_error()
            raise self.wrap_error(e) from e

        text_parts: list[str] = []
        requests: list[ToolCallRequest] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                requests.append(
                    ToolCallRequest(call_id=block.id, name=block.name, arguments=dict(block.input or {}))
                )

        input_tokens = response.usage.input_tokens if response.usage else 0
        output_tokens = response.usage.output_tokens if response.usage else 0

        result = InferenceResponse(
            content="".join(text_parts) or None,
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
        """Convert turns to Anthropic messages.

        Tool results travel as ``tool_result`` blocks in a user message, and
        consecutive messages with the same role are merged because the API
        requires alternating roles.
        """
        messages: list[dict[str, Any]] = []
        for turn in request.turns:
            role, blocks = self._format_turn(turn)
            if messages and messages[-1]["role"] == role:
                messages[-1]["content"].extend(blocks)
            else:
                messages.append({"role": role, "content": blocks})
        return messages

    def _format_turn(self, turn: ConversationTurn) -> tuple[str, list[dict[str, Any]]]:
        if turn.role == TurnRole.TOOL:
            return "user", [
                {
                    "type": "tool_result",
                    "tool_use_id": result.call_id,
                    "content": result.content_for_model(),
                    "is_error": not result.success,
                }
                for result in turn.tool_results
            ]

        blocks: list[dict[str, Any]] = []
        if turn.text:
            blocks.append({"type": "text", "text": turn.text})
        if turn.role == TurnRole.ASSISTANT:
            blocks.extend(
                {"type": "tool_use", "id": call.call_id, "name": call.name, "input": call.arguments}
                for call in turn.tool_calls
            )
            return "assistant", blocks
        return "user", blocks

    def format_tools(self, schemas: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {
                "name": schema["name"],
                "description": schema.get("description", ""),
                "input_schema": schema.get("parameters", {"type": "object", "properties": {}}),
            }
            for schema in schemas
        ]
