"""Google Gemini provider implementation for the Tandem gateway."""

import asyncio
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


class GeminiProvider(BaseProvider):
    """Google Gemini provider.

    Example:
        provider = GeminiProvider(api_key="...")
        response = await provider.infer(request)
    """

    provider_type = ModelProvider.GEMINI

    default_model = "gemini-1.5-flash"

    # Pricing per 1M tokens (input, output)
    pricing = {
        "gemini-1.5-flash": (0.075, 0.30),
        "gemini-1.5-pro": (1.25, 5.0),
        "gemini-2.0-flash": (0.10, 0.40),
    }

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 60.0,
        default_model: str | None = None,
    ):
        """Initialize Gemini provider.

        Args:
            api_key: Google API key. If None, the SDK reads GOOGLE_API_KEY.
            timeout: Request timeout in seconds.
            default_model: Model used when an agent does not name one.
        """
        super().__init__()
        self._api_key = api_key
        self._timeout = timeout
        if default_model:
            self.default_model = default_model
        self._genai: Any = None
        self._model_instances: dict[tuple[str, str], Any] = {}

    def _get_client(self, model: str, system_instructions: str) -> Any:
        """Lazily initialize and return a GenerativeModel per (model, instructions)."""
        if self._genai is None:
            try:
                import google.generativeai as genai
            except ImportError:
                raise ImportError(
                    "Google Generative AI package not installed. "
                    "Install with: pip install tandem-agents[google]"
                )
            if self._api_key:
                genai.configure(api_key=self._api_key)
            self._genai = genai

        key = (model, system_instructions)
        if key not in self._model_instances:
            self._model_instances[key] = self._genai.GenerativeModel(
                model, system_instruction=system_instructions
            )
        return self._model_instances[key]

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        """Send one generate_content request.

        Raises:
            InferenceError: If the request fails.
        """
        model_name = self.resolve_model(request)
        start = time.perf_counter()

        generation_config: dict[str, Any] = {}
        if request.model is not None:
            if request.model.temperature is not None:
                generation_config["temperature"] = request.model.temperature
            if request.model.max_tokens is not None:
                generation_config["max_output_tokens"] = request.model.max_tokens
        tools = self.format_tools(request.available_tool_schemas) if request.available_tool_schemas else None

        try:
            model = self._get_client(model_name, request.system_instructions)
            contents = self.format_messages(request)
            # The SDK call is blocking; keep it off the event loop.
            response = await asyncio.to_thread(
                model.generate_content,
                contents,
                generation_config=generation_config or None,
                tools=tools,
                request_options={"timeout": self._timeout},
            )
        except ImportError:
            raise
        except Exception as e:
            self.record_error()
            raise self.wrap_error(e) from e

        text_parts: list[str] = []
        requests: list[ToolCallRequest] = []
        if response.candidates:
            for part in response.candidates[0].content.parts:
                call = getattr(part, "function_call", None)
                if call is not None and getattr(call, "name", ""):
                    requests.append(
                        ToolCallRequest(
                            call_id=f"call_{len(requests)}_{call.name}",
                            name=call.name,
                            arguments=dict(call.args) if call.args else {},
                        )
                    )
                elif getattr(part, "text", ""):
                    text_parts.append(part.text)

        content = "".join(text_parts)
        usage = getattr(response, "usage_metadata", None)
        if usage:
            input_tokens = getattr(usage, "prompt_token_count", 0) or 0
            output_tokens = getattr(usage, "candidates_token_count", 0) or 0
        else:
            # Rough estimate: ~4 chars per token
            input_tokens = sum(len(t.text) for t in request.turns) // 4
            output_tokens = len(content) // 4

        result = InferenceResponse(
            content=content or None,
            tool_call_requests=requests,
            model=model_name,
            provider=self.name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.calculate_cost(model_name, input_tokens, output_tokens),
            latency_ms=self.elapsed_ms(start),
        )
        self.record_metrics(result)
        return result

    def format_messages(self, request: InferenceRequest) -> list[dict[str, Any]]:
        """Convert turns to Gemini ``contents``."""
        contents: list[dict[str, Any]] = []
        for turn in request.turns:
            role, parts = self._format_turn(turn)
            if contents and contents[-1]["role"] == role:
                contents[-1]["parts"].extend(parts)
            else:
                contents.append({"role": role, "parts": parts})
        return contents

    def _format_turn(self, turn: ConversationTurn) -> tuple[str, list[Any]]:
        if turn.role == TurnRole.TOOL:
            return "user", [
                {
                    "function_response": {
                        "name": result.tool_name,
                        "response": {"result": result.content_for_model()},
                    }
                }
                for result in turn.tool_results
            ]
        parts: list[Any] = [turn.text] if turn.text else []
        if turn.role == TurnRole.ASSISTANT:
            parts.extend(
                {"function_call": {"name": call.name, "args": call.arguments}} for call in turn.tool_calls
            )
            return "model", parts
        return "user", parts

    def format_tools(self, schemas: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {
                "function_declarations": [
                    {
                        "name": schema["name"],
                        "description": schema.get("description", ""),
                        "parameters": schema.get("parameters", {"type": "object", "properties": {}}),
                    }
                    for schema in schemas
                ]
            }
        ]
