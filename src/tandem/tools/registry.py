"""Tool registry.

Stores immutable ToolDefinitions, checks each parameter schema once at
registration, and renders tool schemas for inference providers.
"""

import logging
import threading
from typing import Any, Callable, Iterable

from ..exceptions import DuplicateToolError, ToolNotFoundError, ToolSchemaError
from ..types import ToolDefinition
from .schema import SchemaValidator

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for tool definitions with schema validation.

    Example:
        registry = ToolRegistry()

        @registry.tool(
            description="Get the weather for a city",
            parameters={
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        )
        def get_weather(args):
            return {"city": args["city"], "temp_c": 21}
    """

    def __init__(self, validator: SchemaValidator | None = None):
        self._tools: dict[str, ToolDefinition] = {}
        self._validator = validator or SchemaValidator()
        self._lock = threading.RLock()

    @property
    def validator(self) -> SchemaValidator:
        return self._validator

    def register(
        self,
        tool: ToolDefinition | str,
        handler: Callable[[dict[str, Any]], Any] | None = None,
        description: str = "",
        parameters: dict[str, Any] | None = None,
        tags: Iterable[str] = (),
    ) -> ToolDefinition:
        """Register a tool.

        Accepts either a ready ToolDefinition or its fields.

        Raises:
            DuplicateToolError: If the name is already registered.
            ToolSchemaError: If the parameter schema is malformed.
        """
        if not isinstance(tool, ToolDefinition):
            if handler is None:
                raise ToolSchemaError(tool, ["a handler is required"])
            kwargs: dict[str, Any] = {
                "name": tool,
                "description": description,
                "handler": handler,
                "tags": tuple(tags),
            }
            if parameters is not None:
                kwargs["parameters"] = parameters
            tool = ToolDefinition(**kwargs)

        if not tool.name.strip():
            raise ToolSchemaError(tool.name, ["tool name must not be blank"])
        problems = self._validator.check_schema(tool.parameters)
        if problems:
            raise ToolSchemaError(tool.name, problems)

        with self._lock:
            if tool.name in self._tools:
                raise DuplicateToolError(tool.name)
            self._tools[tool.name] = tool

        logger.debug(f"Registered tool '{tool.name}'")
        return tool

    def tool(
        self,
        name: str | None = None,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
        tags: Iterable[str] = (),
    ) -> Callable[[Callable[[dict[str, Any]], Any]], Callable[[dict[str, Any]], Any]]:
        """Decorator form of ``register``. Returns the handler unchanged."""

        def decorator(func: Callable[[dict[str, Any]], Any]) -> Callable[[dict[str, Any]], Any]:
            self.register(
                name or func.__name__,
                handler=func,
                description=description if description is not None else (func.__doc__ or "").strip(),
                parameters=parameters,
                tags=tags,
            )
            return func

        return decorator

    def unregister(self, name: str) -> None:
        with self._lock:
            if name not in self._tools:
                raise ToolNotFoundError(name)
            del self._tools[name]

    def get(self, name: str) -> ToolDefinition | None:
        with self._lock:
            return self._tools.get(name)

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def names(self) -> list[str]:
        with self._lock:
            return list(self._tools)

    def get_all(self) -> list[ToolDefinition]:
        with self._lock:
            return list(self._tools.values())

    def get_by_tags(self, tags: Iterable[str]) -> list[ToolDefinition]:
        """Tools carrying any of ``tags``."""
        wanted = set(tags)
        return [t for t in self.get_all() if wanted.intersection(t.tags)]

    def validate_arguments(self, name: str, arguments: Any) -> list[str]:
        """Validate call arguments against a registered tool's schema.

        Raises:
            ToolNotFoundError: If the tool is not registered.
        """
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return self._validator.validate(arguments, tool.parameters)

    def schemas(self, tool_names: Iterable[str] | None = None) -> list[dict[str, Any]]:
        """Provider-neutral schemas, in registration order.

        Unknown names in ``tool_names`` are skipped.
        """
        return [t.schema_for_inference() for t in self._select(tool_names)]

    def to_openai_format(self, tool_names: Iterable[str] | None = None) -> list[dict[str, Any]]:
        """Convert tools to OpenAI function calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in self._select(tool_names)
        ]

    def to_anthropic_format(self, tool_names: Iterable[str] | None = None) -> list[dict[str, Any]]:
        """Convert tools to Anthropic tool use format."""
        return [
            {"name": t.name, "description": t.description, "input_schema": t.parameters}
            for t in self._select(tool_names)
        ]

    def _select(self, tool_names: Iterable[str] | None) -> list[ToolDefinition]:
        tools = self.get_all()
        if tool_names is None:
            return tools
        wanted = set(tool_names)
        return [t for t in tools if t.name in wanted]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)
