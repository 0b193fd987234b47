"""Built-in tools.

``get_weather`` and ``search_web`` return canned data and make no network
calls. ``calculate_expression`` evaluates plain arithmetic without eval().
"""

import ast
import hashlib
import math
import operator
import random
from datetime import datetime, timezone
from typing import Any, Callable

from ..exceptions import ToolHandlerError
from ..types import ToolDefinition
from .registry import ToolRegistry

_BINARY_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

MAX_EXPRESSION_LENGTH = 200
MAX_EXPONENT = 100


def evaluate_arithmetic(expression: str) -> float | int:
    """Evaluate an arithmetic expression of numbers, + - * / // % ** and parentheses.

    Raises:
        ValueError: If the expression contains anything else or does not
            produce a finite number.
    """
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ValueError(f"expression longer than {MAX_EXPRESSION_LENGTH} characters")
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ValueError(f"invalid expression: {e.msg}") from e

    result = _eval_node(tree.body)
    if isinstance(result, float) and not math.isfinite(result):
        raise ValueError("result is not a finite number")
    return result


def _eval_node(node: ast.AST) -> float | int:
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError(f"exponent larger than {MAX_EXPONENT}")
        try:
            return _BINARY_OPS[type(node.op)](left, right)
        except ZeroDivisionError as e:
            raise ValueError("division by zero") from e
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError(f"unsupported element: {type(node).__name__}")


def calculate_expression(args: dict[str, Any]) -> dict[str, Any]:
    """Calculate the result of an arithmetic expression."""
    expression = args["expression"]
    try:
        result = evaluate_arithmetic(expression)
    except ValueError as e:
        raise ToolHandlerError("calculate_expression", str(e), e) from e
    return {
        "expression": expression,
        "result": result,
        "formatted_result": f"{result:.2f}" if isinstance(result, float) else str(result),
    }


_CONDITIONS = ("Sunny", "Cloudy", "Rainy", "Partly Cloudy", "Stormy")


def get_weather(args: dict[str, Any]) -> dict[str, Any]:
    """Get (mock) current weather for a location."""
    location = args["location"]
    # Same location, same weather.
    seed = int(hashlib.sha256(location.lower().encode()).hexdigest()[:8], 16)
    rng = random.Random(seed)
    condition = rng.choice(_CONDITIONS)
    return {
        "location": location,
        "temperature": rng.randint(50, 90),
        "unit": "fahrenheit",
        "condition": condition,
        "humidity": rng.randint(40, 80),
        "wind_speed": rng.randint(5, 25),
        "forecast": {"today": condition, "tomorrow": rng.choice(_CONDITIONS)},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def search_web(args: dict[str, Any]) -> dict[str, Any]:
    """Search the web (mock results)."""
    query = args["query"]
    slug = "-".join(query.lower().split())
    results = [
        {
            "title": f"Understanding {query} - Comprehensive Guide",
            "url": f"https://example.com/guide/{slug}",
            "snippet": f"A comprehensive guide to {query}, including best practices.",
            "relevance": 0.95,
        },
        {
            "title": f"{query} - Wikipedia",
            "url": f"https://wikipedia.org/wiki/{'_'.join(query.split())}",
            "snippet": f"History, development, and current state of {query}.",
            "relevance": 0.88,
        },
        {
            "title": f"Latest News about {query}",
            "url": f"https://news.example.com/{slug}",
            "snippet": f"Recent updates and discussions about {query}.",
            "relevance": 0.82,
        },
    ]
    limit = args.get("max_results", len(results))
    return {"query": query, "results_count": min(limit, len(results)), "results": results[:limit]}


BUILTIN_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="get_weather",
        description="Get current weather information for a location.",
        parameters={
            "type": "object",
            "properties": {
                "location": {"type": "string", "minLength": 1, "description": "City name or location"},
            },
            "required": ["location"],
            "additionalProperties": False,
        },
        handler=get_weather,
        tags=("weather", "mock"),
    ),
    ToolDefinition(
        name="calculate_expression",
        description="Calculate the result of an arithmetic expression (+, -, *, /, //, %, **, parentheses).",
        parameters={
            "type": "object",
            "properties": {
                "expression": {"type": "string", "minLength": 1, "description": "e.g. '(10 * 5) - 3'"},
            },
            "required": ["expression"],
            "additionalProperties": False,
        },
        handler=calculate_expression,
        tags=("math",),
    ),
    ToolDefinition(
        name="search_web",
        description="Search the web for a topic. Returns titles, URLs and snippets.",
        parameters={
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1},
                "max_results": {"type": "integer", "minimum": 1, "maximum": 10},
            },
            "required": ["query"],
            "additionalProperties": False,
        },
        handler=search_web,
        tags=("search", "mock"),
    ),
)


def register_builtin_tools(registry: ToolRegistry) -> list[str]:
    """Register the built-in tools that are not already present."""
    registered = []
    for tool in BUILTIN_TOOLS:
        if not registry.has(tool.name):
            registry.register(tool)
            registered.append(tool.name)
    return registered
