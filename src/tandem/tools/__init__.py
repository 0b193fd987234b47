"""Tool registration, validation and execution for Tandem."""

from .builtin import BUILTIN_TOOLS, evaluate_arithmetic, register_builtin_tools
from .executor import ToolExecutor
from .registry import ToolRegistry
from .schema import SchemaValidator

__all__ = [
    "BUILTIN_TOOLS",
    "SchemaValidator",
    "ToolExecutor",
    "ToolRegistry",
    "evaluate_arithmetic",
    "register_builtin_tools",
]
