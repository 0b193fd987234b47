"""Tandem - bounded multi-agent workflows.

Register agents and tools, then compose them:

    from tandem import Tandem

    t = Tandem()
    result = await t.sequential(["research-agent", "creative-agent"], "Write about tides")

Lower-level building blocks (AgentRegistry, ToolExecutor, AgentExecutor,
LoopController, WorkflowEngine, Gateway) are exported for custom wiring.
"""

from .client import Tandem, run_sync
from .config import TandemSettings
from .control import LoopBudget, LoopLimits, RetryConfig, RetryStrategy, current_depth, nesting_guard
from .exceptions import (
    AgentNotFoundError,
    AmbiguousRouteError,
    ConfigurationError,
    DuplicateAgentError,
    DuplicateToolError,
    InferenceError,
    NestingLimitExceededError,
    NoRouteMatchedError,
    ProviderNotFoundError,
    RetryExhaustedError,
    TandemError,
    ToolAccessDeniedError,
    ToolError,
    ToolHandlerError,
    ToolNotFoundError,
    ToolSchemaError,
    ToolTimeoutError,
    ToolValidationError,
    WorkflowError,
)
from .gateway import Gateway, MockProvider, ProviderFactory
from .registry import AgentRegistry, register_default_agents
from .tools import SchemaValidator, ToolExecutor, ToolRegistry, register_builtin_tools
from .types import (
    AgentDefinition,
    BranchOutput,
    ConversationTurn,
    EvaluationResult,
    InferenceRequest,
    InferenceResponse,
    LoopOutcome,
    LoopState,
    ModelConfig,
    ModelProvider,
    RoundRecord,
    StepEvent,
    StepKind,
    StepResult,
    ToolCallRequest,
    ToolCallResult,
    ToolDefinition,
    ToolErrorKind,
    TurnRole,
    WorkflowConfig,
    WorkflowPattern,
    WorkflowResult,
    WorkflowStatus,
)
from .utils import StructuredLogger, configure_logging, get_logger
from .workflow import (
    AgentExecutor,
    LoopController,
    WorkflowEngine,
    WorkflowRun,
    keyword_stop_condition,
    parse_evaluation,
    route_by_capability,
    route_by_keywords,
    stability_stop_condition,
    workflow_tool,
)

__version__ = "0.1.0"

__all__ = [
    # Client
    "Tandem",
    "TandemSettings",
    "run_sync",
    # Core
    "AgentExecutor",
    "AgentRegistry",
    "Gateway",
    "LoopController",
    "MockProvider",
    "ProviderFactory",
    "SchemaValidator",
    "ToolExecutor",
    "ToolRegistry",
    "WorkflowEngine",
    "WorkflowRun",
    "register_builtin_tools",
    "register_default_agents",
    "workflow_tool",
    # Control
    "LoopBudget",
    "LoopLimits",
    "RetryConfig",
    "RetryStrategy",
    "current_depth",
    "nesting_guard",
    # Routing, evaluation and stop conditions
    "keyword_stop_condition",
    "parse_evaluation",
    "route_by_capability",
    "route_by_keywords",
    "stability_stop_condition",
    # Types
    "AgentDefinition",
    "BranchOutput",
    "ConversationTurn",
    "EvaluationResult",
    "InferenceRequest",
    "InferenceResponse",
    "LoopOutcome",
    "LoopState",
    "ModelConfig",
    "ModelProvider",
    "RoundRecord",
    "StepEvent",
    "StepKind",
    "StepResult",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolDefinition",
    "ToolErrorKind",
    "TurnRole",
    "WorkflowConfig",
    "WorkflowPattern",
    "WorkflowResult",
    "WorkflowStatus",
    # Exceptions
    "AgentNotFoundError",
    "AmbiguousRouteError",
    "ConfigurationError",
    "DuplicateAgentError",
    "DuplicateToolError",
    "InferenceError",
    "NestingLimitExceededError",
    "NoRouteMatchedError",
    "ProviderNotFoundError",
    "RetryExhaustedError",
    "TandemError",
    "ToolAccessDeniedError",
    "ToolError",
    "ToolHandlerError",
    "ToolNotFoundError",
    "ToolSchemaError",
    "ToolTimeoutError",
    "ToolValidationError",
    "WorkflowError",
    # Logging
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
