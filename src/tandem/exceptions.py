"""Custom exceptions for Tandem."""


class TandemError(Exception):
    """Base exception for all Tandem errors."""

    pass


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(TandemError):
    """Raised when agents, tools or workflows are misconfigured.

    Configuration errors are raised before any work starts and are never
    reported as a workflow outcome.
    """

    pass


class DuplicateAgentError(ConfigurationError):
    """Raised when registering an agent id that already exists."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent '{agent_id}' is already registered")


class AgentNotFoundError(ConfigurationError):
    """Raised when an agent id is not in the registry."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent '{agent_id}' not found")


class NoRouteMatchedError(ConfigurationError):
    """Raised when a routing predicate selects no agent."""

    def __init__(self, candidates: list[str]):
        self.candidates = candidates
        super().__init__(f"No agent matched the routing predicate (candidates: {candidates})")


class AmbiguousRouteError(ConfigurationError):
    """Raised when a routing predicate selects more than one agent."""

    def __init__(self, selected: list[str]):
        self.selected = selected
        super().__init__(f"Routing predicate selected {len(selected)} agents: {selected}")


class DuplicateToolError(ConfigurationError):
    """Raised when registering a tool name that already exists."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' is already registered")


class ToolSchemaError(ConfigurationError):
    """Raised when a tool's parameter schema is malformed."""

    def __init__(self, tool_name: str, errors: list[str]):
        self.tool_name = tool_name
        self.errors = errors
        super().__init__(f"Invalid parameter schema for tool '{tool_name}': {'; '.join(errors)}")


class ProviderNotFoundError(ConfigurationError):
    """Raised when a requested provider is not configured."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Provider not found or not configured: {provider}")


# =============================================================================
# Tool Exceptions
# =============================================================================


class ToolError(TandemError):
    """Base class for per-call tool failures."""

    kind = "handler"

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(message)


class ToolValidationError(ToolError):
    """Raised when tool arguments do not satisfy the tool's schema."""

    kind = "validation"

    def __init__(self, tool_name: str, errors: list[str]):
        self.errors = errors
        super().__init__(tool_name, f"Invalid arguments for tool '{tool_name}': {'; '.join(errors)}")


class ToolTimeoutError(ToolError):
    """Raised when a tool handler overruns its timeout."""

    kind = "timeout"

    def __init__(self, tool_name: str, timeout: float):
        self.timeout = timeout
        super().__init__(tool_name, f"Tool '{tool_name}' timed out after {timeout:.2f}s")


class ToolHandlerError(ToolError):
    """Raised by (or on behalf of) a tool handler that failed."""

    kind = "handler"

    def __init__(self, tool_name: str, message: str, original_error: Exception | None = None):
        self.original_error = original_error
        super().__init__(tool_name, f"Tool '{tool_name}' failed: {message}")


class ToolNotFoundError(ToolError):
    """Raised when a tool call names an unregistered tool."""

    kind = "not_found"

    def __init__(self, tool_name: str):
        super().__init__(tool_name, f"Tool not found: {tool_name}")


class ToolAccessDeniedError(ToolError):
    """Raised when an agent calls a tool it is not authorized for."""

    kind = "access_denied"

    def __init__(self, tool_name: str, agent_id: str | None = None):
        self.agent_id = agent_id
        who = f"Agent '{agent_id}'" if agent_id else "Caller"
        super().__init__(tool_name, f"{who} is not authorized to use tool '{tool_name}'")


# =============================================================================
# Inference Exceptions
# =============================================================================


class InferenceError(TandemError):
    """Raised when the inference collaborator fails.

    ``transient`` marks failures that a caller may choose to retry
    (timeouts, rate limits, server errors). The loop never retries.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        transient: bool = False,
        original_error: Exception | None = None,
    ):
        self.provider = provider
        self.transient = transient
        self.original_error = original_error
        super().__init__(f"[{provider}] {message}")


# =============================================================================
# Workflow Exceptions
# =============================================================================


class WorkflowError(TandemError):
    """Raised when workflow execution fails outside of normal outcomes."""

    def __init__(self, workflow_id: str, message: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}': {message}")


class NestingLimitExceededError(WorkflowError):
    """Raised when workflows nest deeper than allowed."""

    def __init__(self, workflow_id: str, depth: int, limit: int):
        self.depth = depth
        self.limit = limit
        super().__init__(workflow_id, f"nesting depth {depth} exceeds limit {limit}")


class RetryExhaustedError(TandemError):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, attempts: int, last_error: Exception | None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Retry exhausted after {attempts} attempts: {last_error}")


_TOOL_ERRORS: dict[str, type[ToolError]] = {
    cls.kind: cls
    for cls in (
        ToolValidationError,
        ToolTimeoutError,
        ToolHandlerError,
        ToolNotFoundError,
        ToolAccessDeniedError,
    )
}


def tool_error_for(kind: str, tool_name: str, message: str) -> ToolError:
    """Rebuild the ToolError subclass matching a recorded failure kind."""
    error_cls = _TOOL_ERRORS.get(kind, ToolHandlerError)
    error = error_cls.__new__(error_cls)
    ToolError.__init__(error, tool_name, message)
    return error
