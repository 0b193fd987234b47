"""Core types and data models for Tandem."""

import json
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, NamedTuple, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Enums
# =============================================================================


class TurnRole(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class StepKind(str, Enum):
    """Shape of a single agent step."""

    TEXT = "text"
    TOOL_CALLS = "tool_calls"
    ERROR = "error"


class LoopState(str, Enum):
    """State of an agent loop."""

    RUNNING = "running"
    CONTINUING = "continuing"
    COMPLETED = "completed"
    MAX_STEPS_REACHED = "max_steps_reached"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self not in (LoopState.RUNNING, LoopState.CONTINUING)


class WorkflowPattern(str, Enum):
    """Orchestration patterns supported by the workflow engine."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    ROUTING = "routing"
    EVALUATOR_OPTIMIZER = "evaluator_optimizer"


class WorkflowStatus(str, Enum):
    """Composed status of a workflow run."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"


class ToolErrorKind(str, Enum):
    """Kinds of per-call tool failure."""

    VALIDATION = "validation"
    TIMEOUT = "timeout"
    HANDLER = "handler"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"


class ModelProvider(str, Enum):
    """Supported inference providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    MOCK = "mock"


# =============================================================================
# Agents
# =============================================================================


class ModelConfig(BaseModel):
    """Model settings for an agent."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    provider: ModelProvider | None = Field(default=None, description="Provider (None = gateway default)")
    model_id: str | None = Field(default=None, description="Model name (None = provider default)")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)


class AgentDefinition(BaseModel):
    """Immutable definition of an agent."""

    model_config = ConfigDict(frozen=True)

    agent_id: str = Field(..., description="Unique agent identifier")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="What this agent is for")
    system_instructions: str = Field(..., description="System prompt")
    tools: tuple[str, ...] = Field(default=(), description="Tool names this agent may invoke")
    capabilities: tuple[str, ...] = Field(default=(), description="Capability tags used for routing")
    model: ModelConfig | None = Field(default=None)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("agent_id", "name", "system_instructions")
    @classmethod
    def _not_blank(cls, value: str, info: Any) -> str:
        if not value.strip():
            raise ValueError(f"{info.field_name} must not be blank")
        return value


# =============================================================================
# Tools
# =============================================================================


class ToolDefinition(BaseModel):
    """A callable capability an agent may request.

    ``handler`` receives the validated argument dict. It may be a plain
    function (run in a worker thread) or a coroutine function.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON Schema describing the accepted arguments",
    )
    handler: Callable[[dict[str, Any]], Any]
    tags: tuple[str, ...] = ()
    timeout_seconds: float | None = Field(default=None, gt=0.0, description="Overrides the executor timeout")

    def schema_for_inference(self) -> dict[str, Any]:
        """Provider-neutral schema passed to the inference collaborator."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model."""

    model_config = ConfigDict(frozen=True)

    call_id: str = Field(default_factory=_new_call_id)
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolFailure(BaseModel):
    """Failure marker for one tool call."""

    model_config = ConfigDict(frozen=True)

    kind: ToolErrorKind
    message: str


class ToolCallResult(BaseModel):
    """Result (or failure marker) for one tool call."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    tool_name: str
    success: bool
    result: Any | None = None
    failure: ToolFailure | None = None
    duration_ms: float = 0.0

    def raise_for_failure(self) -> None:
        """Re-raise the error that produced this failure, if any."""
        if self.success:
            return
        from .exceptions import tool_error_for

        if self.failure is None:
            raise tool_error_for("handler", self.tool_name, "unknown failure")
        raise tool_error_for(self.failure.kind.value, self.tool_name, self.failure.message)

    def content_for_model(self) -> str:
        """Render the result as text for the next inference call."""
        if self.success:
            if isinstance(self.result, str):
                return self.result
            return _to_text(self.result)
        kind = self.failure.kind.value if self.failure else "handler"
        message = self.failure.message if self.failure else ""
        return f"Error ({kind}): {message}"


def _to_text(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


# =============================================================================
# Conversation
# =============================================================================


class ConversationTurn(BaseModel):
    """One append-only turn of a conversation."""

    model_config = ConfigDict(frozen=True)

    role: TurnRole
    content: Any = None
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    tool_results: list[ToolCallResult] = Field(default_factory=list)
    agent_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def text(self) -> str:
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return _to_text(self.content)

    @classmethod
    def user(cls, content: Any) -> "ConversationTurn":
        return cls(role=TurnRole.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: Any,
        tool_calls: list[ToolCallRequest] | None = None,
        agent_id: str | None = None,
    ) -> "ConversationTurn":
        return cls(
            role=TurnRole.ASSISTANT,
            content=content,
            tool_calls=tool_calls or [],
            agent_id=agent_id,
        )


# =============================================================================
# Inference
# =============================================================================


class InferenceRequest(BaseModel):
    """Everything the inference collaborator needs for one call."""

    agent_id: str
    system_instructions: str
    turns: list[ConversationTurn] = Field(default_factory=list)
    available_tool_schemas: list[dict[str, Any]] = Field(default_factory=list)
    model: ModelConfig | None = None


class InferenceResponse(BaseModel):
    """Opaque response from the inference collaborator."""

    content: str | None = None
    tool_call_requests: list[ToolCallRequest] = Field(default_factory=list)
    model: str = ""
    provider: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    latency_ms: float = 0.0
    raw_response: dict[str, Any] | None = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_call_requests)


@runtime_checkable
class InferenceCollaborator(Protocol):
    """Anything that can answer an InferenceRequest."""

    async def infer(self, request: InferenceRequest) -> InferenceResponse: ...


@runtime_checkable
class TurnSink(Protocol):
    """Append-turn callback of an external conversation store.

    ``append_turn`` may be a plain method or a coroutine.
    """

    def append_turn(self, turn: ConversationTurn) -> Any: ...


# =============================================================================
# Steps and Loops
# =============================================================================


class StepResult(BaseModel):
    """Output of one agent executor step."""

    kind: StepKind
    content: Any = None
    requests: list[ToolCallRequest] = Field(default_factory=list)
    tool_results: list[ToolCallResult] = Field(default_factory=list)
    reason: str | None = None
    history: list[ConversationTurn] = Field(default_factory=list)
    continuation_required: bool = False


class LoopOutcome(BaseModel):
    """Terminal result of one loop run."""

    agent_id: str
    status: LoopState
    history: list[ConversationTurn] = Field(default_factory=list)
    produced: list[ConversationTurn] = Field(default_factory=list)
    step_count: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None
    error_type: str | None = None

    @property
    def completed(self) -> bool:
        return self.status == LoopState.COMPLETED

    @property
    def output(self) -> str | None:
        """Last assistant text produced during this run."""
        for turn in reversed(self.produced):
            if turn.role == TurnRole.ASSISTANT and turn.content not in (None, ""):
                return turn.text
        return None


class StepEvent(BaseModel):
    """Notification emitted after every completed step."""

    workflow_id: str
    agent_id: str
    step_index: int
    state: LoopState
    kind: StepKind | None = None
    partial_output: str | None = None
    round: int | None = None
    timestamp: datetime = Field(default_factory=datetime.now)


# =============================================================================
# Workflows
# =============================================================================


RoutingPredicate = Callable[[list[ConversationTurn], dict[str, tuple[str, ...]]], Any]
ScoreParser = Callable[[str], "EvaluationResult"]
EventCallback = Callable[[StepEvent], Any | Awaitable[Any]]


class EvaluationResult(BaseModel):
    """Evaluator verdict for one round."""

    score: float = Field(default=0.0, ge=0.0, le=1.0)
    feedback: str = ""
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    raw: str = ""


class RoundRecord(BaseModel):
    """One producer/evaluator round of refinement."""

    round: int
    output: str | None = None
    score: float = 0.0
    feedback: str = ""


class BranchOutput(NamedTuple):
    """One entry of a parallel workflow's composed output."""

    agent_id: str
    output: str | None


BranchAggregator = Callable[[list[BranchOutput]], str]


class WorkflowConfig(BaseModel):
    """Immutable description of one workflow run."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    pattern: WorkflowPattern
    agents: tuple[str, ...] = Field(..., min_length=1, description="Participating agent ids")
    workflow_id: str = Field(default_factory=lambda: f"wf-{uuid.uuid4().hex[:8]}")
    name: str = ""
    max_steps: int = Field(default=10, ge=1)
    timeout_seconds: float = Field(default=120.0)
    abort_on_tool_timeout: bool = Field(
        default=True, description="Abort a loop when one of its tool calls times out"
    )

    # Parallel
    max_concurrency: int | None = Field(default=None, ge=1)
    min_successes: int | None = Field(
        default=None, ge=1, description="Fewest completed branches for the run to count as a partial success"
    )
    synthesizer: str | None = Field(default=None, description="Agent that merges the branch outputs")
    aggregator: BranchAggregator | None = None

    # Routing
    router: RoutingPredicate | None = None

    # Evaluator-optimizer
    producer: str | None = None
    evaluator: str | None = None
    quality_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    max_iterations: int = Field(default=5, ge=1)
    score_parser: ScoreParser | None = None
    criteria: str | None = Field(default=None, description="Evaluation criteria added to the evaluator prompt")
    min_improvement: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Stop when a round improves the score by less than this"
    )

    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_pattern(self) -> "WorkflowConfig":
        if len(set(self.agents)) != len(self.agents):
            raise ValueError("agents must not contain duplicates")
        if self.pattern == WorkflowPattern.ROUTING and self.router is None:
            raise ValueError("routing workflows require a router")
        if self.synthesizer is not None or self.min_successes is not None:
            if self.pattern != WorkflowPattern.PARALLEL:
                raise ValueError("synthesizer and min_successes only apply to parallel workflows")
            if self.synthesizer in self.agents:
                raise ValueError("the synthesizer must not also be a branch")
            if self.min_successes is not None and self.min_successes > len(self.agents):
                raise ValueError("min_successes cannot exceed the number of agents")
        if self.pattern == WorkflowPattern.EVALUATOR_OPTIMIZER:
            if self.producer is None and self.evaluator is None and len(self.agents) < 2:
                raise ValueError("evaluator_optimizer workflows require a producer and an evaluator")
            producer = self.producer or self.agents[0]
            evaluator = self.evaluator or next((a for a in self.agents if a != producer), None)
            if evaluator is None:
                raise ValueError("evaluator_optimizer workflows require a producer and an evaluator")
            if producer == evaluator:
                raise ValueError("producer and evaluator must be different agents")
            for agent_id in (producer, evaluator):
                if agent_id not in self.agents:
                    raise ValueError(f"'{agent_id}' is not a participating agent")
            object.__setattr__(self, "producer", producer)
            object.__setattr__(self, "evaluator", evaluator)
        return self


class WorkflowResult(BaseModel):
    """Composed result of a workflow run."""

    workflow_id: str
    pattern: WorkflowPattern
    status: WorkflowStatus
    outcomes: dict[str, LoopOutcome] = Field(default_factory=dict)
    output: Any = None
    rounds: list[RoundRecord] = Field(default_factory=list)
    selected_agent: str | None = None
    error: str | None = None
    elapsed_seconds: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == WorkflowStatus.SUCCESS
