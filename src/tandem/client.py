"""Tandem - Simple API.

Usage:
    from tandem import Tandem

    # Reads OPENAI_API_KEY / ANTHROPIC_API_KEY / GEMINI_API_KEY and TANDEM_*
    t = Tandem()

    t.add_agent("researcher", "Research topics.", capabilities=["research"])
    t.add_agent("writer", "Write articles.", capabilities=["writing"])

    result = await t.sequential(["researcher", "writer"], "Write about tides")
    print(result.status, result.output)

Without any API key the client falls back to the mock provider, so the
same code runs offline.
"""

import asyncio
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

from .config import TandemSettings
from .control.retry import RetryConfig, RetryStrategy
from .gateway import Gateway, MockProvider
from .registry import AgentRegistry, register_default_agents
from .tools import ToolExecutor, ToolRegistry, register_builtin_tools
from .types import (
    AgentDefinition,
    ConversationTurn,
    LoopOutcome,
    ModelConfig,
    ModelProvider,
    RoutingPredicate,
    ToolDefinition,
    TurnSink,
    WorkflowConfig,
    WorkflowPattern,
    WorkflowResult,
)
from .utils.logging import configure_logging
from .workflow import WorkflowEngine, WorkflowRun, route_by_capability

T = TypeVar("T")

Task = str | Sequence[ConversationTurn]


class Tandem:
    """Multi-agent workflows in a few lines.

    Usage:
        t = Tandem()

        # Built-in agents: research-agent, code-agent, creative-agent, analyst-agent
        result = await t.parallel(["research-agent", "analyst-agent"], "Assess solar power")

        # Pick one agent by capability mentioned in the request
        result = await t.route(["code-agent", "creative-agent"], "Help me with coding")

        # Draft, score, revise
        result = await t.refine("creative-agent", "analyst-agent", "Write a haiku", threshold=0.9)
    """

    def __init__(
        self,
        settings: TandemSettings | None = None,
        *,
        gateway: Gateway | None = None,
        turn_sink: TurnSink | None = None,
        retry: RetryConfig | None = None,
        register_defaults: bool = True,
        setup_logging: bool = False,
    ):
        """Create a Tandem client.

        Args:
            settings: Runtime settings. Defaults to ``TandemSettings.from_env()``.
            gateway: Prebuilt gateway. Built from ``settings`` when omitted.
            turn_sink: Receives every conversation turn workflows produce.
            retry: Retry policy for transient provider failures.
            register_defaults: Register the built-in agents and tools.
            setup_logging: Configure the ``tandem`` logger at ``settings.log_level``.
        """
        self._settings = settings or TandemSettings.from_env()
        if setup_logging:
            configure_logging(self._settings.log_level)

        self._gateway = gateway or self._build_gateway(retry)
        self._agents = AgentRegistry()
        self._tool_registry = ToolRegistry()
        if register_defaults:
            register_builtin_tools(self._tool_registry)
            register_default_agents(self._agents)

        self._tools = ToolExecutor(
            self._tool_registry,
            max_workers=self._settings.max_tool_workers,
            timeout=self._settings.tool_timeout_seconds,
        )
        self._engine = WorkflowEngine(
            self._agents,
            self._gateway,
            self._tools,
            turn_sink=turn_sink,
            max_nesting_depth=self._settings.max_nesting_depth,
            event_buffer_size=self._settings.event_buffer_size,
        )

    def _build_gateway(self, retry: RetryConfig | None) -> Gateway:
        settings = self._settings
        default = settings.resolve_default_provider()
        gateway = Gateway(
            default_provider=default,
            retry=RetryStrategy(retry) if retry is not None else None,
        )

        for provider in (ModelProvider.OPENAI, ModelProvider.ANTHROPIC, ModelProvider.GEMINI):
            key = settings.api_key_for(provider)
            if key or provider == default:
                gateway.configure_provider(
                    provider,
                    api_key=key,
                    default_model=settings.default_model if provider == default else None,
                )
        gateway.configure_provider(ModelProvider.MOCK)
        return gateway

    # =========================================================================
    # Setup
    # =========================================================================

    def add_agent(
        self,
        agent_id: str,
        instructions: str,
        *,
        name: str | None = None,
        description: str = "",
        tools: Iterable[str] | None = None,
        capabilities: Iterable[str] | None = None,
        provider: ModelProvider | str | None = None,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> "Tandem":
        """Register an agent.

        Returns:
            Self for chaining

        Example:
            t.add_agent("researcher", "Research topics.", tools=["search_web"])
            t.add_agent("writer", "Write articles.", capabilities=["writing"])
        """
        self._agents.register(
            AgentDefinition(
                agent_id=agent_id,
                name=name or agent_id,
                description=description,
                system_instructions=instructions,
                tools=tuple(tools or ()),
                capabilities=tuple(capabilities or ()),
                model=ModelConfig(
                    provider=ModelProvider(provider) if provider else None,
                    model_id=model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
            )
        )
        return self

    def add_tool(
        self,
        tool: ToolDefinition | str,
        handler: Callable[[dict[str, Any]], Any] | None = None,
        description: str = "",
        parameters: dict[str, Any] | None = None,
    ) -> "Tandem":
        """Register a tool. Returns self for chaining."""
        self._tool_registry.register(tool, handler=handler, description=description, parameters=parameters)
        return self

    def tool(
        self,
        name: str | None = None,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> Callable[[Callable[[dict[str, Any]], Any]], Callable[[dict[str, Any]], Any]]:
        """Decorator that registers a tool handler.

        Example:
            @t.tool(parameters={"type": "object", "properties": {"city": {"type": "string"}}})
            def lookup_city(args):
                return {"city": args["city"]}
        """
        return self._tool_registry.tool(name=name, description=description, parameters=parameters)

    # =========================================================================
    # Workflows
    # =========================================================================

    def workflow(self, pattern: WorkflowPattern | str, agents: Iterable[str], **options: Any) -> WorkflowConfig:
        """Build a WorkflowConfig using the client's loop defaults."""
        options.setdefault("max_steps", self._settings.max_steps)
        options.setdefault("timeout_seconds", self._settings.timeout_seconds)
        return WorkflowConfig(pattern=WorkflowPattern(pattern), agents=tuple(agents), **options)

    async def run(self, config: WorkflowConfig, task: Task) -> WorkflowResult:
        """Run any workflow config on ``task``."""
        return await self._engine.run(config, _history(task))

    async def sequential(self, agents: Iterable[str], task: Task, **options: Any) -> WorkflowResult:
        """Run agents one after another, each building on the previous output."""
        return await self.run(self.workflow(WorkflowPattern.SEQUENTIAL, agents, **options), task)

    async def parallel(self, agents: Iterable[str], task: Task, **options: Any) -> WorkflowResult:
        """Run agents concurrently on the same task."""
        return await self.run(self.workflow(WorkflowPattern.PARALLEL, agents, **options), task)

    async def route(
        self,
        agents: Iterable[str],
        task: Task,
        router: RoutingPredicate | None = None,
        **options: Any,
    ) -> WorkflowResult:
        """Run the one agent ``router`` selects.

        The default router picks the agent whose capability tag appears
        in the request.
        """
        config = self.workflow(WorkflowPattern.ROUTING, agents, router=router or route_by_capability(), **options)
        return await self.run(config, task)

    async def refine(
        self,
        producer: str,
        evaluator: str,
        task: Task,
        threshold: float = 0.8,
        max_iterations: int = 5,
        **options: Any,
    ) -> WorkflowResult:
        """Let ``producer`` answer and revise until ``evaluator`` scores it ``>= threshold``."""
        config = self.workflow(
            WorkflowPattern.EVALUATOR_OPTIMIZER,
            (producer, evaluator),
            producer=producer,
            evaluator=evaluator,
            quality_threshold=threshold,
            max_iterations=max_iterations,
            **options,
        )
        return await self.run(config, task)

    async def ask(self, agent_id: str, task: Task, **options: Any) -> LoopOutcome:
        """Run a single agent loop outside any workflow."""
        options.setdefault("max_steps", self._settings.max_steps)
        options.setdefault("timeout", self._settings.timeout_seconds)
        return await self._engine.loop.run(agent_id, _history(task), **options)

    def stream(self, config: WorkflowConfig, task: Task) -> WorkflowRun:
        """Start ``config`` in the background and stream its step events.

        Example:
            run = t.stream(t.workflow("parallel", ["research-agent", "analyst-agent"]), "Solar")
            async for event in run:
                print(event.agent_id, event.partial_output)
            result = await run.result()
        """
        return self._engine.stream(config, _history(task))

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def settings(self) -> TandemSettings:
        return self._settings

    @property
    def gateway(self) -> Gateway:
        """Access the underlying gateway."""
        return self._gateway

    @property
    def mock(self) -> MockProvider:
        """The mock provider, for scripting offline runs."""
        provider = self._gateway.get_provider(ModelProvider.MOCK)
        if not isinstance(provider, MockProvider):
            raise TypeError("The configured 'mock' provider is not a MockProvider")
        return provider

    @property
    def agents(self) -> AgentRegistry:
        return self._agents

    @property
    def tools(self) -> ToolRegistry:
        return self._tool_registry

    @property
    def engine(self) -> WorkflowEngine:
        return self._engine

    @property
    def cost(self) -> float:
        """Total inference cost so far."""
        return self._gateway.get_metrics()["total_cost"]


def _history(task: Task) -> list[ConversationTurn]:
    if isinstance(task, str):
        return [ConversationTurn.user(task)]
    return list(task)


def run_sync(coro: Awaitable[T]) -> T:
    """Run async code synchronously.

    Example:
        from tandem import Tandem, run_sync

        t = Tandem()
        result = run_sync(t.sequential(["research-agent", "creative-agent"], "Tides"))
    """
    async def _wrapper() -> T:
        return await coro

    return asyncio.run(_wrapper())
