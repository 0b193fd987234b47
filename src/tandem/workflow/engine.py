"""Workflow engine: composes agent loops into multi-agent patterns.

Patterns:
    sequential          agents run one after another, each seeing the
                        previous agent's conversation and output
    parallel            agents run concurrently on independent copies
                        of the starting history
    routing             a router picks exactly one agent to run
    evaluator_optimizer a producer answers, an evaluator scores, and the
                        producer revises until the score is good enough

Configuration problems (unknown agents, unroutable requests, nesting too
deep) raise. Everything that goes wrong while agents run is reported in
the WorkflowResult instead.

Running workflows are tracked by id so they can be cancelled through the
engine.
"""

import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable, Iterable, Sequence

from ..control.nesting import DEFAULT_MAX_NESTING_DEPTH, nesting_guard
from ..exceptions import AgentNotFoundError, AmbiguousRouteError, NoRouteMatchedError
from ..registry import AgentRegistry
from ..tools import ToolExecutor, ToolRegistry
from ..types import (
    BranchOutput,
    ConversationTurn,
    EvaluationResult,
    EventCallback,
    InferenceCollaborator,
    LoopOutcome,
    LoopState,
    RoundRecord,
    ToolDefinition,
    TurnSink,
    WorkflowConfig,
    WorkflowPattern,
    WorkflowResult,
    WorkflowStatus,
)
from ..utils.logging import StructuredLogger
from .agent import AgentExecutor
from .evaluation import evaluation_prompt, normalize_score, parse_evaluation, revision_prompt
from .events import WorkflowRun
from .loop import LoopController
from .routing import latest_user_text, normalize_selection


class _RunContext:
    __slots__ = ("config", "cancel_event", "on_event", "log")

    def __init__(
        self,
        config: WorkflowConfig,
        cancel_event: asyncio.Event | None,
        on_event: EventCallback | None,
        log: StructuredLogger,
    ):
        self.config = config
        self.cancel_event = cancel_event
        self.on_event = on_event
        self.log = log


class WorkflowEngine:
    """Runs WorkflowConfigs against registered agents.

    Example:
        engine = WorkflowEngine(registry, gateway, tool_executor)
        config = WorkflowConfig(
            pattern=WorkflowPattern.SEQUENTIAL,
            agents=("research-agent", "creative-agent"),
        )
        result = await engine.run(config, [ConversationTurn.user("Write about tides")])
        print(result.status, result.output)
    """

    def __init__(
        self,
        registry: AgentRegistry,
        inference: InferenceCollaborator,
        tools: ToolExecutor | None = None,
        turn_sink: TurnSink | None = None,
        max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH,
        event_buffer_size: int = 100,
        on_event: EventCallback | None = None,
    ):
        """Initialize the engine.

        Args:
            registry: Agents available to workflows.
            inference: Model backend, usually a Gateway.
            tools: Tool executor. Defaults to one over an empty ToolRegistry.
            turn_sink: Receives every turn the engine's workflows produce.
            max_nesting_depth: Deepest allowed workflow-in-workflow nesting.
            event_buffer_size: Capacity of each streamed run's event buffer.
            on_event: Receives every StepEvent from every workflow.
        """
        if max_nesting_depth < 1:
            raise ValueError("max_nesting_depth must be >= 1")
        self._registry = registry
        self._tools = tools or ToolExecutor(ToolRegistry())
        self._executor = AgentExecutor(registry, inference, self._tools)
        self._loop = LoopController(self._executor, turn_sink=turn_sink, on_event=on_event)
        self._max_nesting_depth = max_nesting_depth
        self._event_buffer_size = event_buffer_size
        self._log = StructuredLogger("engine")
        self._active: dict[str, list[asyncio.Event]] = {}

        self._handlers: dict[WorkflowPattern, Callable[[_RunContext, list[ConversationTurn]], Awaitable[WorkflowResult]]] = {
            WorkflowPattern.SEQUENTIAL: self._run_sequential,
            WorkflowPattern.PARALLEL: self._run_parallel,
            WorkflowPattern.ROUTING: self._run_routing,
            WorkflowPattern.EVALUATOR_OPTIMIZER: self._run_evaluator_optimizer,
        }

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def tools(self) -> ToolExecutor:
        return self._tools

    @property
    def loop(self) -> LoopController:
        return self._loop

    # =========================================================================
    # Public API
    # =========================================================================

    async def run(
        self,
        config: WorkflowConfig,
        history: Sequence[ConversationTurn] | None = None,
        cancel_event: asyncio.Event | None = None,
        on_event: EventCallback | None = None,
    ) -> WorkflowResult:
        """Run a workflow to completion.

        Args:
            config: What to run.
            history: Starting conversation. Not modified.
            cancel_event: Setting it aborts every running loop.
            on_event: Per-run StepEvent callback.

        Returns:
            The composed WorkflowResult.

        Raises:
            AgentNotFoundError: If a participating agent is not registered.
            NoRouteMatchedError: If a router selects no agent.
            AmbiguousRouteError: If a router selects more than one agent.
            NestingLimitExceededError: If nested too deeply.
        """
        initial = list(history or [])
        cancel_event = cancel_event or asyncio.Event()
        with nesting_guard(config.workflow_id, self._max_nesting_depth) as depth:
            for agent_id in config.agents:
                self._registry.lookup(agent_id)
            if config.synthesizer is not None:
                self._registry.lookup(config.synthesizer)

            log = self._log.bind(workflow_id=config.workflow_id, pattern=config.pattern.value)
            log.info("Workflow started", agents=len(config.agents), depth=depth)
            started = time.monotonic()

            self._active.setdefault(config.workflow_id, []).append(cancel_event)
            try:
                ctx = _RunContext(config, cancel_event, on_event, log)
                result = await self._handlers[config.pattern](ctx, initial)
            finally:
                self._release(config.workflow_id, cancel_event)
            result.elapsed_seconds = time.monotonic() - started
            result.metadata.setdefault("depth", depth)

            log.info(
                "Workflow finished",
                status=result.status.value,
                elapsed=f"{result.elapsed_seconds:.2f}s",
            )
            return result

    def stream(
        self,
        config: WorkflowConfig,
        history: Sequence[ConversationTurn] | None = None,
    ) -> WorkflowRun:
        """Start a workflow in the background and stream its step events.

        Must be called from a running event loop.
        """
        run = WorkflowRun(config.workflow_id, self._event_buffer_size)
        task = asyncio.create_task(
            self.run(config, history, cancel_event=run.cancel_event, on_event=run.publish)
        )
        run.attach(task)
        return run

    # =========================================================================
    # Active runs
    # =========================================================================

    def active_workflows(self) -> list[str]:
        """Ids of the workflows currently running on this engine."""
        return list(self._active)

    def is_active(self, workflow_id: str) -> bool:
        return workflow_id in self._active

    def cancel(self, workflow_id: str) -> bool:
        """Cancel every running workflow with this id.

        Returns:
            False if no such workflow is running.
        """
        events = self._active.get(workflow_id)
        if not events:
            return False
        for event in events:
            event.set()
        self._log.info("Workflow cancelled", workflow_id=workflow_id)
        return True

    def cancel_all(self) -> int:
        """Cancel every running workflow. Returns how many ids were cancelled."""
        workflow_ids = list(self._active)
        for workflow_id in workflow_ids:
            self.cancel(workflow_id)
        return len(workflow_ids)

    def _release(self, workflow_id: str, cancel_event: asyncio.Event) -> None:
        events = self._active.get(workflow_id, [])
        if cancel_event in events:
            events.remove(cancel_event)
        if not events:
            self._active.pop(workflow_id, None)

    # =========================================================================
    # Patterns
    # =========================================================================

    async def _run_agent(
        self,
        ctx: _RunContext,
        agent_id: str,
        history: list[ConversationTurn],
        round: int | None = None,
    ) -> LoopOutcome:
        config = ctx.config
        outcome = await self._loop.run(
            agent_id,
            history,
            max_steps=config.max_steps,
            timeout=config.timeout_seconds,
            cancel_event=ctx.cancel_event,
            abort_on_tool_timeout=config.abort_on_tool_timeout,
            on_event=ctx.on_event,
            workflow_id=config.workflow_id,
            round=round,
        )
        ctx.log.debug(
            "Agent finished",
            agent_id=agent_id,
            status=outcome.status.value,
            steps=outcome.step_count,
            round=round,
        )
        return outcome

    async def _run_sequential(self, ctx: _RunContext, history: list[ConversationTurn]) -> WorkflowResult:
        config = ctx.config
        outcomes: dict[str, LoopOutcome] = {}
        outputs: list[str] = []
        current = history
        previous: LoopOutcome | None = None

        for agent_id in config.agents:
            if previous is not None:
                current = list(previous.history)
                if previous.output is not None:
                    handoff = ConversationTurn.user(previous.output)
                    current.append(handoff)
                    await self._loop.deliver([handoff])

            outcome = await self._run_agent(ctx, agent_id, current)
            outcomes[agent_id] = outcome
            if outcome.output:
                outputs.append(outcome.output)
            if outcome.status == LoopState.ABORTED:
                ctx.log.warning("Sequential workflow stopped early", agent_id=agent_id, error=outcome.error)
                break
            previous = outcome

        return self._compose(config, outcomes, config.agents, output="\n\n".join(outputs))

    async def _run_parallel(self, ctx: _RunContext, history: list[ConversationTurn]) -> WorkflowResult:
        config = ctx.config
        limiter = asyncio.Semaphore(config.max_concurrency) if config.max_concurrency else None

        async def branch(agent_id: str) -> LoopOutcome:
            branch_history = [turn.model_copy(deep=True) for turn in history]
            if limiter is None:
                return await self._run_agent(ctx, agent_id, branch_history)
            async with limiter:
                return await self._run_agent(ctx, agent_id, branch_history)

        tasks = [asyncio.ensure_future(branch(agent_id)) for agent_id in config.agents]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        outcomes = dict(zip(config.agents, results))
        branches = [BranchOutput(agent_id, outcomes[agent_id].output) for agent_id in config.agents]
        succeeded = [b for b in branches if outcomes[b.agent_id].completed]

        if config.min_successes is not None and len(succeeded) < config.min_successes:
            ctx.log.warning("Too few branches completed", completed=len(succeeded), required=config.min_successes)
            result = self._compose(config, outcomes, config.agents, output=branches)
            result.status = WorkflowStatus.FAILURE
            result.error = f"Only {len(succeeded)} of {config.min_successes} required branches completed"
            return result

        if config.synthesizer is None:
            return self._compose(config, outcomes, config.agents, output=branches)

        output = None
        if succeeded:
            merged = (config.aggregator or concatenate_branches)(succeeded)
            prompt = ConversationTurn.user(f"Please synthesize the following outputs:\n\n{merged}")
            await self._loop.deliver([prompt])
            synthesized = await self._run_agent(ctx, config.synthesizer, [prompt])
            outcomes[config.synthesizer] = synthesized
            output = synthesized.output
        result = self._compose(config, outcomes, [*config.agents, config.synthesizer], output=output)
        result.metadata["branches"] = branches
        return result

    async def _run_routing(self, ctx: _RunContext, history: list[ConversationTurn]) -> WorkflowResult:
        config = ctx.config
        capabilities = self._registry.capabilities_by_agent(config.agents)
        selection = normalize_selection(config.router(list(history), capabilities))

        if not selection:
            raise NoRouteMatchedError(list(config.agents))
        if len(selection) > 1:
            raise AmbiguousRouteError(selection)
        chosen = selection[0]
        if chosen not in config.agents:
            raise AgentNotFoundError(chosen)

        ctx.log.info("Request routed", agent_id=chosen)
        outcome = await self._run_agent(ctx, chosen, history)
        result = self._compose(config, {chosen: outcome}, [chosen], output=outcome.output)
        result.selected_agent = chosen
        return result

    async def _run_evaluator_optimizer(self, ctx: _RunContext, history: list[ConversationTurn]) -> WorkflowResult:
        config = ctx.config
        producer, evaluator = config.producer, config.evaluator
        request = latest_user_text(history)
        outcomes: dict[str, LoopOutcome] = {}
        rounds: list[RoundRecord] = []
        best: RoundRecord | None = None
        producer_history = history

        for round_no in range(1, config.max_iterations + 1):
            produced = await self._run_agent(ctx, producer, producer_history, round=round_no)
            outcomes[producer] = produced
            if not produced.completed or produced.output is None:
                break

            prompt = ConversationTurn.user(evaluation_prompt(request, produced.output, config.criteria))
            await self._loop.deliver([prompt])
            judged = await self._run_agent(ctx, evaluator, [prompt], round=round_no)
            outcomes[evaluator] = judged
            if not judged.completed:
                break

            evaluation = self._score(config, judged.output or "")
            record = RoundRecord(
                round=round_no,
                output=produced.output,
                score=evaluation.score,
                feedback=evaluation.feedback,
            )
            rounds.append(record)
            ctx.log.info("Round scored", round=round_no, score=f"{evaluation.score:.2f}")

            previous = rounds[-2].score if len(rounds) > 1 else None
            if best is None or record.score >= best.score:
                best = record
            if evaluation.score >= config.quality_threshold:
                break
            if (
                config.min_improvement is not None
                and previous is not None
                and 0.0 <= record.score - previous < config.min_improvement
            ):
                ctx.log.info("Refinement stalled", round=round_no, improvement=f"{record.score - previous:.2f}")
                break

            revision = ConversationTurn.user(revision_prompt(request, produced.output, evaluation))
            await self._loop.deliver([revision])
            producer_history = [*produced.history, revision]

        if best is not None:
            output = best.output
        else:
            output = outcomes[producer].output if producer in outcomes else None

        result = self._compose(config, outcomes, [producer, evaluator], output=output)
        result.rounds = rounds
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _score(self, config: WorkflowConfig, text: str) -> EvaluationResult:
        parser = config.score_parser or parse_evaluation
        parsed: Any = parser(text)
        if isinstance(parsed, EvaluationResult):
            return parsed
        return EvaluationResult(score=normalize_score(parsed), raw=text)

    def _compose(
        self,
        config: WorkflowConfig,
        outcomes: dict[str, LoopOutcome],
        required: Iterable[str],
        output: Any,
    ) -> WorkflowResult:
        required = list(required)
        completed = sum(1 for agent_id in required if agent_id in outcomes and outcomes[agent_id].completed)
        if completed == len(required):
            status = WorkflowStatus.SUCCESS
        elif completed:
            status = WorkflowStatus.PARTIAL_FAILURE
        else:
            status = WorkflowStatus.FAILURE

        error = next((o.error for o in outcomes.values() if o.error), None)
        return WorkflowResult(
            workflow_id=config.workflow_id,
            pattern=config.pattern,
            status=status,
            outcomes=outcomes,
            output=output,
            error=error,
            metadata=dict(config.metadata),
        )


def workflow_tool(
    engine: WorkflowEngine,
    config: WorkflowConfig,
    name: str,
    description: str = "",
    timeout_seconds: float | None = None,
) -> ToolDefinition:
    """Expose a workflow as a tool other agents can call.

    The tool takes ``{"input": str}``, runs ``config`` (under a fresh
    workflow id) with that input as the user turn and returns the status
    and output. Nested runs count toward the engine's nesting limit.
    """

    async def handler(args: dict[str, Any]) -> dict[str, Any]:
        run_config = config.model_copy(update={"workflow_id": f"{config.workflow_id}-{uuid.uuid4().hex[:6]}"})
        result = await engine.run(run_config, [ConversationTurn.user(args["input"])])
        output = result.output
        if isinstance(output, list):
            output = {branch.agent_id: branch.output for branch in output}
        return {"status": result.status.value, "output": output}

    return ToolDefinition(
        name=name,
        description=description or f"Run the '{config.name or config.workflow_id}' workflow",
        parameters={
            "type": "object",
            "properties": {"input": {"type": "string", "description": "Request for the workflow"}},
            "required": ["input"],
        },
        handler=handler,
        timeout_seconds=timeout_seconds,
    )


def concatenate_branches(branches: list[BranchOutput]) -> str:
    """Default parallel aggregator: one ``## agent_id`` section per branch."""
    return "\n\n---\n\n".join(f"## {branch.agent_id}\n\n{branch.output or ''}" for branch in branches)
