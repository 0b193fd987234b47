"""Loop controller: runs an agent step by step until a stop condition fires.

State machine::

    running -> continuing -> ... -> completed
                                  | max_steps_reached
                                  | timed_out
                                  | aborted

Bounds are checked before every step. A step races the remaining time
and the caller's cancellation event; when either wins, the in-flight step
(including its tool batch) is cancelled and the outcome keeps the history
of the last fully completed step. The controller holds no state between
``run`` calls.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Sequence

from ..control.limits import DEFAULT_MAX_STEPS, DEFAULT_TIMEOUT_SECONDS, LoopBudget, LoopLimits
from ..exceptions import InferenceError
from ..types import (
    ConversationTurn,
    EventCallback,
    LoopOutcome,
    LoopState,
    StepEvent,
    StepKind,
    StepResult,
    ToolErrorKind,
    TurnRole,
    TurnSink,
)
from .agent import AgentExecutor

logger = logging.getLogger(__name__)

StopCondition = Callable[[Sequence[ConversationTurn]], bool]

# How long a cancelled step gets to unwind before the loop stops waiting.
CANCEL_GRACE_SECONDS = 1.0


class _DeadlineReached(Exception):
    pass


class _Cancelled(Exception):
    pass


class LoopController:
    """Bounded iteration over AgentExecutor steps.

    Example:
        loop = LoopController(executor)
        outcome = await loop.run("researcher", history, max_steps=5, timeout=30)
        if outcome.status == LoopState.COMPLETED:
            print(outcome.output)
    """

    def __init__(
        self,
        executor: AgentExecutor,
        turn_sink: TurnSink | None = None,
        on_event: EventCallback | None = None,
        on_limit_warning: Callable[[str, float, float], None] | None = None,
    ):
        """Initialize the controller.

        Args:
            executor: Runs individual steps.
            turn_sink: Receives every turn a step produces.
            on_event: Receives a StepEvent after every step.
            on_limit_warning: Called when a run nears its step or time bound.
        """
        self._executor = executor
        self._turn_sink = turn_sink
        self._on_event = on_event
        self._on_limit_warning = on_limit_warning

    @property
    def executor(self) -> AgentExecutor:
        return self._executor

    async def run(
        self,
        agent_id: str,
        history: Sequence[ConversationTurn] | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        *,
        available_tools: Iterable[str] | None = None,
        stop_when: StopCondition | None = None,
        cancel_event: asyncio.Event | None = None,
        abort_on_tool_timeout: bool = True,
        on_event: EventCallback | None = None,
        workflow_id: str = "",
        round: int | None = None,
    ) -> LoopOutcome:
        """Run ``agent_id`` until it finishes or a bound is reached.

        Args:
            agent_id: Agent to run.
            history: Starting conversation. Not modified.
            max_steps: Maximum number of steps.
            timeout: Wall-clock bound in seconds. ``<= 0`` returns
                ``timed_out`` without running any step.
            available_tools: Narrows the agent's tools for this run.
            stop_when: Extra "done" signal checked after each continuing step.
            cancel_event: Setting it aborts the run.
            abort_on_tool_timeout: Abort when a tool call in a step times out.
            on_event: Per-run event callback, in addition to the controller's.
            workflow_id: Copied into emitted events.
            round: Copied into emitted events (evaluator-optimizer rounds).

        Returns:
            The terminal LoopOutcome.

        Raises:
            AgentNotFoundError: If the agent is not registered.
        """
        budget = LoopBudget(
            LoopLimits(max_steps=max_steps, timeout_seconds=timeout),
            on_limit_warning=self._on_limit_warning,
        )
        budget.start()
        tools = list(available_tools) if available_tools is not None else None
        current: list[ConversationTurn] = list(history or [])
        produced: list[ConversationTurn] = []

        def finish(status: LoopState, error: str | None = None, error_type: str | None = None) -> LoopOutcome:
            outcome = LoopOutcome(
                agent_id=agent_id,
                status=status,
                history=current,
                produced=produced,
                step_count=budget.step_count,
                elapsed_seconds=budget.elapsed,
                error=error,
                error_type=error_type,
            )
            log = logger.warning if status == LoopState.ABORTED else logger.debug
            log(
                f"Loop for agent '{agent_id}' ended {status.value} after "
                f"{budget.step_count} steps ({budget.elapsed:.2f}s)" + (f": {error}" if error else "")
            )
            return outcome

        if timeout <= 0:
            return finish(LoopState.TIMED_OUT)

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return finish(LoopState.ABORTED, "Cancelled", "CancelledError")

            bound = budget.exhausted()
            if bound is not None:
                return finish(bound)

            try:
                step = await self._race(
                    self._executor.step(agent_id, current, tools),
                    budget.remaining_time,
                    cancel_event,
                )
            except _DeadlineReached:
                return finish(LoopState.TIMED_OUT)
            except _Cancelled:
                return finish(LoopState.ABORTED, "Cancelled", "CancelledError")
            except InferenceError as e:
                return finish(LoopState.ABORTED, str(e), type(e).__name__)

            budget.record_step()
            new_turns = step.history[len(current):]
            current = list(step.history)
            produced.extend(new_turns)
            await self.deliver(new_turns)

            state, error, error_type = self._evaluate(step, current, stop_when, abort_on_tool_timeout)
            await self._emit(
                StepEvent(
                    workflow_id=workflow_id,
                    agent_id=agent_id,
                    step_index=budget.step_count,
                    state=state,
                    kind=step.kind,
                    partial_output=_partial_output(step),
                    round=round,
                ),
                on_event,
            )
            if state != LoopState.CONTINUING:
                return finish(state, error, error_type)

    # =========================================================================
    # Internals
    # =========================================================================

    def _evaluate(
        self,
        step: StepResult,
        history: list[ConversationTurn],
        stop_when: StopCondition | None,
        abort_on_tool_timeout: bool,
    ) -> tuple[LoopState, str | None, str | None]:
        if step.kind == StepKind.ERROR:
            return LoopState.ABORTED, step.reason, "StepError"

        if abort_on_tool_timeout:
            timed_out = [
                r for r in step.tool_results
                if r.failure is not None and r.failure.kind == ToolErrorKind.TIMEOUT
            ]
            if timed_out:
                return LoopState.ABORTED, timed_out[0].failure.message, "ToolTimeoutError"

        if not step.continuation_required:
            return LoopState.COMPLETED, None, None
        if stop_when is not None and stop_when(history):
            return LoopState.COMPLETED, None, None
        return LoopState.CONTINUING, None, None

    async def _race(
        self,
        step: Awaitable[StepResult],
        remaining: float,
        cancel_event: asyncio.Event | None,
    ) -> StepResult:
        task = asyncio.ensure_future(step)
        waiters: set[asyncio.Future[Any]] = {task}
        cancel_waiter: asyncio.Future[Any] | None = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_consume_result)
        await asyncio.wait({task}, timeout=CANCEL_GRACE_SECONDS)
        if cancel_waiter is not None and cancel_waiter in done:
            raise _Cancelled()
        raise _DeadlineReached()

    async def deliver(self, turns: list[ConversationTurn]) -> None:
        """Forward turns to the turn sink. Sink failures are logged, not raised."""
        if self._turn_sink is None:
            return
        for turn in turns:
            try:
                result = self._turn_sink.append_turn(turn)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Turn sink rejected a {turn.role.value} turn: {e}")

    async def _emit(self, event: StepEvent, extra: EventCallback | None) -> None:
        for callback in (self._on_event, extra):
            if callback is None:
                continue
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Step event callback failed: {e}")


def _consume_result(task: "asyncio.Task[Any]") -> None:
    if not task.cancelled():
        task.exception()


def _partial_output(step: StepResult) -> str | None:
    if step.kind == StepKind.TEXT:
        return step.content
    if step.kind == StepKind.TOOL_CALLS:
        names = ", ".join(r.name for r in step.requests)
        return f"{step.content}\n[tools: {names}]" if step.content else f"[tools: {names}]"
    return step.reason


# =============================================================================
# Stop conditions
# =============================================================================


def _assistant_texts(history: Sequence[ConversationTurn]) -> list[str]:
    return [t.text for t in history if t.role == TurnRole.ASSISTANT and t.text]


def keyword_stop_condition(keywords: Iterable[str], case_sensitive: bool = False) -> StopCondition:
    """Stop once the latest assistant text contains any of ``keywords``."""
    words = [k if case_sensitive else k.lower() for k in keywords]

    def condition(history: Sequence[ConversationTurn]) -> bool:
        texts = _assistant_texts(history)
        if not texts:
            return False
        latest = texts[-1] if case_sensitive else texts[-1].lower()
        return any(word in latest for word in words)

    return condition


def stability_stop_condition(window: int = 2) -> StopCondition:
    """Stop once the last ``window`` assistant texts are identical."""
    if window < 2:
        raise ValueError("window must be >= 2")

    def condition(history: Sequence[ConversationTurn]) -> bool:
        texts = _assistant_texts(history)
        if len(texts) < window:
            return False
        recent = [t.strip() for t in texts[-window:]]
        return len(set(recent)) == 1

    return condition
