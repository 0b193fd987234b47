"""Tests for the loop controller."""

import asyncio
import time

import pytest

from tandem import (
    AgentRegistry,
    ConversationTurn,
    Gateway,
    InferenceResponse,
    LoopState,
    MockProvider,
    StepKind,
    ToolCallRequest,
    ToolDefinition,
    ToolExecutor,
    ToolRegistry,
)
from tandem.exceptions import AgentNotFoundError, InferenceError
from tandem.workflow import AgentExecutor, LoopController, keyword_stop_condition, stability_stop_condition

from conftest import RecordingSink, make_agent


def _lookup_forever(request):
    return ToolCallRequest(name="lookup", arguments={"query": "again"})


class TestLoopTermination:
    """Tests for each terminal state."""

    @pytest.mark.asyncio
    async def test_completes_on_text(self, loop, mock):
        """Test a text reply completes the loop in one step."""
        mock.script("creative", "Finished.")

        outcome = await loop.run("creative", [ConversationTurn.user("go")])

        assert outcome.status == LoopState.COMPLETED
        assert outcome.completed
        assert outcome.status.is_terminal
        assert not LoopState.CONTINUING.is_terminal
        assert outcome.step_count == 1
        assert outcome.output == "Finished."
        assert len(outcome.produced) == 1
        assert len(outcome.history) == 2

    @pytest.mark.asyncio
    async def test_tool_round_trip(self, loop, mock):
        """Test a tool step continues into a final text step."""
        mock.script("research", [ToolCallRequest(name="lookup", arguments={"query": "tides"})], "Tides are tidal.")

        outcome = await loop.run("research", [ConversationTurn.user("Research tides")])

        assert outcome.status == LoopState.COMPLETED
        assert outcome.step_count == 2
        assert outcome.output == "Tides are tidal."
        second_request = mock.calls_for("research")[1]
        assert second_request.turns[-1].tool_results[0].result == {"answer": "found tides"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_steps", [1, 3])
    async def test_max_steps(self, loop, mock, max_steps):
        """Test a loop that always calls tools stops at max_steps."""
        mock.set_generator(_lookup_forever)

        outcome = await loop.run("research", [ConversationTurn.user("go")], max_steps=max_steps)

        assert outcome.status == LoopState.MAX_STEPS_REACHED
        assert outcome.step_count == max_steps
        assert len(mock.call_log) == max_steps

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [0, -1])
    async def test_non_positive_timeout(self, loop, mock, timeout):
        """Test timeout <= 0 returns timed_out without running a step."""
        outcome = await loop.run("creative", [ConversationTurn.user("go")], timeout=timeout)

        assert outcome.status == LoopState.TIMED_OUT
        assert outcome.step_count == 0
        assert mock.call_log == []

    @pytest.mark.asyncio
    async def test_timeout_during_inference(self, loop, mock):
        """Test a slow inference call is cut off at the deadline."""
        mock.set_latency("creative", 2000)
        start = time.perf_counter()

        outcome = await loop.run("creative", [ConversationTurn.user("go")], timeout=0.1)

        assert outcome.status == LoopState.TIMED_OUT
        assert outcome.step_count == 0
        assert outcome.produced == []
        assert time.perf_counter() - start < 1.5

    @pytest.mark.asyncio
    async def test_timeout_during_tool_batch(self, mock):
        """Test the loop deadline cancels a running tool batch and keeps the last full history."""
        cancelled = []

        async def crawl(args):
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        tools = ToolRegistry()
        tools.register(ToolDefinition(name="crawl", handler=crawl, timeout_seconds=10.0))
        sink = RecordingSink()
        loop = LoopController(
            AgentExecutor(
                AgentRegistry([make_agent("crawler", tools=["crawl"])]),
                Gateway().add_provider(mock),
                ToolExecutor(tools, timeout=10.0),
            ),
            turn_sink=sink,
        )
        mock.script("crawler", ToolCallRequest(name="crawl"))
        start = [ConversationTurn.user("Crawl the docs")]
        began = time.perf_counter()

        outcome = await loop.run("crawler", start, timeout=0.2)

        assert outcome.status == LoopState.TIMED_OUT
        assert outcome.step_count == 0
        assert outcome.history == start
        assert outcome.produced == []
        assert sink.turns == []
        assert cancelled == [True]
        assert time.perf_counter() - began < 2.0

    @pytest.mark.asyncio
    async def test_inference_error_aborts(self, loop, mock):
        """Test an inference failure aborts the loop without retrying."""
        mock.script("creative", InferenceError("mock", "rate limited", transient=True))

        outcome = await loop.run("creative", [ConversationTurn.user("go")])

        assert outcome.status == LoopState.ABORTED
        assert outcome.error_type == "InferenceError"
        assert "rate limited" in outcome.error
        assert len(mock.call_log) == 1

    @pytest.mark.asyncio
    async def test_error_step_aborts(self, loop, mock):
        """Test an empty inference reply aborts the loop."""
        mock.script("creative", "")

        outcome = await loop.run("creative", [ConversationTurn.user("go")])

        assert outcome.status == LoopState.ABORTED
        assert outcome.error_type == "StepError"

    @pytest.mark.asyncio
    async def test_preset_cancel_event(self, loop, mock):
        """Test an already-set cancel event aborts before the first step."""
        cancel = asyncio.Event()
        cancel.set()

        outcome = await loop.run("creative", [ConversationTurn.user("go")], cancel_event=cancel)

        assert outcome.status == LoopState.ABORTED
        assert outcome.error_type == "CancelledError"
        assert mock.call_log == []

    @pytest.mark.asyncio
    async def test_cancel_mid_step(self, loop, mock):
        """Test setting the cancel event interrupts an in-flight step."""
        mock.set_latency("creative", 2000)
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        start = time.perf_counter()

        outcome = await loop.run("creative", [ConversationTurn.user("go")], cancel_event=cancel)

        assert outcome.status == LoopState.ABORTED
        assert outcome.step_count == 0
        assert time.perf_counter() - start < 1.5

    @pytest.mark.asyncio
    async def test_unknown_agent_raises(self, loop):
        """Test configuration errors propagate instead of becoming outcomes."""
        with pytest.raises(AgentNotFoundError):
            await loop.run("ghost", [ConversationTurn.user("go")])


class TestToolTimeouts:
    """Tests for tool timeouts inside a loop."""

    def _loop(self, mock: MockProvider) -> LoopController:
        tools = ToolRegistry()

        async def stall(args):
            await asyncio.sleep(5)

        tools.register("stall", handler=stall)
        registry = AgentRegistry([make_agent("worker", tools=["stall"])])
        executor = AgentExecutor(registry, Gateway().add_provider(mock), ToolExecutor(tools, timeout=0.05))
        return LoopController(executor)

    @pytest.mark.asyncio
    async def test_tool_timeout_aborts(self):
        """Test a timed out tool call aborts the loop by default."""
        mock = MockProvider().script("worker", [ToolCallRequest(name="stall")], "never reached")

        outcome = await self._loop(mock).run("worker", [ConversationTurn.user("go")])

        assert outcome.status == LoopState.ABORTED
        assert outcome.error_type == "ToolTimeoutError"
        assert outcome.step_count == 1

    @pytest.mark.asyncio
    async def test_tool_timeout_can_continue(self):
        """Test abort_on_tool_timeout=False feeds the timeout back to the model."""
        mock = MockProvider().script("worker", [ToolCallRequest(name="stall")], "gave up on the tool")

        outcome = await self._loop(mock).run(
            "worker", [ConversationTurn.user("go")], abort_on_tool_timeout=False
        )

        assert outcome.status == LoopState.COMPLETED
        assert outcome.output == "gave up on the tool"
        assert "Error (timeout)" in mock.call_log[1].turns[-1].tool_results[0].content_for_model()


class TestStopConditions:
    """Tests for stop_when predicates."""

    @pytest.mark.asyncio
    async def test_keyword_stop(self, loop, mock):
        """Test a keyword in assistant text completes a continuing loop."""
        mock.script(
            "research",
            ToolCallRequest(name="lookup", arguments={"query": "x"}),
            InferenceResponse(
                content="FINAL ANSWER coming",
                tool_call_requests=[ToolCallRequest(name="lookup", arguments={"query": "y"})],
            ),
        )

        outcome = await loop.run(
            "research",
            [ConversationTurn.user("go")],
            max_steps=10,
            stop_when=keyword_stop_condition(["final answer"]),
        )

        assert outcome.status == LoopState.COMPLETED
        assert outcome.step_count == 2

    def test_stability_condition(self):
        """Test the stability condition needs identical recent answers."""
        condition = stability_stop_condition(window=2)
        same = [ConversationTurn.assistant("x"), ConversationTurn.user("again"), ConversationTurn.assistant("x ")]
        different = [ConversationTurn.assistant("x"), ConversationTurn.assistant("y")]

        assert condition(same)
        assert not condition(different)
        assert not condition([ConversationTurn.assistant("x")])

        with pytest.raises(ValueError):
            stability_stop_condition(window=1)


class TestObservers:
    """Tests for the turn sink, events and limit warnings."""

    @pytest.mark.asyncio
    async def test_turn_sink_receives_produced_turns(self, agent_executor, mock):
        """Test every produced turn reaches the sink in order."""
        sink = RecordingSink()
        loop = LoopController(agent_executor, turn_sink=sink)
        mock.script("research", [ToolCallRequest(name="lookup", arguments={"query": "x"})], "done")

        outcome = await loop.run("research", [ConversationTurn.user("go")])

        assert sink.turns == outcome.produced
        assert len(sink.turns) == 3

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_abort(self, agent_executor, mock):
        """Test a sink that raises is logged and ignored."""

        class BrokenSink:
            def append_turn(self, turn):
                raise RuntimeError("disk full")

        loop = LoopController(agent_executor, turn_sink=BrokenSink())
        mock.script("creative", "ok")

        outcome = await loop.run("creative", [ConversationTurn.user("go")])
        assert outcome.status == LoopState.COMPLETED

    @pytest.mark.asyncio
    async def test_events(self, agent_executor, mock):
        """Test a StepEvent is emitted after every step."""
        controller_events = []
        run_events = []

        async def on_run_event(event):
            run_events.append(event)

        loop = LoopController(agent_executor, on_event=controller_events.append)
        mock.script("research", [ToolCallRequest(name="lookup", arguments={"query": "x"})], "done")

        await loop.run("research", [ConversationTurn.user("go")], on_event=on_run_event, workflow_id="wf-1")

        assert [e.step_index for e in controller_events] == [1, 2]
        assert [e.state for e in controller_events] == [LoopState.CONTINUING, LoopState.COMPLETED]
        assert [e.kind for e in controller_events] == [StepKind.TOOL_CALLS, StepKind.TEXT]
        assert controller_events[0].partial_output == "[tools: lookup]"
        assert controller_events[1].partial_output == "done"
        assert run_events == controller_events
        assert all(e.workflow_id == "wf-1" for e in run_events)

    @pytest.mark.asyncio
    async def test_limit_warning(self, agent_executor, mock):
        """Test a warning fires once the step bound is nearly used."""
        warnings = []
        loop = LoopController(
            agent_executor, on_limit_warning=lambda kind, current, limit: warnings.append((kind, current, limit))
        )
        mock.set_generator(_lookup_forever)

        await loop.run("research", [ConversationTurn.user("go")], max_steps=5)

        assert warnings == [("steps", 4.0, 5.0)]
