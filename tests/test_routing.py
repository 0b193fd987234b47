"""Tests for routing predicates and the streamed run handle."""

import asyncio

import pytest

from tandem import ConversationTurn, LoopState, StepEvent, WorkflowRun
from tandem.workflow import latest_user_text, normalize_selection, route_by_capability, route_by_keywords

CAPABILITIES = {
    "research": ("research", "analysis"),
    "code": ("coding",),
    "creative": ("writing", "poetry"),
}


def _history(text):
    return [ConversationTurn.user("earlier request about poetry"), ConversationTurn.assistant("ok"), ConversationTurn.user(text)]


class TestRoutingHelpers:
    """Tests for selection helpers."""

    def test_latest_user_text(self):
        """Test the most recent user turn wins."""
        assert latest_user_text(_history("newest")) == "newest"
        assert latest_user_text([ConversationTurn.assistant("hi")]) == ""

    @pytest.mark.parametrize(
        "selection,expected",
        [
            (None, []),
            ("code", ["code"]),
            (["code", "research", "code"], ["code", "research"]),
            (("creative",), ["creative"]),
            ([], []),
        ],
    )
    def test_normalize_selection(self, selection, expected):
        """Test router return values become ordered unique lists."""
        assert normalize_selection(selection) == expected


class TestRouteByCapability:
    """Tests for route_by_capability."""

    def test_matches_mentioned_tag(self):
        """Test a tag mentioned in the latest user turn selects its agent."""
        router = route_by_capability()

        assert router(_history("I need some analysis of tides"), CAPABILITIES) == ["research"]

    def test_only_latest_turn_counts(self):
        """Test earlier turns do not influence the route."""
        router = route_by_capability()

        assert router(_history("help with coding"), CAPABILITIES) == ["code"]

    def test_whole_words_only(self):
        """Test tags must appear as whole words."""
        router = route_by_capability()

        assert router(_history("decoding signals"), CAPABILITIES) == []

    def test_fixed_tag(self):
        """Test a fixed tag ignores the conversation."""
        router = route_by_capability("poetry")

        assert router(_history("anything"), CAPABILITIES) == ["creative"]


class TestRouteByKeywords:
    """Tests for route_by_keywords."""

    def test_keywords_and_agent_id(self):
        """Test keywords and the agent id itself both trigger a route."""
        router = route_by_keywords({"code": ["python", "bug"], "creative": ["story"]})

        assert router(_history("Fix this Python bug"), CAPABILITIES) == ["code"]
        assert router(_history("ask creative"), CAPABILITIES) == ["creative"]

    def test_default(self):
        """Test the default agent is used when nothing matches."""
        router = route_by_keywords({"code": ["python"]}, default="research")

        assert router(_history("what is the weather"), CAPABILITIES) == ["research"]

    def test_multiple_matches_are_returned(self):
        """Test every matching agent is returned for the engine to reject."""
        router = route_by_keywords({"code": ["python"], "creative": ["story"]})

        assert router(_history("a story about python"), CAPABILITIES) == ["code", "creative"]


def _event(index):
    return StepEvent(workflow_id="wf", agent_id="a", step_index=index, state=LoopState.CONTINUING)


class TestWorkflowRun:
    """Tests for WorkflowRun buffering."""

    def test_invalid_buffer(self):
        """Test the buffer needs room for at least one event."""
        with pytest.raises(ValueError):
            WorkflowRun("wf", buffer_size=0)

    @pytest.mark.asyncio
    async def test_result_without_task(self):
        """Test result() needs an attached task."""
        with pytest.raises(RuntimeError):
            await WorkflowRun("wf").result()

    @pytest.mark.asyncio
    async def test_unattached_drops_oldest(self):
        """Test publishing into a full unread buffer drops the oldest event."""
        run = WorkflowRun("wf", buffer_size=2)
        for index in range(1, 5):
            await run.publish(_event(index))

        assert run.dropped_events == 2

        async def finish():
            return "done"

        run.attach(asyncio.ensure_future(finish()))
        await run.result()
        events = [event async for event in run]

        assert [e.step_index for e in events] == [4]
        assert run.dropped_events == 3

    @pytest.mark.asyncio
    async def test_backpressure_while_attached(self):
        """Test an attached consumer sees every event in order."""
        run = WorkflowRun("wf", buffer_size=1)

        async def produce():
            for index in range(1, 6):
                await run.publish(_event(index))

        events = run.__aiter__()
        run.attach(asyncio.ensure_future(produce()))
        received = [event.step_index async for event in events]

        assert received == [1, 2, 3, 4, 5]
        assert run.dropped_events == 0
