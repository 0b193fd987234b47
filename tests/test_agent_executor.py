"""Tests for single agent steps."""

import pytest

from tandem import ConversationTurn, InferenceResponse, StepKind, ToolCallRequest, ToolErrorKind, TurnRole
from tandem.exceptions import AgentNotFoundError, InferenceError


class TestAgentStep:
    """Tests for AgentExecutor.step."""

    @pytest.mark.asyncio
    async def test_text_reply(self, agent_executor, mock):
        """Test a text reply appends one assistant turn and needs no continuation."""
        mock.script("creative", "A poem.")
        history = [ConversationTurn.user("Write a poem")]

        step = await agent_executor.step("creative", history)

        assert step.kind == StepKind.TEXT
        assert step.content == "A poem."
        assert not step.continuation_required
        assert len(step.history) == 2
        assert step.history[-1].role == TurnRole.ASSISTANT
        assert step.history[-1].agent_id == "creative"
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_request_carries_agent_configuration(self, agent_executor, mock):
        """Test the inference request uses the agent's instructions and tools."""
        await agent_executor.step("research", [ConversationTurn.user("hi")])

        request = mock.call_log[-1]
        assert request.system_instructions == "You are research."
        assert [s["name"] for s in request.available_tool_schemas] == ["lookup"]

    @pytest.mark.asyncio
    async def test_available_tools_narrows(self, agent_executor, mock):
        """Test available_tools can only narrow the agent's tool list."""
        await agent_executor.step("research", [ConversationTurn.user("hi")], available_tools=[])
        assert mock.call_log[-1].available_tool_schemas == []

        await agent_executor.step("creative", [ConversationTurn.user("hi")], available_tools=["lookup"])
        assert mock.call_log[-1].available_tool_schemas == []

    @pytest.mark.asyncio
    async def test_tool_calls(self, agent_executor, mock):
        """Test tool requests run and their results are appended."""
        mock.script("research", [ToolCallRequest(call_id="c1", name="lookup", arguments={"query": "tides"})])

        step = await agent_executor.step("research", [ConversationTurn.user("Research tides")])

        assert step.kind == StepKind.TOOL_CALLS
        assert step.continuation_required
        assert [t.role for t in step.history] == [TurnRole.USER, TurnRole.ASSISTANT, TurnRole.TOOL]
        result = step.tool_results[0]
        assert result.call_id == "c1"
        assert result.result == {"answer": "found tides"}

    @pytest.mark.asyncio
    async def test_tool_failures_are_results(self, agent_executor, mock):
        """Test failing tool calls still produce a continuing step."""
        mock.script(
            "research",
            [
                ToolCallRequest(name="lookup", arguments={}),
                ToolCallRequest(name="not_a_tool", arguments={}),
            ],
        )

        step = await agent_executor.step("research", [ConversationTurn.user("go")])

        assert step.continuation_required
        assert [r.failure.kind for r in step.tool_results] == [ToolErrorKind.VALIDATION, ToolErrorKind.NOT_FOUND]

    @pytest.mark.asyncio
    async def test_tool_outside_agent_list_denied(self, agent_executor, mock):
        """Test an agent cannot call a registered tool it does not list."""
        mock.script("creative", [ToolCallRequest(name="lookup", arguments={"query": "x"})])

        step = await agent_executor.step("creative", [ConversationTurn.user("go")])

        assert step.tool_results[0].failure.kind == ToolErrorKind.ACCESS_DENIED

    @pytest.mark.asyncio
    async def test_empty_reply_is_error_step(self, agent_executor, mock):
        """Test a reply with neither text nor tool calls is an error step."""
        mock.script("creative", InferenceResponse(content="  "))

        step = await agent_executor.step("creative", [ConversationTurn.user("go")])

        assert step.kind == StepKind.ERROR
        assert not step.continuation_required
        assert step.reason
        assert len(step.history) == 1

    @pytest.mark.asyncio
    async def test_inference_error_propagates(self, agent_executor, mock):
        """Test inference errors are raised, not retried."""
        mock.script("creative", InferenceError("mock", "down", transient=True), "recovered")

        with pytest.raises(InferenceError):
            await agent_executor.step("creative", [ConversationTurn.user("go")])
        assert len(mock.calls_for("creative")) == 1

    @pytest.mark.asyncio
    async def test_unknown_agent(self, agent_executor):
        """Test unknown agents raise AgentNotFoundError."""
        with pytest.raises(AgentNotFoundError):
            await agent_executor.step("ghost", [])
