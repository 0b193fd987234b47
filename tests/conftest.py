"""Shared fixtures for Tandem tests.

All inference goes through MockProvider; nothing touches the network.
"""

import pytest

from tandem import (
    AgentDefinition,
    AgentRegistry,
    Gateway,
    MockProvider,
    ToolExecutor,
    ToolRegistry,
    WorkflowEngine,
)
from tandem.workflow import AgentExecutor, LoopController


def make_agent(agent_id: str, tools=(), capabilities=(), **kwargs) -> AgentDefinition:
    return AgentDefinition(
        agent_id=agent_id,
        name=kwargs.pop("name", agent_id.title()),
        system_instructions=kwargs.pop("system_instructions", f"You are {agent_id}."),
        tools=tuple(tools),
        capabilities=tuple(capabilities),
        **kwargs,
    )


class RecordingSink:
    """TurnSink fake that keeps every appended turn."""

    def __init__(self):
        self.turns = []

    def append_turn(self, turn):
        self.turns.append(turn)


@pytest.fixture
def mock():
    return MockProvider(default_response="default answer")


@pytest.fixture
def gateway(mock):
    return Gateway().add_provider(mock)


@pytest.fixture
def registry():
    return AgentRegistry(
        [
            make_agent("research", tools=["lookup"], capabilities=["research"]),
            make_agent("code", tools=["lookup"], capabilities=["coding"]),
            make_agent("creative", capabilities=["writing"]),
        ]
    )


@pytest.fixture
def tool_registry():
    tools = ToolRegistry()

    @tools.tool(
        parameters={
            "type": "object",
            "properties": {"query": {"type": "string"}},
            "required": ["query"],
        }
    )
    def lookup(args):
        """Look something up."""
        return {"answer": f"found {args['query']}"}

    return tools


@pytest.fixture
def tool_executor(tool_registry):
    return ToolExecutor(tool_registry, max_workers=4, timeout=5.0)


@pytest.fixture
def agent_executor(registry, gateway, tool_executor):
    return AgentExecutor(registry, gateway, tool_executor)


@pytest.fixture
def loop(agent_executor):
    return LoopController(agent_executor)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def engine(registry, gateway, tool_executor, sink):
    return WorkflowEngine(registry, gateway, tool_executor, turn_sink=sink)
