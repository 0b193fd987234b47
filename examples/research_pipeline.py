"""Example: Research Pipeline wired by hand.

This example builds the pieces the Tandem client normally wires for you:
1. An agent registry with a researcher, a summarizer and a planner
2. A tool registry with a custom tool and a nested "summarize" workflow
3. A turn sink that records the conversation
4. A streamed sequential workflow with step events printed live

It runs offline against the mock provider.
"""

import asyncio

from tandem import (
    AgentDefinition,
    AgentRegistry,
    ConversationTurn,
    Gateway,
    MockProvider,
    ToolCallRequest,
    ToolExecutor,
    ToolRegistry,
    WorkflowConfig,
    WorkflowEngine,
    WorkflowPattern,
    configure_logging,
    workflow_tool,
)


class Transcript:
    """Turn sink that keeps every turn in memory."""

    def __init__(self):
        self.turns: list[ConversationTurn] = []

    def append_turn(self, turn: ConversationTurn) -> None:
        self.turns.append(turn)


async def main():
    configure_logging(level="INFO")

    # Agents
    registry = AgentRegistry()
    registry.register(AgentDefinition(
        agent_id="researcher",
        name="Research Agent",
        system_instructions="You are a research assistant. Use count_sources before answering.",
        tools=("count_sources", "summarize"),
        capabilities=("research",),
    ))
    registry.register(AgentDefinition(
        agent_id="summarizer",
        name="Summarization Agent",
        system_instructions="You are a summarization expert. Reply with three bullet points.",
        capabilities=("summarization",),
    ))
    registry.register(AgentDefinition(
        agent_id="planner",
        name="Planning Agent",
        system_instructions="Turn the summary into a short action plan.",
        capabilities=("planning",),
    ))

    # Tools
    tools = ToolRegistry()

    @tools.tool(parameters={
        "type": "object",
        "properties": {"topic": {"type": "string"}},
        "required": ["topic"],
    })
    def count_sources(args):
        """Count known sources for a topic."""
        return {"topic": args["topic"], "sources": 12}

    # Scripted model replies
    mock = MockProvider()
    mock.script(
        "researcher",
        [
            ToolCallRequest(name="count_sources", arguments={"topic": "AI in healthcare"}),
            ToolCallRequest(name="summarize", arguments={"input": "AI triage tools cut wait times."}),
        ],
        "Twelve sources agree: AI triage and imaging tools are the most mature.",
    )
    mock.script("summarizer", "- triage tools cut waits", "- imaging is mature\n- regulation lags\n- data is siloed")
    mock.script("planner", "1. Pilot triage\n2. Audit imaging vendors\n3. Form a data council")

    transcript = Transcript()
    engine = WorkflowEngine(
        registry,
        Gateway().add_provider(mock),
        ToolExecutor(tools, max_workers=4, timeout=10.0),
        turn_sink=transcript,
    )

    # A workflow exposed as a tool: the researcher can delegate summaries.
    summarize = WorkflowConfig(pattern=WorkflowPattern.SEQUENTIAL, agents=("summarizer",), name="summarize")
    tools.register(workflow_tool(engine, summarize, name="summarize", description="Summarize a passage"))

    config = WorkflowConfig(
        workflow_id="research-pipeline",
        pattern=WorkflowPattern.SEQUENTIAL,
        agents=("researcher", "summarizer", "planner"),
        max_steps=5,
        timeout_seconds=60,
    )

    run = engine.stream(config, [ConversationTurn.user("Research AI in healthcare")])
    async for event in run:
        print(f"[{event.agent_id} step {event.step_index}] {event.state.value}: {event.partial_output}")

    result = await run.result()
    print(f"\nStatus: {result.status.value} in {result.elapsed_seconds:.2f}s")
    print(f"\nPlan:\n{result.outcomes['planner'].output}")
    print(f"\nTranscript has {len(transcript.turns)} turns")


if __name__ == "__main__":
    asyncio.run(main())
