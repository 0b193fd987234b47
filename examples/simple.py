"""Tandem examples.

Run offline:        python examples/simple.py
Run against OpenAI: OPENAI_API_KEY=sk-... python examples/simple.py

Without an API key every agent answers through the mock provider, with
scripted replies so the output still tells a story.
"""

import asyncio

from tandem import Tandem, ToolCallRequest


async def sequential_pipeline(t: Tandem, offline: bool):
    """Example 1: Research, then write."""
    print("\n" + "=" * 50)
    print("EXAMPLE 1: SEQUENTIAL PIPELINE")
    print("=" * 50)

    if offline:
        t.mock.script(
            "research-agent",
            [ToolCallRequest(name="search_web", arguments={"query": "ocean tides"})],
            "Tides are driven by the moon's gravity, with two highs a day.",
        )
        t.mock.script("creative-agent", "Twice a day the sea leans toward the moon and sighs back.")

    result = await t.sequential(["research-agent", "creative-agent"], "Write a short piece about ocean tides")

    print(f"Status: {result.status.value}")
    for agent_id, outcome in result.outcomes.items():
        print(f"\n{agent_id} ({outcome.status.value}, {outcome.step_count} steps):\n{outcome.output}")


async def parallel_opinions(t: Tandem, offline: bool):
    """Example 2: Independent opinions."""
    print("\n" + "=" * 50)
    print("EXAMPLE 2: PARALLEL")
    print("=" * 50)

    if offline:
        t.mock.script("research-agent", "Solar capacity doubled in three years.")
        t.mock.script("analyst-agent", "Storage cost is the deciding factor.")

    result = await t.parallel(["research-agent", "analyst-agent"], "Assess solar power")

    for branch in result.output:
        print(f"{branch.agent_id}: {branch.output}")


async def routed_request(t: Tandem, offline: bool):
    """Example 3: Route by capability."""
    print("\n" + "=" * 50)
    print("EXAMPLE 3: ROUTING")
    print("=" * 50)

    if offline:
        t.mock.script("code-agent", "def is_even(n):\n    return n % 2 == 0")

    result = await t.route(["code-agent", "creative-agent"], "Help me with coding an is_even function")

    print(f"Routed to: {result.selected_agent}")
    print(result.output)


async def refinement(t: Tandem, offline: bool):
    """Example 4: Draft, score, revise."""
    print("\n" + "=" * 50)
    print("EXAMPLE 4: EVALUATOR-OPTIMIZER")
    print("=" * 50)

    if offline:
        t.mock.script("creative-agent", "Moon pulls the water", "Silver moon tugs the tide / the shore exhales")
        t.mock.script(
            "analyst-agent",
            "SCORE: 55\nFEEDBACK: Not a haiku yet; add imagery and structure.",
            "SCORE: 92\nFEEDBACK: Vivid and concise.",
        )

    result = await t.refine("creative-agent", "analyst-agent", "Write a haiku about tides", threshold=0.9)

    for record in result.rounds:
        print(f"Round {record.round}: score={record.score:.2f} feedback={record.feedback}")
    print(f"\nFinal: {result.output}")


async def main():
    t = Tandem()
    offline = t.gateway.default_provider == "mock"
    if offline:
        print("No API key found, using the mock provider.")

    await sequential_pipeline(t, offline)
    await parallel_opinions(t, offline)
    await routed_request(t, offline)
    await refinement(t, offline)

    print(f"\nTotal cost: ${t.cost:.4f}")


if __name__ == "__main__":
    asyncio.run(main())
