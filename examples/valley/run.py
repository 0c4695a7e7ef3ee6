"""
Example: The Quiet Valley
=========================

WHAT THIS SHOWS:
- Loading a world from examples/scenarios/valley.json
- Advancing a few turns with and without a player intervention
- Deterministic fallback narrative (no API key needed)

Set NARRATOR=llm to use the configured LLM provider instead.

RUN:
    python -m examples.valley.run
"""

import asyncio
import os

from demiurge import (
    FactionChange,
    FallbackNarrativeGenerator,
    InMemoryPersistence,
    Intervention,
    LLMNarrativeGenerator,
    TurnOrchestrator,
    WorldStateChanges,
    load_scenario,
)
from demiurge.orchestrator import describe_result
from demiurge.schemas import narrative_text


def print_delta(turn, previous, world, delta):
    deaths = [c.agent_id for c in delta.agent_crossings if c.direction == "died"]
    if deaths:
        print(f"  [Analysis] Turn {turn}: lost {', '.join(deaths)}")


async def main() -> None:
    narrator = LLMNarrativeGenerator() if os.getenv("NARRATOR") == "llm" else FallbackNarrativeGenerator()
    orchestrator = TurnOrchestrator(
        persistence=InMemoryPersistence(),
        narrator=narrator,
        tick_listeners=[print_delta],
    )

    world = await orchestrator.create_world(load_scenario("valley"))

    # Two quiet turns
    for _ in range(2):
        result = await orchestrator.advance_turn(world.id)
        print(describe_result(result))

    # A divine act: the river floods the clans' stores
    flood = Intervention(
        source="divine",
        decision="Command the river to rise over the Riverlands",
        consequences=WorldStateChanges(
            faction_changes=[FactionChange(faction_name="River Clans", wealth_delta=-20)],
            new_events=["The river swallowed the winter stores"],
        ),
        expected_turn=result.world.turn,
    )
    result = await orchestrator.advance_turn(world.id, flood)
    print(describe_result(result))
    if result.event.narrative is not None:
        print()
        print(narrative_text(result.event.narrative))
        for choice in result.event.choices:
            print(f"  {choice.icon or '-'} {choice.text}")


if __name__ == "__main__":
    asyncio.run(main())
