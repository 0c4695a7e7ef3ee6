"""
Read-only projection of a committed world for the narrative collaborator.

The projection is built from the committed snapshot after a turn, never from a
working copy, so whatever the narrator describes is exactly what was stored.
It carries:

- world overview (name, turn, setup answers, regions, belief systems)
- faction summaries tagged legacy/advanced with their power scores
- environment summary and the current-state label
- the last N event narratives
- the world-delta of the turn that just committed
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .environment import EnvironmentSummary
from .factions import FactionStatus, summarize_factions
from .schemas import (
    AdvancedFaction,
    CurrentState,
    EventRecord,
    SetupConfig,
    WorldDelta,
    WorldState,
    narrative_text,
)


class FactionProjection(BaseModel):
    status: FactionStatus
    type: Optional[str] = None
    alignment: Optional[str] = None
    description: Optional[str] = None
    # Advanced factions expose their sections, legacy ones their flat scores
    details: Dict[str, float] = Field(default_factory=dict)


class AgentHighlight(BaseModel):
    id: str
    name: str
    faction: Optional[str] = None
    alive: bool
    mood: str
    health: float
    top_goal: Optional[str] = None


class RecentEvent(BaseModel):
    turn_number: int
    narrative: str
    player_action: Optional[str] = None


class NarrativeProjection(BaseModel):
    world_id: str
    name: str
    turn: int
    setup: Optional[SetupConfig] = None
    regions: List[str] = Field(default_factory=list)
    belief_systems: List[str] = Field(default_factory=list)
    current_state: CurrentState
    environment: EnvironmentSummary
    factions: List[FactionProjection] = Field(default_factory=list)
    agents: List[AgentHighlight] = Field(default_factory=list)
    recent_events: List[RecentEvent] = Field(default_factory=list)
    delta: Optional[WorldDelta] = None


def _faction_details(faction) -> Dict[str, float]:
    if isinstance(faction, AdvancedFaction):
        return {
            "wealth": faction.economy.wealth,
            "military": faction.military.strength,
            "technology": faction.technology.level,
            "stability": faction.stability.overall,
            "population": faction.population,
        }
    return {
        name: value
        for name in ("wealth", "military", "population")
        if (value := getattr(faction, name)) is not None
    }


def build_narrative_projection(
    world: WorldState,
    delta: Optional[WorldDelta],
    recent_events: List[EventRecord],
    limit: int = 3,
    *,
    agent_limit: int = 12,
) -> NarrativeProjection:
    """Assemble the narrator's view of a committed world.

    `recent_events` may arrive in any order; the newest `limit` events with a
    ready narrative are kept, most recent first.
    """
    statuses = {status.name: status for status in summarize_factions(world)}
    factions = [
        FactionProjection(
            status=statuses[faction.name],
            type=faction.type,
            alignment=faction.alignment,
            description=faction.description,
            details=_faction_details(faction),
        )
        for faction in world.factions
    ]
    factions.sort(key=lambda item: (-item.status.power_score, item.status.name))

    highlights: List[AgentHighlight] = []
    for agent_id in sorted(world.agents)[:agent_limit]:
        agent = world.agents[agent_id]
        highlights.append(
            AgentHighlight(
                id=agent.id,
                name=agent.name,
                faction=agent.faction,
                alive=agent.alive,
                mood=agent.emotions.dominant(),
                health=round(agent.physical_needs.health, 3),
                top_goal=agent.goals[0].description if agent.goals else None,
            )
        )

    ready = [event for event in recent_events if event.narrative is not None]
    ready.sort(key=lambda event: event.turn_number, reverse=True)
    recent = [
        RecentEvent(
            turn_number=event.turn_number,
            narrative=narrative_text(event.narrative),
            player_action=event.player_action,
        )
        for event in ready[:limit]
    ]

    return NarrativeProjection(
        world_id=world.id,
        name=world.name,
        turn=world.turn,
        setup=world.setup,
        regions=[region.name for region in world.regions],
        belief_systems=list(world.belief_systems),
        current_state=world.current_state.model_copy(deep=True),
        environment=EnvironmentSummary.of(world.environment),
        factions=factions,
        agents=highlights,
        recent_events=recent,
        delta=delta.model_copy(deep=True) if delta else None,
    )
