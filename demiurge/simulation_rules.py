"""
SimulationRules interface for the world-level half of a turn.

Agent-level updates (decay, memory, relationships, goals) are fixed engines.
What varies between worlds is how the shared environment evolves and which
interventions a world accepts, so that part is pluggable:

- advance_world(): runs once per turn, after every agent update (the
  AdvancingWorld phase). Must be deterministic for a given world and turn.
- validate_intervention(): cheap structural checks before Resolving starts.
- apply_environment_change(): how declared environment consequences land.
- Lifecycle hook: on_world_genesis().

Design principle: if it can be calculated, calculate it. Nothing here calls
the narrative collaborator.
"""

from abc import ABC, abstractmethod
from typing import List

from .environment import advance_environment, apply_resource_deltas, classify_weather
from .factions import balance_of_power, power_score, summarize_factions
from .schemas import EnvironmentChange, Intervention, WorldState


def format_factions_generic(world: WorldState) -> str:
    """One-line faction summary for console output, strongest first.

    Example output:
    "Alpha=0.480 (legacy), Beta=0.615 (advanced)"
    """
    if not world.factions:
        return ""
    ranked = sorted(world.factions, key=lambda faction: (-power_score(faction), faction.name))
    return ", ".join(f"{faction.name}={power_score(faction):.3f} ({faction.kind})" for faction in ranked)


class SimulationRules(ABC):
    """Abstract base class for world-level rules."""

    @abstractmethod
    def advance_world(self, world: WorldState, turn: int) -> WorldState:
        """Advance environment and time systems by one turn, in place.

        Args:
            world: The turn's working copy (already carries agent updates)
            turn: The turn number being committed

        Returns:
            The same world instance
        """

    @abstractmethod
    def intervention_problems(self, intervention: Intervention, world: WorldState) -> List[str]:
        """Describe why `intervention` cannot be applied to `world` (empty if it can)."""

    def validate_intervention(self, intervention: Intervention, world: WorldState) -> bool:
        return not self.intervention_problems(intervention, world)

    def apply_environment_change(self, world: WorldState, change: EnvironmentChange) -> None:
        weather = world.environment.weather
        ecosystem = world.environment.ecosystem
        weather.temperature += change.temperature_delta
        if change.condition:
            weather.condition = change.condition
        elif change.temperature_delta:
            weather.condition = classify_weather(weather)
        ecosystem.pollution = max(0.0, min(1.0, ecosystem.pollution + change.pollution_delta))
        ecosystem.biodiversity = max(0.0, min(1.0, ecosystem.biodiversity + change.biodiversity_delta))
        apply_resource_deltas(ecosystem, change.resource_deltas)
        world.current_state.weather = weather.condition

    def on_world_genesis(self, world: WorldState) -> WorldState:
        """Hook called once when a world is first stored."""
        return world

    def format_faction_summary(self, world: WorldState) -> str:
        return format_factions_generic(world)


class DefaultSimulationRules(SimulationRules):
    """Seasonal calendar, seeded weather and a renewable-resource ecosystem."""

    def advance_world(self, world: WorldState, turn: int) -> WorldState:
        advance_environment(
            world.environment,
            seed=world.seed,
            turn=turn,
            turns_per_year=world.turns_per_year,
            population=len(world.living_agent_ids()),
        )
        self.refresh_current_state(world)
        return world

    def refresh_current_state(self, world: WorldState) -> None:
        summary = world.current_state
        summary.year = world.environment.calendar.year
        summary.season = world.environment.calendar.season
        summary.weather = world.environment.weather.condition
        summary.balance_of_power = balance_of_power(summarize_factions(world))

    def intervention_problems(self, intervention: Intervention, world: WorldState) -> List[str]:
        problems: List[str] = []
        consequences = intervention.consequences
        for event in consequences.interactions:
            if event.initiator_id == event.recipient_id:
                problems.append(f"interaction {event.id} pairs agent '{event.initiator_id}' with itself")
        queued = {newborn.id for newborn in world.pending_consequences.births} if world.pending_consequences else set()
        seen = set(world.agents)
        for newborn in consequences.births:
            if newborn.id in queued:
                problems.append(f"birth reuses agent id '{newborn.id}' already queued by the previous narrative")
            elif newborn.id in seen:
                problems.append(f"birth reuses agent id '{newborn.id}'")
            seen.add(newborn.id)
        for update in consequences.goal_updates:
            if update.progress is None and not update.abandon:
                problems.append(f"goal update for '{update.goal_id}' sets neither progress nor abandon")
        return problems

    def on_world_genesis(self, world: WorldState) -> WorldState:
        self.refresh_current_state(world)
        return world
