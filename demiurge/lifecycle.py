"""Agent birth and death. Agents are never deleted, only marked deceased."""

from typing import Optional

from .errors import InputValidationError
from .schemas import Agent, WorldState


def spawn_agent(world: WorldState, agent: Agent, *, now: int) -> Agent:
    """Add a newborn to the world. The id must be unused and the record must be alive."""
    if agent.id in world.agents:
        raise InputValidationError(f"agent id '{agent.id}' already exists", field="births")
    if not agent.alive:
        raise InputValidationError(f"newborn '{agent.id}' cannot be deceased", field="births")
    newborn = agent.model_copy(deep=True)
    newborn.birth_turn = now
    newborn.behavior.activity_start = now
    world.agents[newborn.id] = newborn
    return newborn


def cause_of_death(agent: Agent, *, now: int, turns_per_year: int) -> Optional[str]:
    if agent.physical_needs.health <= 0:
        return "failing health"
    if agent.age(now, turns_per_year) > agent.health.life_expectancy:
        return "old age"
    return None


def check_mortality(agent: Agent, *, now: int, turns_per_year: int) -> Optional[str]:
    """Mark `agent` deceased if it died this turn; returns the cause or None."""
    if not agent.alive:
        return None
    cause = cause_of_death(agent, now=now, turns_per_year=turns_per_year)
    if cause is None:
        return None
    agent.alive = False
    agent.died_at = now
    agent.cause_of_death = cause
    agent.behavior.current_activity = "deceased"
    agent.behavior.activity_start = now
    agent.velocity.x = agent.velocity.y = agent.velocity.z = 0.0
    return cause
