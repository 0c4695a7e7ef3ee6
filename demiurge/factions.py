"""
Faction Analytics.

`power_score` is the compatibility contract between the two faction shapes:

    advanced: 0.30*economy.wealth/100 + 0.25*military.strength/100
              + 0.20*technology.level/100 + 0.15*stability.overall/100
              + 0.10*population/10000
    legacy:   0.30*wealth/100 + 0.25*military/100 + 0.45*population/10000
              (missing wealth=50, military=50, population=1000)

Every consumer dispatches on the concrete variant; a record that predates the
advanced schema is parsed as LegacyFaction and scores without error.
"""

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel

from .schemas import AdvancedFaction, FactionChange, LegacyFaction, WorldState


AnyFaction = Union[LegacyFaction, AdvancedFaction]

LEGACY_DEFAULTS = {"wealth": 50.0, "military": 50.0, "population": 1000.0}

# Text-only changes: keyword -> military delta
KEYWORD_DELTAS = {"weakened": -10.0, "strengthened": 10.0}


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def faction_kind(faction: AnyFaction) -> Literal["legacy", "advanced"]:
    if isinstance(faction, AdvancedFaction):
        return "advanced"
    if isinstance(faction, LegacyFaction):
        return "legacy"
    raise TypeError(f"unsupported faction record: {type(faction).__name__}")


def legacy_value(faction: LegacyFaction, field: str) -> float:
    value = getattr(faction, field)
    return LEGACY_DEFAULTS[field] if value is None else value


def power_score(faction: AnyFaction) -> float:
    if isinstance(faction, AdvancedFaction):
        return (
            0.30 * (faction.economy.wealth / 100)
            + 0.25 * (faction.military.strength / 100)
            + 0.20 * (faction.technology.level / 100)
            + 0.15 * (faction.stability.overall / 100)
            + 0.10 * (faction.population / 10000)
        )
    if isinstance(faction, LegacyFaction):
        return (
            0.30 * (legacy_value(faction, "wealth") / 100)
            + 0.25 * (legacy_value(faction, "military") / 100)
            + 0.45 * (legacy_value(faction, "population") / 10000)
        )
    raise TypeError(f"unsupported faction record: {type(faction).__name__}")


def _military_delta(change: FactionChange) -> float:
    if change.has_numeric_delta():
        return change.military_delta
    text = change.changes.lower()
    return sum(delta for keyword, delta in KEYWORD_DELTAS.items() if keyword in text)


def apply_faction_change(faction: AnyFaction, change: FactionChange) -> AnyFaction:
    """Return a new faction record with `change` applied and every field clamped.

    Wealth, military, technology and stability stay within [0, 100]; population
    never goes below 0. Legacy fields that were never set keep their absence
    unless the change touches them, in which case the documented default is
    the starting point.
    """
    military_delta = _military_delta(change)

    if isinstance(faction, AdvancedFaction):
        updated = faction.model_copy(deep=True)
        updated.economy.wealth = _clamp(updated.economy.wealth + change.wealth_delta)
        updated.military.strength = _clamp(updated.military.strength + military_delta)
        updated.technology.level = _clamp(updated.technology.level + change.technology_delta)
        updated.stability.overall = _clamp(updated.stability.overall + change.stability_delta)
        updated.population = max(0.0, updated.population + change.population_delta)
        return updated

    if isinstance(faction, LegacyFaction):
        updates: Dict[str, float] = {}
        if change.wealth_delta:
            updates["wealth"] = _clamp(legacy_value(faction, "wealth") + change.wealth_delta)
        if military_delta:
            updates["military"] = _clamp(legacy_value(faction, "military") + military_delta)
        if change.population_delta:
            updates["population"] = max(0.0, legacy_value(faction, "population") + change.population_delta)
        return faction.model_copy(update=updates, deep=True)

    raise TypeError(f"unsupported faction record: {type(faction).__name__}")


class FactionStatus(BaseModel):
    name: str
    kind: Literal["legacy", "advanced"]
    power_score: float
    tier: str
    members: int
    living_members: int
    mean_member_health: Optional[float] = None
    mean_member_wealth: Optional[float] = None


POWER_TIERS = ((0.7, "dominant"), (0.5, "strong"), (0.3, "stable"), (0.15, "weak"))


def power_tier(score: float) -> str:
    for floor, label in POWER_TIERS:
        if score >= floor:
            return label
    return "collapsing"


def summarize_factions(world: WorldState) -> List[FactionStatus]:
    """Status per faction, strongest first (name breaks ties)."""
    statuses: List[FactionStatus] = []
    for faction in world.factions:
        members = [agent for agent in world.agents.values() if agent.faction == faction.name]
        living = [agent for agent in members if agent.alive]
        score = power_score(faction)
        statuses.append(
            FactionStatus(
                name=faction.name,
                kind=faction_kind(faction),
                power_score=round(score, 6),
                tier=power_tier(score),
                members=len(members),
                living_members=len(living),
                mean_member_health=(
                    sum(agent.physical_needs.health for agent in living) / len(living) if living else None
                ),
                mean_member_wealth=(
                    sum(agent.economy.wealth for agent in living) / len(living) if living else None
                ),
            )
        )
    statuses.sort(key=lambda status: (-status.power_score, status.name))
    return statuses


def balance_of_power(statuses: List[FactionStatus]) -> str:
    if not statuses:
        return "No organised powers"
    if len(statuses) == 1:
        return f"{statuses[0].name} stands alone"
    leader, runner_up = statuses[0], statuses[1]
    if leader.power_score - runner_up.power_score < 0.05:
        return f"Contested between {leader.name} and {runner_up.name}"
    return f"{leader.name} dominates"


def score_table(world: WorldState) -> Dict[str, float]:
    return {faction.name: power_score(faction) for faction in world.factions}
