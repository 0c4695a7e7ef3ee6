"""
Invariant checking for agents and worlds.

Bounds are not duplicated here: the walker reads the `ge`/`le`/`gt`/`lt`
constraints that the schemas declare through `Field(...)` and checks (or
clamps) every numeric field reachable from a model, including models nested in
lists and dicts.

Two uses:
- `find_violations` / `check_agent` / `check_world` back the orchestrator's
  post-update check, which raises InvariantViolation and aborts the turn.
- `clamp_bounded_fields` backs the decay engine's release-mode precondition
  handling (out-of-range input is clamped silently unless strict mode is on).
"""

import math
from typing import Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel

from .errors import InvariantViolation
from .schemas import Agent, WorldState


def _bounds(field_info) -> Tuple[Optional[float], Optional[float], bool, bool]:
    """Return (low, high, low_exclusive, high_exclusive) from constraint metadata."""
    low = high = None
    low_exclusive = high_exclusive = False
    for constraint in field_info.metadata:
        if getattr(constraint, "ge", None) is not None:
            low = constraint.ge
        if getattr(constraint, "gt", None) is not None:
            low, low_exclusive = constraint.gt, True
        if getattr(constraint, "le", None) is not None:
            high = constraint.le
        if getattr(constraint, "lt", None) is not None:
            high, high_exclusive = constraint.lt, True
    return low, high, low_exclusive, high_exclusive


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _children(value, path: str) -> Iterator[Tuple[BaseModel, str]]:
    if isinstance(value, BaseModel):
        yield value, path
    elif isinstance(value, dict):
        for key, item in value.items():
            if isinstance(item, BaseModel):
                yield item, f"{path}[{key!r}]"
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            if isinstance(item, BaseModel):
                yield item, f"{path}[{index}]"


def _walk(model: BaseModel, path: str) -> Iterator[Tuple[BaseModel, str, str, object, tuple]]:
    for name, field_info in type(model).model_fields.items():
        value = getattr(model, name)
        field_path = f"{path}.{name}" if path else name
        if _is_number(value):
            yield model, name, field_path, value, _bounds(field_info)
        for child, child_path in _children(value, field_path):
            yield from _walk(child, child_path)


def find_violations(model: BaseModel, path: str = "") -> List[str]:
    """List every numeric field outside its declared range (NaN always counts)."""
    problems: List[str] = []
    for _, _, field_path, value, (low, high, low_ex, high_ex) in _walk(model, path):
        if isinstance(value, float) and math.isnan(value):
            problems.append(f"{field_path} is NaN")
            continue
        if low is not None and (value < low or (low_ex and value == low)):
            problems.append(f"{field_path}={value} below {low}")
        if high is not None and (value > high or (high_ex and value == high)):
            problems.append(f"{field_path}={value} above {high}")
    return problems


def clamp_bounded_fields(model: BaseModel) -> int:
    """Clamp every inclusive-bounded numeric field into range; returns fields changed."""
    changed = 0
    for owner, name, _, value, (low, high, _, _) in _walk(model, ""):
        clamped = value
        if isinstance(value, float) and math.isnan(value):
            clamped = low if low is not None else 0.0
        if low is not None and clamped < low:
            clamped = low
        if high is not None and clamped > high:
            clamped = high
        if clamped != value:
            # Bypass frozen models: clamping only happens on release-mode input repair
            object.__setattr__(owner, name, type(value)(clamped))
            changed += 1
    return changed


def agent_structure_violations(agent: Agent) -> List[str]:
    problems: List[str] = []
    prefix = f"agents[{agent.id!r}]"
    if agent.id in agent.relationships:
        problems.append(f"{prefix} holds a relationship with itself")
    if len(agent.memories) > agent.cognition.memory_capacity:
        problems.append(
            f"{prefix} retains {len(agent.memories)} memories, capacity {agent.cognition.memory_capacity}"
        )
    known = {memory.id for memory in agent.memories}
    stale = [mid for mid in agent.working_memory + agent.long_term_memory if mid not in known]
    if stale:
        problems.append(f"{prefix} memory index references evicted ids {sorted(set(stale))}")
    if not agent.alive and agent.died_at is None:
        problems.append(f"{prefix} is deceased without died_at")
    return problems


def check_agent(agent: Agent) -> None:
    problems = find_violations(agent, f"agents[{agent.id!r}]") + agent_structure_violations(agent)
    if problems:
        raise InvariantViolation(violations=problems)


def check_world(world: WorldState, *, turn: Optional[int] = None) -> None:
    """Check every bound and structural rule across the world."""
    problems = find_violations(world)
    for agent in world.agents.values():
        problems.extend(agent_structure_violations(agent))
    if problems:
        raise InvariantViolation(violations=problems, turn=turn)


def check_pair_updates(
    world: WorldState,
    *,
    turn: int,
    interactions: Iterable[Tuple[str, str, str]],
) -> None:
    """Both sides of every (initiator_id, recipient_id, event_id) must carry the event and turn stamp."""
    problems: List[str] = []
    for initiator_id, recipient_id, event_id in interactions:
        for owner_id, other_id in ((initiator_id, recipient_id), (recipient_id, initiator_id)):
            owner = world.agents.get(owner_id)
            view = owner.relationships.get(other_id) if owner else None
            if view is None:
                problems.append(f"interaction {event_id}: {owner_id} has no view of {other_id}")
                continue
            if view.last_interaction != turn or event_id not in view.shared_experiences:
                problems.append(f"interaction {event_id}: {owner_id}->{other_id} updated asymmetrically")
    if problems:
        raise InvariantViolation(violations=problems, turn=turn)


def check_transition(
    before: WorldState,
    after: WorldState,
    *,
    turn: int,
    abandoned_goals: Iterable[str] = (),
) -> None:
    """Check rules that relate the pre-turn and post-turn snapshots."""
    problems: List[str] = []
    abandoned = set(abandoned_goals)

    for agent_id, old in before.agents.items():
        new = after.agents.get(agent_id)
        if new is None:
            problems.append(f"agents[{agent_id!r}] was deleted instead of marked deceased")
            continue

        for other_id, old_rel in old.relationships.items():
            new_rel = new.relationships.get(other_id)
            if new_rel is not None and new_rel.last_interaction < old_rel.last_interaction:
                problems.append(
                    f"agents[{agent_id!r}].relationships[{other_id!r}].last_interaction went backwards"
                )

        new_goals = {goal.id: goal for goal in new.goals + new.dormant_goals}
        for goal in old.goals + old.dormant_goals:
            current = new_goals.get(goal.id)
            if current is not None and current.progress < goal.progress and goal.id not in abandoned:
                problems.append(f"agents[{agent_id!r}] goal {goal.id} progress decreased")

    if problems:
        raise InvariantViolation(violations=problems, turn=turn)
