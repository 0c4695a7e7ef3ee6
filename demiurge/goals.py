"""
Goal Engine.

Per turn, for every active and dormant goal of an agent:

(a) urgency grows with the time since the goal last progressed, and jumps
    once a deadline is within the configured horizon;
(b) score = w_priority * priority + w_urgency * urgency + w_alignment * alignment,
    where alignment measures how strongly the agent's current needs and
    emotions push toward that goal type (see GOAL_DRIVES);
(c) goals are ordered by score descending, ties broken by created_at
    ascending and then id, so older goals win ties and ordering is stable;
(d) the top `max_active` goals stay active, the rest are demoted to the
    dormant list (never deleted).

Progress is never invented here. It only moves through `resolve_progress`,
which the orchestrator calls for explicit goal updates.
"""

from typing import Dict, List, Optional, Tuple

from .config import GoalWeights
from .errors import InputValidationError, NotFoundError
from .schemas import Agent, Goal, GoalType


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# Goal type -> drives that make it pressing. Needs contribute their deficit
# (1 - satisfaction); emotions contribute their level.
GOAL_DRIVES: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "survival": (("physical", "hunger"), ("physical", "thirst"), ("physical", "health")),
    "social": (("social", "companionship"), ("social", "belonging")),
    "romantic": (("social", "love"), ("emotion", "love")),
    "family": (("social", "belonging"), ("social", "love")),
    "achievement": (("social", "achievement"), ("emotion", "excitement")),
    "career": (("social", "achievement"), ("social", "respect")),
    "creative": (("emotion", "curiosity"), ("social", "purpose")),
    "knowledge": (("emotion", "curiosity"),),
    "spiritual": (("social", "purpose"), ("emotion", "anxiety")),
    "power": (("social", "autonomy"), ("social", "respect")),
    "wealth": (("social", "security"),),
    "legacy": (("social", "purpose"), ("social", "achievement")),
}


def drive_strength(agent: Agent, source: str, name: str) -> float:
    if source == "physical":
        return 1.0 - getattr(agent.physical_needs, name)
    if source == "social":
        return 1.0 - getattr(agent.social_needs, name)
    return getattr(agent.emotions, name)


def alignment(agent: Agent, goal_type: str) -> float:
    drives = GOAL_DRIVES.get(goal_type, ())
    if not drives:
        return 0.0
    return _clamp(sum(drive_strength(agent, source, name) for source, name in drives) / len(drives))


def _order_key(goal: Goal):
    return (-goal.score, goal.created_at, goal.id)


class GoalEngine:
    """Re-prioritises goals and applies explicit progress resolutions."""

    def __init__(self, weights: Optional[GoalWeights] = None):
        self.weights = weights or GoalWeights()

    def score(self, agent: Agent, goal: Goal) -> float:
        w = self.weights
        return w.priority * goal.priority + w.urgency * goal.urgency + w.alignment * alignment(agent, goal.type)

    def step(self, agent: Agent, *, now: int, elapsed: int = 1) -> List[Goal]:
        """Grow urgency, rescore, re-sort and cap. Returns goals demoted this call."""
        w = self.weights
        previously_active = {goal.id for goal in agent.goals}
        pool = agent.goals + agent.dormant_goals

        for goal in pool:
            staleness = max(0, now - goal.last_progress)
            goal.urgency = _clamp(goal.urgency + w.urgency_growth * staleness * elapsed)
            if goal.deadline is not None:
                remaining = goal.deadline - now
                if remaining <= w.deadline_horizon:
                    floor = 1.0 - max(0, remaining) / (w.deadline_horizon + 1)
                    goal.urgency = _clamp(max(goal.urgency, floor))
            goal.score = self.score(agent, goal)

        ordered = sorted(pool, key=_order_key)
        agent.goals = ordered[: w.max_active]
        agent.dormant_goals = ordered[w.max_active:]
        return [goal for goal in agent.dormant_goals if goal.id in previously_active]

    def add_goal(self, agent: Agent, goal: Goal) -> Goal:
        if self._locate(agent, goal.id) is not None:
            raise InputValidationError(f"goal '{goal.id}' already exists", field="goal.id")
        if goal.target_agent == agent.id:
            raise InputValidationError("a goal cannot target its own agent", field="goal.target_agent")
        goal.score = self.score(agent, goal)
        agent.goals.append(goal)
        return goal

    def propose_goals(self, agent: Agent, *, now: int) -> List[Goal]:
        """Spawn drive goals for critical needs unless one of that type already exists."""
        critical = self.weights.critical_need
        physical = agent.physical_needs
        existing = {goal.type for goal in agent.goals + agent.dormant_goals}
        proposals: List[Tuple[GoalType, str, float]] = []

        if min(physical.hunger, physical.thirst, physical.health) < critical:
            proposals.append(("survival", "Find food, water and safety", 0.9))
        if agent.social_needs.companionship < critical:
            proposals.append(("social", "Seek out companionship", 0.6))

        created: List[Goal] = []
        for goal_type, description, priority in proposals:
            if goal_type in existing:
                continue
            goal = Goal(
                id=f"{agent.id}-{goal_type}-{now}",
                type=goal_type,
                description=description,
                priority=priority,
                created_at=now,
                last_progress=now,
            )
            created.append(self.add_goal(agent, goal))
        return created

    def resolve_progress(self, agent: Agent, goal_id: str, progress: float, *, now: int) -> Goal:
        """Set progress on a goal. Progress may only move forward.

        A goal reaching 1.0 leaves the goal lists and its description is
        appended to `agent.achievements`.

        Raises:
            NotFoundError: No active or dormant goal has this id
            InputValidationError: Progress is out of range or would decrease
        """
        goal = self._require(agent, goal_id)
        if not 0.0 <= progress <= 1.0:
            raise InputValidationError(f"progress {progress} outside [0, 1]", field="progress")
        if progress < goal.progress:
            raise InputValidationError(
                f"progress cannot decrease ({goal.progress} -> {progress}); abandon the goal instead",
                field="progress",
            )
        goal.progress = progress
        goal.last_progress = max(goal.last_progress, now)
        goal.urgency = _clamp(goal.urgency * 0.5)
        if goal.progress >= 1.0:
            self._remove(agent, goal_id)
            agent.achievements.append(goal.description)
        return goal

    def abandon(self, agent: Agent, goal_id: str) -> Goal:
        goal = self._require(agent, goal_id)
        self._remove(agent, goal_id)
        return goal

    def _locate(self, agent: Agent, goal_id: str) -> Optional[Goal]:
        for goal in agent.goals + agent.dormant_goals:
            if goal.id == goal_id:
                return goal
        return None

    def _require(self, agent: Agent, goal_id: str) -> Goal:
        goal = self._locate(agent, goal_id)
        if goal is None:
            raise NotFoundError(kind="Goal", identifier=goal_id, scope=f"agent '{agent.id}'")
        return goal

    @staticmethod
    def _remove(agent: Agent, goal_id: str) -> None:
        agent.goals = [goal for goal in agent.goals if goal.id != goal_id]
        agent.dormant_goals = [goal for goal in agent.dormant_goals if goal.id != goal_id]
