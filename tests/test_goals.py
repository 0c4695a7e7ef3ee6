"""Tests for goal prioritisation and progress resolution."""

import pytest

from demiurge.config import GoalWeights
from demiurge.errors import InputValidationError, NotFoundError
from demiurge.goals import GoalEngine, alignment
from demiurge.schemas import Agent, Goal


def make_goal(goal_id: str, **overrides) -> Goal:
    fields = {"type": "creative", "description": goal_id.replace("-", " ")}
    fields.update(overrides)
    return Goal(id=goal_id, **fields)


def test_ties_are_broken_by_creation_time():
    engine = GoalEngine()
    agent = Agent(
        id="ada",
        name="Ada",
        goals=[
            make_goal("a-late", created_at=3, last_progress=5),
            make_goal("b-early", created_at=1, last_progress=5),
        ],
    )

    engine.step(agent, now=5)

    assert [goal.id for goal in agent.goals] == ["b-early", "a-late"]
    assert agent.goals[0].score == agent.goals[1].score


def test_higher_score_comes_first():
    engine = GoalEngine()
    agent = Agent(
        id="ada",
        name="Ada",
        goals=[make_goal("minor", priority=0.2), make_goal("major", priority=0.9)],
    )

    engine.step(agent, now=0)

    assert agent.goals[0].id == "major"


def test_goals_beyond_the_cap_become_dormant():
    engine = GoalEngine(GoalWeights(max_active=1))
    agent = Agent(
        id="ada",
        name="Ada",
        goals=[make_goal("minor", priority=0.2), make_goal("major", priority=0.9)],
    )

    demoted = engine.step(agent, now=0)

    assert [goal.id for goal in agent.goals] == ["major"]
    assert [goal.id for goal in agent.dormant_goals] == ["minor"]
    assert [goal.id for goal in demoted] == ["minor"]


def test_urgency_grows_with_staleness_and_deadlines():
    engine = GoalEngine(GoalWeights(urgency_growth=0.01, deadline_horizon=3))
    agent = Agent(
        id="ada",
        name="Ada",
        goals=[
            make_goal("stale", last_progress=0),
            make_goal("due", last_progress=10, deadline=11),
        ],
    )

    engine.step(agent, now=10)
    goals = {goal.id: goal for goal in agent.goals}

    assert goals["stale"].urgency == pytest.approx(0.1)
    # One turn left inside a three-turn horizon
    assert goals["due"].urgency == pytest.approx(0.75)


def test_progress_only_moves_forward():
    engine = GoalEngine()
    agent = Agent(id="ada", name="Ada", goals=[make_goal("weir", progress=0.5)])

    engine.resolve_progress(agent, "weir", 0.6, now=2)
    with pytest.raises(InputValidationError):
        engine.resolve_progress(agent, "weir", 0.4, now=3)

    assert agent.goals[0].progress == 0.6
    assert agent.goals[0].last_progress == 2


def test_completed_goal_moves_to_achievements():
    engine = GoalEngine()
    agent = Agent(id="ada", name="Ada", goals=[make_goal("build-the-weir")])

    goal = engine.resolve_progress(agent, "build-the-weir", 1.0, now=4)

    assert goal.progress == 1.0
    assert agent.goals == []
    assert agent.achievements == ["build the weir"]


def test_unknown_goal_raises_not_found():
    engine = GoalEngine()
    agent = Agent(id="ada", name="Ada")

    with pytest.raises(NotFoundError):
        engine.resolve_progress(agent, "missing", 0.5, now=1)
    with pytest.raises(NotFoundError):
        engine.abandon(agent, "missing")


def test_goal_cannot_target_its_owner():
    engine = GoalEngine()
    agent = Agent(id="ada", name="Ada")

    with pytest.raises(InputValidationError):
        engine.add_goal(agent, make_goal("self", type="social", target_agent="ada"))


def test_critical_hunger_proposes_one_survival_goal():
    engine = GoalEngine()
    agent = Agent(id="ada", name="Ada", physical_needs={"hunger": 0.1})

    created = engine.propose_goals(agent, now=3)
    again = engine.propose_goals(agent, now=4)

    assert [goal.id for goal in created] == ["ada-survival-3"]
    assert again == []
    # Deficits: hunger 0.9, thirst 0.2, health 0.0
    assert alignment(agent, "survival") == pytest.approx(1.1 / 3)
