"""Tests for the per-tick need and emotion update."""

import pytest

from demiurge.config import SimulationTuning
from demiurge.decay import NeedDecayEngine, emotion_baseline
from demiurge.environment import EnvironmentState
from demiurge.errors import InvariantViolation
from demiurge.invariants import find_violations
from demiurge.schemas import Agent, Injury, Personality


def make_agent(**overrides) -> Agent:
    return Agent(id=overrides.pop("id", "ada"), name=overrides.pop("name", "Ada"), **overrides)


def test_single_tick_moves_needs_by_their_rates():
    engine = NeedDecayEngine(strict=False)
    agent = make_agent()

    engine.tick(agent, EnvironmentState(), now=1)

    physical = agent.physical_needs
    assert physical.hunger == pytest.approx(0.76)
    assert physical.thirst == pytest.approx(0.74)
    assert physical.fatigue == pytest.approx(0.77)
    assert physical.comfort == pytest.approx(0.69)
    assert physical.hygiene == pytest.approx(0.78)
    assert physical.pain == 0.0
    assert physical.health == 1.0

    social = agent.social_needs
    assert social.companionship == pytest.approx(0.68)
    assert social.belonging == pytest.approx(0.685)
    assert social.purpose == pytest.approx(0.695)


def test_elapsed_ticks_scale_the_update():
    engine = NeedDecayEngine(strict=False)
    agent = make_agent()

    engine.tick(agent, EnvironmentState(), now=3, elapsed=3)

    assert agent.physical_needs.hunger == pytest.approx(0.8 - 3 * 0.04)


def test_activity_regeneration_is_clamped_at_full():
    engine = NeedDecayEngine(strict=False)
    agent = make_agent(behavior={"current_activity": "eating"})

    engine.tick(agent, EnvironmentState(), now=1)

    assert agent.physical_needs.hunger == 1.0


def test_health_regenerates_only_when_basics_are_met():
    engine = NeedDecayEngine(strict=False)
    fed = make_agent(physical_needs={"health": 0.5})
    starving = make_agent(id="bram", physical_needs={"health": 0.5, "hunger": 0.3})

    engine.tick(fed, EnvironmentState(), now=1)
    engine.tick(starving, EnvironmentState(), now=1)

    assert fed.physical_needs.health == pytest.approx(0.51)
    # Hunger falls to 0.26, so the largest deficit is 0.74
    assert starving.physical_needs.health == pytest.approx(0.5 - 0.05 * 0.74)


def test_untreated_injury_blocks_regeneration_and_raises_pain():
    engine = NeedDecayEngine(strict=False)
    agent = make_agent(
        physical_needs={"health": 0.5},
        health={"injuries": [Injury(location="arm", severity=0.6)]},
    )

    engine.tick(agent, EnvironmentState(), now=1)

    assert agent.physical_needs.health < 0.5
    assert agent.physical_needs.pain == pytest.approx(0.6)


def test_bounds_hold_over_many_ticks():
    engine = NeedDecayEngine(strict=False)
    agent = make_agent(personality=Personality(neuroticism=1.0, optimism=0.0))

    for turn in range(1, 301):
        engine.tick(agent, EnvironmentState(), now=turn)

    assert find_violations(agent) == []
    assert agent.physical_needs.hunger == 0.0
    assert agent.social_needs.companionship == 0.0


def test_out_of_range_input_is_clamped_in_release_mode():
    engine = NeedDecayEngine(strict=False)
    agent = make_agent()
    agent.physical_needs.hunger = 1.5

    engine.tick(agent, EnvironmentState(), now=1)

    assert agent.physical_needs.hunger == pytest.approx(0.96)


def test_out_of_range_input_raises_in_strict_mode():
    engine = NeedDecayEngine(strict=True)
    agent = make_agent()
    agent.physical_needs.hunger = 1.5

    with pytest.raises(InvariantViolation) as exc_info:
        engine.tick(agent, EnvironmentState(), now=1)

    assert any("physical_needs.hunger" in item for item in exc_info.value.violations)


def test_deceased_agents_are_untouched():
    engine = NeedDecayEngine(strict=False)
    agent = make_agent(alive=False, died_at=2)
    snapshot = agent.model_dump()

    engine.tick(agent, EnvironmentState(), now=5)

    assert agent.model_dump() == snapshot


def test_emotions_relax_toward_personality_baseline():
    tuning = SimulationTuning()
    tuning.influence.stress_from_hunger = 0.0
    tuning.influence.stress_from_fatigue = 0.0
    engine = NeedDecayEngine(tuning, strict=False)
    agent = make_agent(emotions={"stress": 0.9})
    resting = emotion_baseline(agent.personality)["stress"]

    engine.tick(agent, EnvironmentState(), now=1)

    assert resting < agent.emotions.stress < 0.9
    assert agent.behavior.stress_level == agent.emotions.stress


def test_unused_skill_decays_after_grace_period():
    engine = NeedDecayEngine(strict=False)
    agent = make_agent(skills={"fishing": {"level": 0.5, "last_used": 0, "decay_rate": 0.1}})

    engine.tick(agent, EnvironmentState(), now=5)
    assert agent.skills["fishing"].level == 0.5

    engine.tick(agent, EnvironmentState(), now=11)
    assert agent.skills["fishing"].level == pytest.approx(0.4)


def test_ledger_settles_and_never_goes_negative():
    engine = NeedDecayEngine(strict=False)
    agent = make_agent(economy={"wealth": 3.0, "income": {"fishing": 1.0}, "expenses": {"rent": 5.0}})

    engine.tick(agent, EnvironmentState(), now=1)

    assert agent.economy.wealth == 0.0
    assert agent.economy.tier == "destitute"
