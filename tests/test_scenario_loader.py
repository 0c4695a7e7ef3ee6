"""Tests for scenario loading and world genesis."""

import json

import pytest

from demiurge.config import Config
from demiurge.schemas import AdvancedFaction, Agent, LegacyFaction, SetupConfig
from demiurge.scenario import ScenarioLoader, genesis, load_scenario


def make_setup(**overrides) -> SetupConfig:
    data = {
        "worldType": "post-apocalyptic",
        "supremeBeing": {"name": "Vesper", "type": "watcher", "purpose": "To see what grows from ash"},
        "creationRules": {"time": "fluid", "death": "rebirth", "nature": "chaotic", "morality": "grey"},
        "inhabitants": "beasts",
        "simulationSpeed": "time-skip",
    }
    data.update(overrides)
    return SetupConfig.model_validate(data)


def test_loads_the_bundled_valley_scenario():
    world = ScenarioLoader().load("valley")

    assert world.id == "valley"
    assert world.turn == 0
    assert world.is_setup_complete
    assert set(world.agents) == {"ada", "bram", "cora"}
    assert world.agents["cora"].physical_needs.hunger == 0.3
    assert isinstance(world.get_faction("River Clans"), LegacyFaction)
    assert isinstance(world.get_faction("Hill Folk"), AdvancedFaction)
    assert world.environment.climate.volatility == 0.15
    assert world.metadata["supreme_being"] == "Aurel"
    assert Config.SCENARIOS_DIR.name == "scenarios"


def test_load_scenario_shortcut_matches_loader():
    assert load_scenario("valley").model_dump() == ScenarioLoader().load("valley").model_dump()


def test_missing_scenario_raises_file_not_found(tmp_path):
    with pytest.raises(FileNotFoundError):
        ScenarioLoader(tmp_path).load("absent")


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"id": "x", "agents": []}, "setup"),
        ({"id": "x", "setup": {}, "agents": {}}, "must be a list"),
        (
            {"id": "x", "setup": {}, "agents": [{"id": "a", "name": "A"}, {"id": "a", "name": "B"}]},
            "unique",
        ),
    ],
)
def test_malformed_scenarios_raise_value_error(tmp_path, payload, message):
    (tmp_path / "broken.json").write_text(json.dumps(payload), "utf-8")

    with pytest.raises(ValueError, match=message):
        ScenarioLoader(tmp_path).load("broken")


def test_genesis_maps_setup_answers_to_engine_parameters():
    world = genesis(
        make_setup(),
        world_id="ash",
        agents=[Agent(id="wolf", name="Grey"), Agent(id="seer", name="Ila", species="human")],
        factions=[{"name": "Pack", "military": 70}],
    )

    assert world.ticks_per_turn == 4
    assert world.turns_per_year == 2
    assert world.environment.climate.volatility == 0.8
    assert world.environment.ecosystem.pollution == 0.5
    assert world.agents["wolf"].species == "beast"
    assert world.agents["seer"].species == "human"
    assert world.metadata["rebirth"] is True
    assert world.name == "Vesper's post-apocalyptic world"
    assert world.belief_systems == ["Vesper is the creator and guide of all life"]
    assert isinstance(world.factions[0], LegacyFaction)


def test_genesis_does_not_mutate_inputs():
    agent = Agent(id="wolf", name="Grey")

    world = genesis(make_setup(), world_id="ash", agents=[agent])
    world.agents["wolf"].physical_needs.hunger = 0.1

    assert agent.species == "human"
    assert agent.physical_needs.hunger == 0.8


def test_unknown_answers_fall_back_to_tuning_defaults():
    world = genesis(
        make_setup(simulationSpeed="glacial", creationRules={"time": "odd", "death": "permanent", "nature": "odd", "morality": "none"}),
        world_id="odd",
    )

    assert world.ticks_per_turn == 1
    assert world.turns_per_year == 4
    assert world.environment.climate.volatility == 0.3
