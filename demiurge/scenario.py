"""
World genesis and JSON scenario loading.

A world starts from the six setup answers (world type, supreme being, creation
rules, inhabitants, simulation speed). `genesis()` maps them onto engine
parameters:

- simulation_speed -> ticks per turn ("time-skip" jumps several ticks)
- creation_rules.time -> turns per year
- creation_rules.nature -> climate volatility
- creation_rules.death -> recorded in world metadata
- inhabitants -> default species for agents that do not declare one

Scenario file structure:
```json
{
  "id": "valley",
  "name": "The Quiet Valley",
  "seed": 7,
  "setup": {"worldType": "organic", "supremeBeing": {...}, "creationRules": {...},
            "inhabitants": "humans", "simulationSpeed": "real-time"},
  "agents": [{"id": "ada", "name": "Ada", ...}],
  "factions": [{"name": "Alpha", "wealth": 40}],
  "regions": [{"name": "Riverlands", "geography": "fertile plains"}],
  "belief_systems": ["..."]
}
```

Usage:
    loader = ScenarioLoader()
    world = loader.load("valley")
    await orchestrator.create_world(world)
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import TypeAdapter

from .config import Config, SimulationTuning
from .environment import EnvironmentState
from .schemas import Agent, Faction, Region, SetupConfig, WorldState


SPEED_TICKS = {"real-time": 1, "reactive": 1, "time-skip": 4}
TIME_FLOW_TURNS_PER_YEAR = {"linear": 4, "fluid": 2}
NATURE_VOLATILITY = {"stable": 0.15, "controlled": 0.05, "chaotic": 0.8}
INHABITANT_SPECIES = {
    "humans": "human",
    "beasts": "beast",
    "spirits": "spirit",
    "intelligent": "sapient",
    "defiant": "defiant",
}
# Starting pollution for world types that begin damaged
WORLD_TYPE_POLLUTION = {"post-apocalyptic": 0.5, "sci-fi": 0.2}

_FACTIONS = TypeAdapter(List[Faction])


def genesis(
    setup: SetupConfig,
    *,
    world_id: str,
    name: Optional[str] = None,
    agents: Iterable[Agent] = (),
    factions: Iterable[Any] = (),
    seed: int = 0,
    regions: Iterable[Region] = (),
    belief_systems: Iterable[str] = (),
    tuning: Optional[SimulationTuning] = None,
) -> WorldState:
    """Build the turn-0 world described by `setup`. Inputs are copied, never mutated."""
    tuning = tuning or SimulationTuning()
    lifecycle = tuning.lifecycle
    rules = setup.creation_rules
    being = setup.supreme_being

    environment = EnvironmentState()
    environment.climate.volatility = NATURE_VOLATILITY.get(rules.nature, environment.climate.volatility)
    environment.ecosystem.pollution = WORLD_TYPE_POLLUTION.get(setup.world_type, environment.ecosystem.pollution)

    species = INHABITANT_SPECIES.get(setup.inhabitants, setup.inhabitants)
    population: Dict[str, Agent] = {}
    for agent in agents:
        copy = agent.model_copy(deep=True)
        if "species" not in agent.model_fields_set:
            copy.species = species
        population[copy.id] = copy

    beliefs = list(belief_systems) or [f"{being.name} is the creator and guide of all life"]

    return WorldState(
        id=world_id,
        name=name or f"{being.name}'s {setup.world_type} world",
        seed=seed,
        ticks_per_turn=SPEED_TICKS.get(setup.simulation_speed, lifecycle.ticks_per_turn),
        turns_per_year=TIME_FLOW_TURNS_PER_YEAR.get(rules.time, lifecycle.turns_per_year),
        setup=setup.model_copy(deep=True),
        is_setup_complete=True,
        agents=population,
        factions=_FACTIONS.validate_python([_as_data(faction) for faction in factions]),
        regions=[region.model_copy(deep=True) for region in regions],
        belief_systems=beliefs,
        environment=environment,
        metadata={
            "death": rules.death,
            "rebirth": rules.death == "rebirth",
            "morality": rules.morality,
            "supreme_being": being.name,
        },
    )


def _as_data(value: Any) -> Any:
    return value.model_dump() if hasattr(value, "model_dump") else value


class ScenarioLoader:
    """Load world scenarios from JSON files.

    Directory structure:
    - Default: {PROJECT_ROOT}/examples/scenarios/
    - Override via constructor: ScenarioLoader(Path("/custom/scenarios"))
    - Scenario files: {scenario_name}.json

    Raises ValueError for a scenario that lacks required fields, so a broken
    file fails at load time instead of midway through a turn.
    """

    REQUIRED_FIELDS = ("id", "setup", "agents")

    def __init__(self, scenarios_dir: Optional[Path] = None, tuning: Optional[SimulationTuning] = None):
        self.scenarios_dir = Path(scenarios_dir) if scenarios_dir else Config.SCENARIOS_DIR
        self.tuning = tuning

    def load(self, scenario_name: str) -> WorldState:
        """Load `{scenario_name}.json` and return the turn-0 world.

        Raises:
            FileNotFoundError: If the scenario file doesn't exist
            ValueError: If required fields are missing or malformed
            json.JSONDecodeError: If the file contains invalid JSON
        """
        scenario_path = self.scenarios_dir / f"{scenario_name}.json"
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario '{scenario_name}' not found at {scenario_path}")

        data = json.loads(scenario_path.read_text("utf-8"))
        self._validate_scenario(data)

        return genesis(
            SetupConfig.model_validate(data["setup"]),
            world_id=data["id"],
            name=data.get("name"),
            agents=[Agent.model_validate(entry) for entry in data["agents"]],
            factions=data.get("factions", []),
            seed=int(data.get("seed", 0)),
            regions=[Region.model_validate(entry) for entry in data.get("regions", [])],
            belief_systems=data.get("belief_systems", []),
            tuning=self.tuning,
        )

    def _validate_scenario(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise ValueError("Scenario must be a JSON object")
        missing = [field for field in self.REQUIRED_FIELDS if field not in data]
        if missing:
            raise ValueError(f"Scenario missing required fields: {', '.join(missing)}")
        if not isinstance(data["agents"], list):
            raise ValueError("Scenario 'agents' must be a list")
        ids = [entry.get("id") for entry in data["agents"] if isinstance(entry, dict)]
        if len(ids) != len(set(ids)):
            raise ValueError("Scenario agent ids must be unique")


def load_scenario(scenario_name: str, scenarios_dir: Optional[Path] = None) -> WorldState:
    """Shortcut for ScenarioLoader(scenarios_dir).load(scenario_name)."""
    return ScenarioLoader(scenarios_dir).load(scenario_name)
