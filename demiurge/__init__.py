"""
Demiurge - deterministic turn-resolution engine for simulated worlds.

Agents carry needs, emotions, memories, goals and relationships; factions
carry power scores; a world advances one committed turn at a time while a
narrative collaborator describes what happened.

No file I/O required. No database required.
Persistence, world rules and the narrator are injected by the caller.
"""

__version__ = "0.1.0"

# Main turn driver
from .orchestrator import TurnOrchestrator, TurnPhase, TurnResult

# Core interfaces
from .simulation_rules import SimulationRules, DefaultSimulationRules, format_factions_generic
from .persistence import (
    PersistenceStrategy,
    InMemoryPersistence,
    PostgresPersistence,
    JsonPersistence,
)
from .memory import MemoryStrategy, ImportanceDecayMemory
from .narrative import NarrativeGenerator, LLMNarrativeGenerator, FallbackNarrativeGenerator

# Engines
from .decay import NeedDecayEngine
from .goals import GoalEngine
from .relationships import RelationshipGraph, compatibility
from .factions import power_score, summarize_factions, apply_faction_change
from .projection import NarrativeProjection, build_narrative_projection

# Configuration and errors
from .config import Config, SimulationTuning
from .errors import (
    DemiurgeError,
    InputValidationError,
    ConflictError,
    TurnInProgressError,
    NotFoundError,
    ExternalUnavailableError,
    InvariantViolation,
    CapacityExceededError,
)

# Core schemas
from .schemas import (
    Agent,
    WorldState,
    LegacyFaction,
    AdvancedFaction,
    Intervention,
    WorldStateChanges,
    FactionChange,
    EnvironmentChange,
    InteractionEvent,
    NarrativePayload,
    EventRecord,
    DecisionRecord,
    WorldDelta,
    SetupConfig,
)

# Scenario helpers
from .scenario import genesis, load_scenario, ScenarioLoader

__all__ = [
    # Main class
    "TurnOrchestrator",
    "TurnPhase",
    "TurnResult",
    # Core interfaces
    "SimulationRules",
    "DefaultSimulationRules",
    "PersistenceStrategy",
    "InMemoryPersistence",
    "PostgresPersistence",
    "JsonPersistence",
    "MemoryStrategy",
    "ImportanceDecayMemory",
    "NarrativeGenerator",
    "LLMNarrativeGenerator",
    "FallbackNarrativeGenerator",
    # Engines
    "NeedDecayEngine",
    "GoalEngine",
    "RelationshipGraph",
    "compatibility",
    "power_score",
    "summarize_factions",
    "apply_faction_change",
    "NarrativeProjection",
    "build_narrative_projection",
    # Configuration and errors
    "Config",
    "SimulationTuning",
    "DemiurgeError",
    "InputValidationError",
    "ConflictError",
    "TurnInProgressError",
    "NotFoundError",
    "ExternalUnavailableError",
    "InvariantViolation",
    "CapacityExceededError",
    # Schemas
    "Agent",
    "WorldState",
    "LegacyFaction",
    "AdvancedFaction",
    "Intervention",
    "WorldStateChanges",
    "FactionChange",
    "EnvironmentChange",
    "InteractionEvent",
    "NarrativePayload",
    "EventRecord",
    "DecisionRecord",
    "WorldDelta",
    "SetupConfig",
    # Scenario helpers
    "genesis",
    "load_scenario",
    "ScenarioLoader",
    # Utilities
    "format_factions_generic",
]
