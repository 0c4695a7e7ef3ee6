"""
Pydantic schemas for the Demiurge world simulation.

All persisted and exchanged data structures are defined here.

Design Philosophy:
- Every bounded scalar declares its range with `Field(ge=..., le=...)`; the
  engines clamp on write and `demiurge.invariants` reads the same metadata to
  verify nothing escaped its range.
- Needs are satisfaction levels: 1.0 means fully met (sated, hydrated,
  rested). Pain is the exception and is an intensity (0.0 means none).
- Agents reference each other only by id. Counterparts are resolved through
  the owning `WorldState.agents` map, never through live object references.
- Factions are a tagged union (legacy scalar summary or advanced structured
  summary). Records without a `kind` tag are classified by shape so worlds
  created before the advanced schema keep loading.
- Wire formats produced by the narrative collaborator use camelCase keys; the
  models accept those aliases and also populate by field name.
"""

import math
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    computed_field,
    field_validator,
    model_validator,
)

from .environment import EnvironmentState, EnvironmentSummary, Season, WeatherCondition
from .errors import NotFoundError


def new_id() -> str:
    return uuid4().hex


# ============================================================================
# Vocabularies
# ============================================================================

RelationshipType = Literal[
    "family",
    "friend",
    "romantic",
    "enemy",
    "acquaintance",
    "mentor",
    "rival",
    "colleague",
    "subordinate",
    "superior",
    "neighbor",
]

MemoryKind = Literal[
    "interaction",
    "event",
    "observation",
    "emotion",
    "goal",
    "relationship",
    "learning",
    "trauma",
    "achievement",
    "failure",
    "discovery",
]

GoalType = Literal[
    "survival",
    "social",
    "achievement",
    "creative",
    "spiritual",
    "romantic",
    "family",
    "career",
    "knowledge",
    "power",
    "wealth",
    "legacy",
]

EconomicTier = Literal["destitute", "poor", "working", "middle", "upper", "elite"]

# Lower wealth bound of each tier, ascending
ECONOMIC_TIERS: tuple[tuple[float, EconomicTier], ...] = (
    (0.0, "destitute"),
    (5.0, "poor"),
    (50.0, "working"),
    (200.0, "middle"),
    (1000.0, "upper"),
    (5000.0, "elite"),
)


def economic_tier(wealth: float) -> EconomicTier:
    tier: EconomicTier = "destitute"
    for floor, name in ECONOMIC_TIERS:
        if wealth >= floor:
            tier = name
    return tier


# ============================================================================
# Agent State
# ============================================================================

class Vector3(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def distance_to(self, other: "Vector3") -> float:
        return math.sqrt((self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2)


class Appearance(BaseModel):
    hair_color: Optional[str] = None
    eye_color: Optional[str] = None
    skin_tone: Optional[str] = None
    build: Optional[str] = None
    distinctive_features: List[str] = Field(default_factory=list)
    attractiveness: float = Field(0.5, ge=0, le=1)
    fitness_level: float = Field(0.5, ge=0, le=1)


PERSONALITY_TRAITS: tuple[str, ...] = (
    "openness",
    "conscientiousness",
    "extraversion",
    "agreeableness",
    "neuroticism",
    "dominance",
    "ambition",
    "empathy",
    "optimism",
    "loyalty",
)


class Personality(BaseModel):
    """Ten independent traits in [0, 1]. Frozen after creation."""

    model_config = ConfigDict(frozen=True)

    openness: float = Field(0.5, ge=0, le=1)
    conscientiousness: float = Field(0.5, ge=0, le=1)
    extraversion: float = Field(0.5, ge=0, le=1)
    agreeableness: float = Field(0.5, ge=0, le=1)
    neuroticism: float = Field(0.5, ge=0, le=1)
    dominance: float = Field(0.5, ge=0, le=1)
    ambition: float = Field(0.5, ge=0, le=1)
    empathy: float = Field(0.5, ge=0, le=1)
    optimism: float = Field(0.5, ge=0, le=1)
    loyalty: float = Field(0.5, ge=0, le=1)

    def as_vector(self) -> List[float]:
        return [getattr(self, trait) for trait in PERSONALITY_TRAITS]


EMOTION_CHANNELS: tuple[str, ...] = (
    "happiness",
    "sadness",
    "anger",
    "fear",
    "love",
    "excitement",
    "curiosity",
    "contentment",
    "stress",
    "anxiety",
)


class EmotionalState(BaseModel):
    """Ten affect channels in [0, 1], updated every tick."""

    happiness: float = Field(0.5, ge=0, le=1)
    sadness: float = Field(0.1, ge=0, le=1)
    anger: float = Field(0.05, ge=0, le=1)
    fear: float = Field(0.05, ge=0, le=1)
    love: float = Field(0.2, ge=0, le=1)
    excitement: float = Field(0.2, ge=0, le=1)
    curiosity: float = Field(0.4, ge=0, le=1)
    contentment: float = Field(0.5, ge=0, le=1)
    stress: float = Field(0.2, ge=0, le=1)
    anxiety: float = Field(0.1, ge=0, le=1)

    def dominant(self) -> str:
        return max(EMOTION_CHANNELS, key=lambda channel: getattr(self, channel))


PHYSICAL_NEEDS: tuple[str, ...] = (
    "hunger",
    "thirst",
    "fatigue",
    "health",
    "comfort",
    "temperature",
    "hygiene",
    "pain",
)


class PhysicalNeeds(BaseModel):
    """Physical needs as satisfaction levels (1.0 = fully met); pain is an intensity."""

    hunger: float = Field(0.8, ge=0, le=1, description="1.0 = sated")
    thirst: float = Field(0.8, ge=0, le=1, description="1.0 = fully hydrated")
    fatigue: float = Field(0.8, ge=0, le=1, description="1.0 = fully rested")
    health: float = Field(1.0, ge=0, le=1)
    comfort: float = Field(0.7, ge=0, le=1)
    temperature: float = Field(0.8, ge=0, le=1, description="Thermal comfort")
    hygiene: float = Field(0.8, ge=0, le=1)
    pain: float = Field(0.0, ge=0, le=1, description="0.0 = no pain")


SOCIAL_NEEDS: tuple[str, ...] = (
    "companionship",
    "respect",
    "love",
    "belonging",
    "achievement",
    "autonomy",
    "purpose",
    "security",
)


class SocialNeeds(BaseModel):
    companionship: float = Field(0.7, ge=0, le=1)
    respect: float = Field(0.7, ge=0, le=1)
    love: float = Field(0.7, ge=0, le=1)
    belonging: float = Field(0.7, ge=0, le=1)
    achievement: float = Field(0.7, ge=0, le=1)
    autonomy: float = Field(0.7, ge=0, le=1)
    purpose: float = Field(0.7, ge=0, le=1)
    security: float = Field(0.7, ge=0, le=1)


class CognitiveAttributes(BaseModel):
    intelligence: float = Field(0.5, ge=0, le=1)
    wisdom: float = Field(0.5, ge=0, le=1)
    memory_capacity: int = Field(50, ge=1, description="Maximum retained memories")
    attention_span: int = Field(7, ge=1, description="Working-memory size")
    processing_speed: float = Field(0.5, ge=0, le=1)


class Skill(BaseModel):
    level: float = Field(0.0, ge=0)
    experience: float = Field(0.0, ge=0)
    talent: float = Field(0.5, ge=0, le=1)
    last_used: int = Field(0, ge=0, description="Turn the skill was last exercised")
    decay_rate: float = Field(0.01, ge=0, description="Level lost per turn once unused past the grace period")


class Goal(BaseModel):
    id: str = Field(default_factory=new_id)
    type: GoalType
    description: str
    priority: float = Field(0.5, ge=0, le=1)
    urgency: float = Field(0.0, ge=0, le=1)
    progress: float = Field(0.0, ge=0, le=1)
    target_agent: Optional[str] = None
    target_location: Optional[Vector3] = None
    deadline: Optional[int] = Field(None, ge=0, description="Turn by which the goal should be met")
    created_at: int = Field(0, ge=0)
    last_progress: int = Field(0, ge=0)
    emotional_investment: float = Field(0.5, ge=0, le=1)
    # Last computed priority score (written by GoalEngine.step)
    score: float = 0.0


class EmotionalMoment(BaseModel):
    emotion: str
    intensity: float = Field(..., ge=0, le=1)
    turn: int = Field(..., ge=0)
    context: str = ""


class Relationship(BaseModel):
    """One agent's own view of another agent."""

    other_id: str
    type: RelationshipType = "acquaintance"
    strength: float = Field(0.1, ge=0, le=1)
    trust: float = Field(0.5, ge=0, le=1)
    respect: float = Field(0.5, ge=0, le=1)
    attraction: float = Field(0.0, ge=0, le=1)
    shared_experiences: List[str] = Field(default_factory=list, description="Event ids, oldest first")
    last_interaction: int = Field(0, ge=0)
    frequency: float = Field(0.0, ge=0, le=1)
    compatibility: float = Field(0.5, ge=0, le=1)
    power_dynamic: float = Field(0.0, ge=-1, le=1, description="Positive = this agent dominates")
    emotional_history: List[EmotionalMoment] = Field(default_factory=list)


class EconomicProfile(BaseModel):
    possessions: Dict[str, float] = Field(default_factory=dict, description="Item -> quantity")
    wealth: float = Field(10.0, ge=0)
    income: Dict[str, float] = Field(default_factory=dict, description="Source -> per-turn amount")
    expenses: Dict[str, float] = Field(default_factory=dict, description="Sink -> per-turn amount")
    occupation: Optional[str] = None

    @computed_field
    @property
    def tier(self) -> EconomicTier:
        return economic_tier(self.wealth)


class CulturalProfile(BaseModel):
    culture_id: Optional[str] = None
    languages: List[str] = Field(default_factory=list)
    beliefs: Dict[str, float] = Field(default_factory=dict, description="Belief -> weight in [0, 1]")
    values: Dict[str, float] = Field(default_factory=dict, description="Value -> weight in [0, 1]")


class Injury(BaseModel):
    location: str
    severity: float = Field(..., ge=0, le=1)
    healing_rate: float = Field(0.05, ge=0)
    turn: int = Field(0, ge=0)
    cause: Optional[str] = None
    treated: bool = False


class Disease(BaseModel):
    name: str
    severity: float = Field(..., ge=0, le=1)
    progression_rate: float = Field(0.02, ge=0)
    contagious: bool = False
    treated: bool = False


class HealthRecord(BaseModel):
    diseases: List[Disease] = Field(default_factory=list)
    injuries: List[Injury] = Field(default_factory=list)
    genetic_traits: List[str] = Field(default_factory=list)
    immune_strength: float = Field(0.5, ge=0, le=1)
    life_expectancy: float = Field(70.0, ge=0, description="Years")

    def has_untreated_ailment(self) -> bool:
        return any(not i.treated for i in self.injuries) or any(not d.treated for d in self.diseases)


class BehavioralState(BaseModel):
    current_activity: str = "idle"
    activity_start: int = Field(0, ge=0)
    activity_location: Optional[Vector3] = None
    stress_level: float = Field(0.2, ge=0, le=1)
    energy_level: float = Field(0.8, ge=0, le=1)
    motivation_level: float = Field(0.5, ge=0, le=1)


class MemoryRecord(BaseModel):
    id: str = Field(default_factory=new_id)
    timestamp: int = Field(..., ge=0, description="Turn the memory was formed")
    kind: MemoryKind
    content: str = Field(..., description="Text or reference to the remembered content")
    participants: List[str] = Field(default_factory=list)
    location: Optional[Vector3] = None
    emotional_impact: float = Field(0.0, ge=-1, le=1)
    importance: float = Field(0.5, ge=0)
    decay_rate: float = Field(0.02, ge=0)
    tags: List[str] = Field(default_factory=list)


class Agent(BaseModel):
    """Full state of one simulated inhabitant. Data only; engines mutate it."""

    # Identity
    id: str
    name: str
    species: str = "human"
    birth_turn: int = Field(0, ge=0)
    birth_location: Vector3 = Field(default_factory=Vector3)
    faction: Optional[str] = Field(None, description="Name of the faction the agent belongs to")

    # Physical attributes
    position: Vector3 = Field(default_factory=Vector3)
    velocity: Vector3 = Field(default_factory=Vector3)
    height: float = Field(170.0, ge=0, description="cm")
    weight: float = Field(70.0, ge=0, description="kg")
    appearance: Appearance = Field(default_factory=Appearance)
    preferred_temperature: float = Field(20.0, description="C")

    # Psychology
    personality: Personality = Field(default_factory=Personality)
    emotions: EmotionalState = Field(default_factory=EmotionalState)
    physical_needs: PhysicalNeeds = Field(default_factory=PhysicalNeeds)
    social_needs: SocialNeeds = Field(default_factory=SocialNeeds)
    cognition: CognitiveAttributes = Field(default_factory=CognitiveAttributes)

    # Capabilities and ambitions
    skills: Dict[str, Skill] = Field(default_factory=dict)
    goals: List[Goal] = Field(default_factory=list, description="Active goals, best first")
    dormant_goals: List[Goal] = Field(default_factory=list)
    achievements: List[str] = Field(default_factory=list)

    # Social, economic, cultural
    relationships: Dict[str, Relationship] = Field(default_factory=dict)
    economy: EconomicProfile = Field(default_factory=EconomicProfile)
    culture: CulturalProfile = Field(default_factory=CulturalProfile)

    # Health and behaviour
    health: HealthRecord = Field(default_factory=HealthRecord)
    behavior: BehavioralState = Field(default_factory=BehavioralState)

    # Memory store plus derived index sets (memory ids)
    memories: List[MemoryRecord] = Field(default_factory=list)
    working_memory: List[str] = Field(default_factory=list)
    long_term_memory: List[str] = Field(default_factory=list)

    # Lifecycle
    alive: bool = True
    died_at: Optional[int] = None
    cause_of_death: Optional[str] = None

    @model_validator(mode="after")
    def _check_relationship_keys(self) -> "Agent":
        if self.id in self.relationships:
            raise ValueError(f"agent '{self.id}' cannot hold a relationship with itself")
        for key, relationship in self.relationships.items():
            if relationship.other_id != key:
                raise ValueError(
                    f"relationship key '{key}' does not match other_id '{relationship.other_id}'"
                )
        return self

    def age(self, now: int, turns_per_year: int) -> float:
        """Age in years at turn `now`."""
        return max(0, now - self.birth_turn) / turns_per_year

    def find_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        for memory in self.memories:
            if memory.id == memory_id:
                return memory
        return None


# ============================================================================
# Factions
# ============================================================================

class FactionBase(BaseModel):
    name: str
    type: Optional[str] = None
    alignment: Optional[str] = None
    beliefs: List[str] = Field(default_factory=list)
    leadership: Optional[str] = None
    territory: List[str] = Field(default_factory=list)
    description: Optional[str] = None


class LegacyFaction(FactionBase):
    """Scalar summary faction from before the advanced schema. Missing numbers default at scoring."""

    kind: Literal["legacy"] = "legacy"
    wealth: Optional[float] = Field(None, ge=0, le=100)
    military: Optional[float] = Field(None, ge=0, le=100)
    population: Optional[float] = Field(None, ge=0)
    strength: Optional[float] = Field(None, ge=0, le=100, description="Informational only")

    @field_validator("population", mode="before")
    @classmethod
    def _population_total(cls, value: Any) -> Any:
        # Older records stored population as {"total": n, "demographics": {...}}
        if isinstance(value, dict):
            return value.get("total")
        return value


class FactionEconomy(BaseModel):
    wealth: float = Field(50.0, ge=0, le=100)
    gdp: float = Field(0.0, ge=0)
    primary_resources: List[str] = Field(default_factory=list)
    trade_routes: List[str] = Field(default_factory=list)


class FactionMilitary(BaseModel):
    strength: float = Field(50.0, ge=0, le=100)
    army_size: int = Field(0, ge=0)
    morale: float = Field(0.5, ge=0, le=1)


class FactionTechnology(BaseModel):
    level: float = Field(50.0, ge=0, le=100)
    specializations: List[str] = Field(default_factory=list)


class FactionStability(BaseModel):
    overall: float = Field(50.0, ge=0, le=100)
    political: float = Field(50.0, ge=0, le=100)
    social: float = Field(50.0, ge=0, le=100)
    economic: float = Field(50.0, ge=0, le=100)


class AdvancedFaction(FactionBase):
    kind: Literal["advanced"] = "advanced"
    population: float = Field(1000.0, ge=0)
    economy: FactionEconomy = Field(default_factory=FactionEconomy)
    military: FactionMilitary = Field(default_factory=FactionMilitary)
    technology: FactionTechnology = Field(default_factory=FactionTechnology)
    stability: FactionStability = Field(default_factory=FactionStability)


ADVANCED_SECTIONS = ("economy", "military", "technology", "stability")


def faction_shape(value: Any) -> str:
    """Classify a raw or parsed faction as 'legacy' or 'advanced'."""
    if isinstance(value, dict):
        kind = value.get("kind")
        if kind in ("legacy", "advanced"):
            return kind
        if all(isinstance(value.get(section), dict) for section in ADVANCED_SECTIONS):
            return "advanced"
        return "legacy"
    return getattr(value, "kind", "legacy")


Faction = Annotated[
    Union[
        Annotated[LegacyFaction, Tag("legacy")],
        Annotated[AdvancedFaction, Tag("advanced")],
    ],
    Discriminator(faction_shape),
]


# ============================================================================
# Interventions and consequences
# ============================================================================

class FactionChange(BaseModel):
    """Change to one faction. Numeric deltas win; otherwise the text is interpreted."""

    model_config = ConfigDict(populate_by_name=True)

    faction_name: str = Field(..., alias="factionName")
    changes: str = Field("", description="Free-text description, e.g. 'weakened by famine'")
    wealth_delta: float = Field(0.0, alias="wealthDelta")
    military_delta: float = Field(0.0, alias="militaryDelta")
    technology_delta: float = Field(0.0, alias="technologyDelta")
    stability_delta: float = Field(0.0, alias="stabilityDelta")
    population_delta: float = Field(0.0, alias="populationDelta")

    def has_numeric_delta(self) -> bool:
        return any(
            (self.wealth_delta, self.military_delta, self.technology_delta,
             self.stability_delta, self.population_delta)
        )


class EnvironmentChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str = ""
    temperature_delta: float = Field(0.0, alias="temperatureDelta")
    condition: Optional[WeatherCondition] = None
    pollution_delta: float = Field(0.0, alias="pollutionDelta")
    biodiversity_delta: float = Field(0.0, alias="biodiversityDelta")
    resource_deltas: Dict[str, float] = Field(default_factory=dict, alias="resourceDeltas")

    @model_validator(mode="before")
    @classmethod
    def _from_text(cls, value: Any) -> Any:
        # The narrative collaborator may describe environment changes as plain prose
        if isinstance(value, str):
            return {"description": value}
        return value


class GoalUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(..., alias="agentId")
    goal_id: str = Field(..., alias="goalId")
    progress: Optional[float] = Field(None, ge=0, le=1)
    abandon: bool = False


class InteractionEvent(BaseModel):
    id: str = Field(default_factory=new_id)
    initiator_id: str
    recipient_id: str
    kind: str = "conversation"
    valence: float = Field(0.0, ge=-1, le=1, description="-1 hostile .. +1 warm")
    intensity: float = Field(0.5, ge=0, le=1)
    description: str = ""


class WorldStateChanges(BaseModel):
    """Declared consequences of an intervention, applied once at the start of a turn."""

    model_config = ConfigDict(populate_by_name=True)

    faction_changes: List[FactionChange] = Field(default_factory=list, alias="factionChanges")
    environment_changes: Optional[EnvironmentChange] = Field(None, alias="environmentChanges")
    new_events: List[str] = Field(default_factory=list, alias="newEvents")
    goal_updates: List[GoalUpdate] = Field(default_factory=list, alias="goalUpdates")
    interactions: List[InteractionEvent] = Field(default_factory=list)
    births: List[Agent] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.faction_changes or self.environment_changes or self.new_events
            or self.goal_updates or self.interactions or self.births
        )


InterventionSource = Literal["player", "divine", "narrative"]


class Intervention(BaseModel):
    """A player decision or divine act submitted with a turn request."""

    id: str = Field(default_factory=new_id)
    source: InterventionSource = "player"
    decision: str = Field("", description="What was decided, as shown to the player")
    choice_id: Optional[str] = None
    is_custom_action: bool = False
    consequences: WorldStateChanges = Field(default_factory=WorldStateChanges)
    # Optimistic concurrency: reject if the stored world is no longer at this turn
    expected_turn: Optional[int] = Field(None, ge=0)


class AppliedIntervention(BaseModel):
    intervention_id: str
    source: InterventionSource
    description: str = ""
    turn: int = Field(..., ge=0)
    consequences: WorldStateChanges


# ============================================================================
# Narrative payload
# ============================================================================

class Choice(BaseModel):
    id: str
    text: str
    icon: Optional[str] = None


class StructuredNarrative(BaseModel):
    title: str
    opening: str
    situation: str = Field(..., validation_alias=AliasChoices("situation", "currentSituation"))
    stakes: str
    perspective: str = Field(..., validation_alias=AliasChoices("perspective", "divinePerspective"))


Narrative = Union[StructuredNarrative, str]


def narrative_text(narrative: Narrative) -> str:
    """Flatten either narrative shape into prose."""
    if isinstance(narrative, str):
        return narrative
    return "\n\n".join(
        part for part in (narrative.title, narrative.opening, narrative.situation,
                          narrative.stakes, narrative.perspective) if part
    )


class NarrativePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    narrative: Narrative
    choices: List[Choice] = Field(default_factory=list)
    world_state_changes: Optional[WorldStateChanges] = Field(None, alias="worldStateChanges")


# ============================================================================
# Setup configuration
# ============================================================================

class SupremeBeing(BaseModel):
    name: str
    type: str
    purpose: str


class CreationRules(BaseModel):
    time: str = Field(..., description="Time flow, e.g. 'slow', 'normal', 'fast'")
    death: str = Field(..., description="Death permanence, e.g. 'permanent', 'reincarnation'")
    nature: str = Field(..., description="Nature stability, e.g. 'stable', 'balanced', 'chaotic'")
    morality: str = Field(..., description="Moral framework")


class SetupConfig(BaseModel):
    """The six answers collected before genesis."""

    model_config = ConfigDict(populate_by_name=True)

    world_type: str = Field(..., alias="worldType")
    supreme_being: SupremeBeing = Field(..., alias="supremeBeing")
    creation_rules: CreationRules = Field(..., alias="creationRules")
    inhabitants: str
    simulation_speed: str = Field(..., alias="simulationSpeed")


# ============================================================================
# World State
# ============================================================================

class Region(BaseModel):
    name: str
    geography: Optional[str] = None
    resources: Dict[str, float] = Field(default_factory=dict)
    controlled_by: Optional[str] = None


class CurrentState(BaseModel):
    """Human-facing summary refreshed every turn."""

    year: int = Field(1, ge=1)
    season: Season = "spring"
    weather: str = "clear"
    balance_of_power: str = ""
    major_events: List[str] = Field(default_factory=list, description="Most recent last")


MAJOR_EVENT_LIMIT = 5


class WorldState(BaseModel):
    """Aggregate world snapshot. Passed by exclusive reference through a turn."""

    id: str
    name: str = "Unnamed world"
    turn: int = Field(0, ge=0)
    seed: int = 0
    ticks_per_turn: int = Field(1, ge=1)
    turns_per_year: int = Field(4, ge=1)
    setup: Optional[SetupConfig] = None
    is_setup_complete: bool = False

    agents: Dict[str, Agent] = Field(default_factory=dict)
    factions: List[Faction] = Field(default_factory=list)
    regions: List[Region] = Field(default_factory=list)
    belief_systems: List[str] = Field(default_factory=list)
    environment: EnvironmentState = Field(default_factory=EnvironmentState)
    current_state: CurrentState = Field(default_factory=CurrentState)

    intervention_log: Dict[int, AppliedIntervention] = Field(default_factory=dict)
    pending_consequences: Optional[WorldStateChanges] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_agent_keys(self) -> "WorldState":
        for key, agent in self.agents.items():
            if agent.id != key:
                raise ValueError(f"agent key '{key}' does not match agent id '{agent.id}'")
        return self

    def get_agent(self, agent_id: str) -> Agent:
        try:
            return self.agents[agent_id]
        except KeyError:
            raise NotFoundError(kind="Agent", identifier=agent_id, scope=f"world '{self.id}'") from None

    def living_agent_ids(self) -> List[str]:
        return sorted(agent_id for agent_id, agent in self.agents.items() if agent.alive)

    def faction_index(self, name: str) -> int:
        for index, faction in enumerate(self.factions):
            if faction.name == name:
                return index
        raise NotFoundError(kind="Faction", identifier=name, scope=f"world '{self.id}'")

    def get_faction(self, name: str) -> Union[LegacyFaction, AdvancedFaction]:
        return self.factions[self.faction_index(name)]

    def record_major_events(self, events: List[str]) -> None:
        merged = self.current_state.major_events + list(events)
        self.current_state.major_events = merged[-MAJOR_EVENT_LIMIT:]

    def applied_intervention_ids(self) -> set[str]:
        return {entry.intervention_id for entry in self.intervention_log.values()}


# ============================================================================
# Turn output and records
# ============================================================================

class FactionScoreDelta(BaseModel):
    kind: Literal["legacy", "advanced"]
    before: Optional[float] = None
    after: float
    change: float


class AgentCrossing(BaseModel):
    """A notable threshold an agent crossed during the turn."""

    agent_id: str
    field: str
    direction: Literal["below", "above", "died", "born", "completed"]
    value: Optional[float] = None
    threshold: Optional[float] = None
    detail: str = ""


class WorldDelta(BaseModel):
    world_id: str
    turn_from: int
    turn_to: int
    faction_scores: Dict[str, FactionScoreDelta] = Field(default_factory=dict)
    agent_crossings: List[AgentCrossing] = Field(default_factory=list)
    environment: EnvironmentSummary
    new_events: List[str] = Field(default_factory=list)
    interactions: List[str] = Field(default_factory=list, description="Interaction event ids")
    applied_interventions: List[str] = Field(default_factory=list)


NarrativeStatus = Literal["pending", "ready"]


class EventRecord(BaseModel):
    """Stored per (world, turn). Holds the delta and, once available, the narrative."""

    world_id: str
    turn_number: int = Field(..., ge=0)
    event_type: str = "turn"
    narrative: Optional[Narrative] = None
    narrative_status: NarrativeStatus = "pending"
    narrative_error: Optional[str] = None
    choices: List[Choice] = Field(default_factory=list)
    world_state_changes: Optional[WorldStateChanges] = None
    player_action: Optional[str] = None
    delta: Optional[WorldDelta] = None


class DecisionRecord(BaseModel):
    world_id: str
    turn_number: int = Field(..., ge=0)
    intervention_id: str
    decision: str
    choice_id: Optional[str] = None
    is_custom_action: bool = False
    consequences: str = ""
