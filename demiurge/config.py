"""
Demiurge Configuration

Two layers live here:

- `Config`: process-level settings loaded from environment variables (LLM
  provider, database URL, narrative timeout, strict mode).
- `SimulationTuning`: the numeric policy of the engines (decay rates,
  cross-influence coefficients, goal weights, memory and relationship policy).
  Every engine accepts a tuning instance so worlds can be replayed with the
  exact constants they were created with.
"""

import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file if it exists
load_dotenv()


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration loaded from environment variables."""

    # Narrative provider
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/demiurge")

    # Narrative call policy (the only step with a timeout)
    NARRATIVE_TIMEOUT_SECONDS: float = float(os.getenv("NARRATIVE_TIMEOUT_SECONDS", "120"))
    NARRATIVE_MAX_ATTEMPTS: int = int(os.getenv("NARRATIVE_MAX_ATTEMPTS", "3"))
    RECENT_EVENT_WINDOW: int = int(os.getenv("RECENT_EVENT_WINDOW", "3"))

    # Debug mode: out-of-range inputs fail fast instead of being clamped
    STRICT_INVARIANTS: bool = _env_flag("DEMIURGE_STRICT")

    # Optional JSON file overriding SimulationTuning defaults
    TUNING_FILE: str | None = os.getenv("DEMIURGE_TUNING_FILE")

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    SCENARIOS_DIR: Path = PROJECT_ROOT / "examples" / "scenarios"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider"
            )

        if cls.NARRATIVE_MAX_ATTEMPTS < 1:
            raise ValueError("NARRATIVE_MAX_ATTEMPTS must be at least 1")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Demiurge Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Database: {cls.DATABASE_URL}",
            f"  Narrative Timeout: {cls.NARRATIVE_TIMEOUT_SECONDS:.0f}s",
            f"  Strict Invariants: {cls.STRICT_INVARIANTS}",
        ]
        if cls.TUNING_FILE:
            lines.append(f"  Tuning File: {cls.TUNING_FILE}")
        return "\n".join(lines)


# ============================================================================
# Simulation tuning
# ============================================================================

# Signed per-tick rates. Needs are satisfaction levels (1.0 = fully met), so
# negative rates mean the need drains. Pain is an intensity (0.0 = none), so
# its negative rate means pain subsides on its own.
DEFAULT_PHYSICAL_RATES: Dict[str, float] = {
    "hunger": -0.04,
    "thirst": -0.06,
    "fatigue": -0.03,
    "comfort": -0.01,
    "hygiene": -0.02,
    "pain": -0.05,
}

DEFAULT_SOCIAL_RATES: Dict[str, float] = {
    "companionship": -0.02,
    "respect": -0.01,
    "love": -0.01,
    "belonging": -0.015,
    "achievement": -0.01,
    "autonomy": -0.005,
    "purpose": -0.005,
    "security": -0.01,
}

DEFAULT_ACTIVITY_REGEN: Dict[str, Dict[str, float]] = {
    "eating": {"hunger": 0.30},
    "drinking": {"thirst": 0.35},
    "sleeping": {"fatigue": 0.25},
    "bathing": {"hygiene": 0.40},
    "resting": {"fatigue": 0.10, "comfort": 0.05},
}


class DecayRates(BaseModel):
    """Per-tick need rates and health policy for the decay engine."""

    physical: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_PHYSICAL_RATES))
    social: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SOCIAL_RATES))
    activity_regen: Dict[str, Dict[str, float]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_ACTIVITY_REGEN.items()}
    )
    # Fraction of the gap to the personality baseline closed per tick
    emotion_relaxation: float = Field(0.1, ge=0, le=1)
    # Fraction of the gap to thermal comfort closed per tick
    temperature_adaptation: float = Field(0.25, ge=0, le=1)
    # Degrees of difference from the preferred temperature that zero out comfort
    temperature_tolerance: float = Field(25.0, gt=0)
    health_regen: float = Field(0.01, ge=0)
    health_decay: float = Field(0.05, ge=0)
    # Hunger, thirst and fatigue must all exceed this for health to regenerate
    comfort_threshold: float = Field(0.4, ge=0, le=1)
    # Turns without use before a skill starts to decay
    skill_decay_grace: int = Field(10, ge=0)


class CrossInfluence(BaseModel):
    """Fixed coefficients linking needs to emotions."""

    stress_from_hunger: float = 0.08
    stress_from_fatigue: float = 0.06
    anger_from_hunger: float = 0.03
    happiness_from_stress: float = 0.05
    happiness_from_pain: float = 0.08
    fear_from_poor_health: float = 0.10
    sadness_from_loneliness: float = 0.04
    anxiety_from_insecurity: float = 0.04
    contentment_from_comfort: float = 0.03
    # Health below this level starts feeding fear
    health_alarm: float = Field(0.3, gt=0, le=1)


class GoalWeights(BaseModel):
    """Weight table and limits for goal prioritisation."""

    priority: float = 0.45
    urgency: float = 0.35
    alignment: float = 0.20
    # Urgency added per turn, per turn of staleness since last progress
    urgency_growth: float = Field(0.002, ge=0)
    deadline_horizon: int = Field(3, ge=0)
    max_active: int = Field(5, ge=1)
    # Needs below this level spawn drive goals
    critical_need: float = Field(0.25, ge=0, le=1)


class MemoryPolicy(BaseModel):
    """Working/long-term split and eviction behaviour."""

    # Turns a memory stays eligible for working memory
    recency_window: int = Field(10, ge=0)
    # Importance at or above which a memory is long-term regardless of age
    long_term_floor: float = Field(0.6, ge=0)
    eviction_enabled: bool = True
    default_decay_rate: float = Field(0.02, ge=0)
    # Importance of memories written by the orchestrator
    event_importance: float = Field(0.7, ge=0)
    interaction_importance: float = Field(0.4, ge=0)
    achievement_importance: float = Field(0.9, ge=0)
    loss_importance: float = Field(0.95, ge=0)


class RelationshipPolicy(BaseModel):
    """Per-interaction deltas and maintenance decay for the relationship graph."""

    trust_gain: float = 0.08
    strength_gain: float = 0.06
    respect_gain: float = 0.04
    attraction_gain: float = 0.02
    power_shift: float = 0.03
    # Share of the remaining gap to 1.0 that one interaction adds to frequency
    frequency_gain: float = Field(0.2, ge=0, le=1)
    frequency_decay: float = Field(0.9, ge=0, le=1)
    neglect_after: int = Field(12, ge=0)
    neglect_decay: float = Field(0.005, ge=0)
    max_shared_experiences: int = Field(50, ge=1)
    max_emotional_history: int = Field(20, ge=1)
    encounters_enabled: bool = True
    encounter_distance: float = Field(5.0, ge=0)
    encounter_intensity: float = Field(0.3, ge=0, le=1)
    # Happiness nudge per unit of signed interaction intensity
    mood_gain: float = 0.05


class LifecyclePolicy(BaseModel):
    turns_per_year: int = Field(4, ge=1)
    ticks_per_turn: int = Field(1, ge=1)


class SimulationTuning(BaseModel):
    """All numeric policy in one serializable bundle."""

    decay: DecayRates = Field(default_factory=DecayRates)
    influence: CrossInfluence = Field(default_factory=CrossInfluence)
    goals: GoalWeights = Field(default_factory=GoalWeights)
    memory: MemoryPolicy = Field(default_factory=MemoryPolicy)
    relationships: RelationshipPolicy = Field(default_factory=RelationshipPolicy)
    lifecycle: LifecyclePolicy = Field(default_factory=LifecyclePolicy)

    @classmethod
    def from_file(cls, path: Path | str) -> "SimulationTuning":
        return cls.model_validate_json(Path(path).read_text("utf-8"))

    @classmethod
    def load(cls, path: Optional[Path | str] = None) -> "SimulationTuning":
        """Load tuning from `path`, DEMIURGE_TUNING_FILE, or fall back to defaults."""
        source = path or Config.TUNING_FILE
        if source:
            return cls.from_file(source)
        return cls()
