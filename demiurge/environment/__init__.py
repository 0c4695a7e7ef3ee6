"""Environment state and per-turn world systems."""

from .schemas import (
    SEASONS,
    Calendar,
    ClimateProfile,
    EcosystemState,
    EnvironmentState,
    EnvironmentSummary,
    Season,
    WeatherCondition,
    WeatherState,
)
from .dynamics import (
    advance_calendar,
    advance_ecosystem,
    advance_environment,
    advance_weather,
    apply_resource_deltas,
    classify_weather,
    seasonal_offset,
    thermal_comfort,
    turn_rng,
)

__all__ = [
    "SEASONS",
    "Calendar",
    "ClimateProfile",
    "EcosystemState",
    "EnvironmentState",
    "EnvironmentSummary",
    "Season",
    "WeatherCondition",
    "WeatherState",
    "advance_calendar",
    "advance_ecosystem",
    "advance_environment",
    "advance_weather",
    "apply_resource_deltas",
    "classify_weather",
    "seasonal_offset",
    "thermal_comfort",
    "turn_rng",
]
