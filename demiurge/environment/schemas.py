"""Schemas for the shared environment: calendar, climate, weather and ecosystem."""

from typing import Dict, Literal

from pydantic import BaseModel, Field


Season = Literal["spring", "summer", "autumn", "winter"]
WeatherCondition = Literal["clear", "cloudy", "rain", "storm", "snow", "fog", "drought"]

SEASONS: tuple[Season, ...] = ("spring", "summer", "autumn", "winter")


class Calendar(BaseModel):
    """Turn-based calendar. A year spans `turns_per_year` turns on the world."""

    year: int = Field(1, ge=1, description="Current year, starting at 1")
    season: Season = Field("spring", description="Season derived from year progress")
    # Fraction of the current season already elapsed
    season_progress: float = Field(0.0, ge=0, le=1)
    # Fraction of the current year already elapsed
    year_progress: float = Field(0.0, ge=0, lt=1)


class ClimateProfile(BaseModel):
    """Static climate parameters seeded at genesis from the nature-stability axis."""

    base_temperature: float = Field(20.0, description="Annual mean temperature (C)")
    seasonal_variation: float = Field(1.0, ge=0, description="Scale applied to seasonal offsets")
    volatility: float = Field(0.3, ge=0, le=1, description="Random weather swing per turn")
    rainfall: float = Field(0.5, ge=0, le=1, description="Baseline precipitation tendency")


class WeatherState(BaseModel):
    condition: WeatherCondition = "clear"
    temperature: float = Field(20.0, description="Air temperature (C)")
    humidity: float = Field(0.5, ge=0, le=1)
    precipitation: float = Field(0.0, ge=0, le=1)
    wind_speed: float = Field(0.0, ge=0, description="m/s")
    pressure: float = Field(1013.0, gt=0, description="hPa")


class EcosystemState(BaseModel):
    """Aggregate ecological health and renewable resources."""

    biodiversity: float = Field(0.7, ge=0, le=1)
    pollution: float = Field(0.1, ge=0, le=1)
    resources: Dict[str, float] = Field(
        default_factory=lambda: {"food": 800.0, "water": 1000.0, "timber": 500.0},
        description="Current stock of each renewable resource",
    )
    carrying_capacity: Dict[str, float] = Field(
        default_factory=lambda: {"food": 1000.0, "water": 1200.0, "timber": 800.0},
        description="Stock each resource regenerates toward",
    )
    regeneration_rate: float = Field(0.05, ge=0, le=1)


class EnvironmentState(BaseModel):
    calendar: Calendar = Field(default_factory=Calendar)
    climate: ClimateProfile = Field(default_factory=ClimateProfile)
    weather: WeatherState = Field(default_factory=WeatherState)
    ecosystem: EcosystemState = Field(default_factory=EcosystemState)


class EnvironmentSummary(BaseModel):
    """Compact view of the environment included in world deltas and projections."""

    year: int
    season: Season
    condition: WeatherCondition
    temperature: float
    biodiversity: float
    pollution: float
    resources: Dict[str, float] = Field(default_factory=dict)

    @classmethod
    def of(cls, environment: EnvironmentState) -> "EnvironmentSummary":
        return cls(
            year=environment.calendar.year,
            season=environment.calendar.season,
            condition=environment.weather.condition,
            temperature=round(environment.weather.temperature, 2),
            biodiversity=round(environment.ecosystem.biodiversity, 4),
            pollution=round(environment.ecosystem.pollution, 4),
            resources={k: round(v, 2) for k, v in environment.ecosystem.resources.items()},
        )
