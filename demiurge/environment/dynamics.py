"""
Deterministic world-level systems advanced once per turn.

Each function takes the previous snapshot plus the committed turn number and
mutates the snapshot in place. Randomness comes from a `random.Random` seeded
by (world seed, turn), so replaying a turn reproduces the same weather.
"""

import random
from typing import Dict, Tuple

from .schemas import (
    SEASONS,
    Calendar,
    ClimateProfile,
    EcosystemState,
    EnvironmentState,
    WeatherCondition,
    WeatherState,
)


# Per-capita consumption of renewable resources per turn
PER_CAPITA_CONSUMPTION: Dict[str, float] = {"food": 1.0, "water": 1.5}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def turn_rng(seed: int, turn: int) -> random.Random:
    """Return the RNG for a given turn; string seeds hash identically across runs."""
    return random.Random(f"{seed}:{turn}")


def advance_calendar(calendar: Calendar, turn: int, turns_per_year: int) -> Calendar:
    """Derive year and season from the absolute turn number.

    Year N+1 starts every `turns_per_year` turns; seasons split the year into
    four equal parts.
    """
    position = turn % turns_per_year
    calendar.year = 1 + turn // turns_per_year
    calendar.year_progress = position / turns_per_year
    scaled = calendar.year_progress * len(SEASONS)
    index = min(int(scaled), len(SEASONS) - 1)
    calendar.season = SEASONS[index]
    calendar.season_progress = _clamp(scaled - index)
    return calendar


def seasonal_offset(calendar: Calendar) -> float:
    """Temperature offset from the annual mean for the current point in the season."""
    p = calendar.season_progress
    if calendar.season == "spring":
        return -5 + p * 10
    if calendar.season == "summer":
        return 5 + p * 10
    if calendar.season == "autumn":
        return 15 - p * 20
    return -15 + p * 5


def classify_weather(weather: WeatherState) -> WeatherCondition:
    if weather.precipitation > 0.05:
        if weather.temperature <= 0:
            return "snow"
        if weather.pressure < 1000 and weather.wind_speed > 12:
            return "storm"
        return "rain"
    if weather.humidity >= 0.9:
        return "fog"
    if weather.humidity <= 0.2 and weather.temperature >= 25:
        return "drought"
    if weather.humidity >= 0.6:
        return "cloudy"
    return "clear"


def advance_weather(
    weather: WeatherState,
    climate: ClimateProfile,
    calendar: Calendar,
    rng: random.Random,
) -> WeatherState:
    seasonal = climate.base_temperature + seasonal_offset(calendar) * climate.seasonal_variation
    noise = rng.uniform(-1.0, 1.0) * climate.volatility * 8.0
    weather.temperature = round(0.3 * weather.temperature + 0.7 * (seasonal + noise), 4)

    swing = rng.uniform(-0.3, 0.3) * (0.5 + climate.volatility)
    weather.humidity = _clamp(0.5 * weather.humidity + 0.5 * (climate.rainfall + swing))
    weather.pressure = round(
        1013.0 + rng.uniform(-1.0, 1.0) * 25.0 * climate.volatility - (weather.humidity - 0.5) * 10.0,
        2,
    )
    weather.precipitation = _clamp((weather.humidity - 0.55) * 2.0)
    weather.wind_speed = round(abs(rng.gauss(0.0, 1.0)) * (3.0 + 12.0 * climate.volatility), 3)
    weather.condition = classify_weather(weather)
    return weather


def advance_ecosystem(
    ecosystem: EcosystemState,
    weather: WeatherState,
    population: int,
) -> EcosystemState:
    damping = 1.0 - ecosystem.pollution
    for name, stock in list(ecosystem.resources.items()):
        capacity = ecosystem.carrying_capacity.get(name, stock)
        stock += (capacity - stock) * ecosystem.regeneration_rate * damping
        stock -= population * PER_CAPITA_CONSUMPTION.get(name, 0.0)
        if name == "water":
            stock += weather.precipitation * 50.0
        ecosystem.resources[name] = max(0.0, stock)

    ecosystem.pollution = _clamp(ecosystem.pollution * 0.98 + population * 0.0005)

    drift = 0.01 * (0.5 - ecosystem.pollution)
    if weather.temperature < -10 or weather.temperature > 35:
        drift -= 0.01
    ecosystem.biodiversity = _clamp(ecosystem.biodiversity + drift)
    return ecosystem


def advance_environment(
    environment: EnvironmentState,
    *,
    seed: int,
    turn: int,
    turns_per_year: int,
    population: int,
) -> EnvironmentState:
    """Advance calendar, weather and ecosystem in that order."""
    rng = turn_rng(seed, turn)
    advance_calendar(environment.calendar, turn, turns_per_year)
    advance_weather(environment.weather, environment.climate, environment.calendar, rng)
    advance_ecosystem(environment.ecosystem, environment.weather, population)
    return environment


def thermal_comfort(temperature: float, preferred: float, tolerance: float) -> float:
    """Satisfaction in [0, 1] for an agent preferring `preferred` degrees."""
    return _clamp(1.0 - abs(temperature - preferred) / tolerance)


def apply_resource_deltas(ecosystem: EcosystemState, deltas: Dict[str, float]) -> Tuple[str, ...]:
    """Apply signed deltas to resource stocks; returns the names that changed."""
    touched = []
    for name, delta in sorted(deltas.items()):
        ecosystem.resources[name] = max(0.0, ecosystem.resources.get(name, 0.0) + delta)
        touched.append(name)
    return tuple(touched)
