"""Tests for the calendar, weather and ecosystem systems."""

import pytest

from demiurge.environment import (
    Calendar,
    EcosystemState,
    EnvironmentState,
    WeatherState,
    advance_calendar,
    advance_ecosystem,
    advance_environment,
    apply_resource_deltas,
    classify_weather,
    thermal_comfort,
)


@pytest.mark.parametrize(
    "turn, year, season",
    [(0, 1, "spring"), (1, 1, "summer"), (3, 1, "winter"), (5, 2, "summer")],
)
def test_calendar_derives_year_and_season_from_turn(turn, year, season):
    calendar = advance_calendar(Calendar(), turn, turns_per_year=4)

    assert calendar.year == year
    assert calendar.season == season


def test_season_progress_with_slow_years():
    calendar = advance_calendar(Calendar(), 2, turns_per_year=8)

    assert calendar.season == "summer"
    assert calendar.year_progress == pytest.approx(0.25)
    assert calendar.season_progress == pytest.approx(0.0)


def test_weather_is_reproducible_for_the_same_seed_and_turn():
    first = EnvironmentState()
    second = EnvironmentState()

    advance_environment(first, seed=42, turn=7, turns_per_year=4, population=3)
    advance_environment(second, seed=42, turn=7, turns_per_year=4, population=3)

    assert first.model_dump() == second.model_dump()


def test_different_turns_draw_different_weather():
    first = EnvironmentState()
    second = EnvironmentState()

    advance_environment(first, seed=42, turn=7, turns_per_year=4, population=3)
    advance_environment(second, seed=42, turn=8, turns_per_year=4, population=3)

    assert first.weather != second.weather


@pytest.mark.parametrize(
    "weather, expected",
    [
        (WeatherState(precipitation=0.5, temperature=-3), "snow"),
        (WeatherState(precipitation=0.5, temperature=10, pressure=990, wind_speed=20), "storm"),
        (WeatherState(precipitation=0.5, temperature=10), "rain"),
        (WeatherState(humidity=0.95), "fog"),
        (WeatherState(humidity=0.1, temperature=30), "drought"),
        (WeatherState(humidity=0.7), "cloudy"),
        (WeatherState(), "clear"),
    ],
)
def test_classify_weather(weather, expected):
    assert classify_weather(weather) == expected


def test_ecosystem_regenerates_and_consumes():
    ecosystem = EcosystemState(
        resources={"food": 500.0},
        carrying_capacity={"food": 1000.0},
        regeneration_rate=0.1,
        pollution=0.0,
    )

    advance_ecosystem(ecosystem, WeatherState(), population=10)

    # +50 regeneration, -10 consumption
    assert ecosystem.resources["food"] == pytest.approx(540.0)
    assert 0.0 <= ecosystem.biodiversity <= 1.0


def test_resource_deltas_never_go_negative():
    ecosystem = EcosystemState(resources={"food": 10.0})

    touched = apply_resource_deltas(ecosystem, {"food": -50.0, "ore": 5.0})

    assert touched == ("food", "ore")
    assert ecosystem.resources["food"] == 0.0
    assert ecosystem.resources["ore"] == 5.0


def test_thermal_comfort_falls_off_with_distance():
    assert thermal_comfort(20, 20, 25) == 1.0
    assert thermal_comfort(45, 20, 25) == 0.0
    assert thermal_comfort(10, 20, 25) == pytest.approx(0.6)
