import math

import pytest

from core.pistat.models import DisplayUnit
from core.pistat.units import (
    celsius_to_fahrenheit,
    display_string,
    fahrenheit_to_celsius,
    temperature_props,
    unround_for_storage,
)


def test_known_conversion_points():
    assert celsius_to_fahrenheit(0) == 32
    assert celsius_to_fahrenheit(100) == 212
    assert celsius_to_fahrenheit(-40) == -40
    assert fahrenheit_to_celsius(212) == 100


@pytest.mark.parametrize("value", [-40.0, -17.5, 0.0, 0.1, 21.3, 37.777, 100.0, 999.999])
def test_fahrenheit_round_trip(value):
    assert fahrenheit_to_celsius(celsius_to_fahrenheit(value)) == pytest.approx(value, abs=1e-9)


def test_display_string_renders_both_units():
    assert display_string(20.0) == "20.0 °C / 68.0 °F"
    assert display_string(21.1234) == "21.123 °C / 70.022 °F"


def test_display_string_tolerates_missing_value():
    assert display_string(None) == "None °C"


def test_celsius_rounds_to_half_degree():
    assert unround_for_storage(21.3, uses_fahrenheit=False) == 21.5
    assert unround_for_storage(21.2, uses_fahrenheit=False) == 21.0
    assert unround_for_storage(21.25, uses_fahrenheit=False) == 21.5


def test_fahrenheit_snaps_to_whole_degree():
    # 21 °C is 69.8 °F, reported as 70 °F
    result = unround_for_storage(21.0, uses_fahrenheit=True)

    assert result == pytest.approx(fahrenheit_to_celsius(70))
    assert celsius_to_fahrenheit(result) == pytest.approx(70)


@pytest.mark.parametrize("value", [-12.34, 0.0, 18.0, 21.0, 22.2222, 23.9, 30.55])
def test_fahrenheit_unround_is_idempotent(value):
    once = unround_for_storage(value, uses_fahrenheit=True)

    assert unround_for_storage(once, uses_fahrenheit=True) == once


def test_props_in_celsius():
    props = temperature_props(DisplayUnit.CELSIUS)

    assert props["target_temperature"] == {"min_value": 9.0, "max_value": 32.0, "min_step": 0.5}
    assert props["current_temperature"]["min_value"] == -20.0
    assert props["current_temperature"]["max_value"] == 60.0


def test_props_in_fahrenheit_have_no_step():
    props = temperature_props(DisplayUnit.FAHRENHEIT)

    assert props["target_temperature"]["min_value"] == pytest.approx(10.0)
    assert props["target_temperature"]["max_value"] == pytest.approx(fahrenheit_to_celsius(90))
    assert props["current_temperature"]["max_value"] == pytest.approx(fahrenheit_to_celsius(160))
    assert props["target_temperature"]["min_step"] is None


@pytest.mark.parametrize("uses_fahrenheit", [False, True])
@pytest.mark.parametrize("value", [math.inf, -math.inf])
def test_unround_passes_infinities_through(value, uses_fahrenheit):
    assert unround_for_storage(value, uses_fahrenheit) == value


@pytest.mark.parametrize("uses_fahrenheit", [False, True])
def test_unround_passes_nan_through(uses_fahrenheit):
    assert math.isnan(unround_for_storage(math.nan, uses_fahrenheit))
