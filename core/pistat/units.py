"""
Temperature unit conversion and rounding.

Storage is always Celsius. Fahrenheit only shows up at the framework boundary,
where setpoints are snapped to what the user can actually pick in their unit.
"""

import math

from .models import DisplayUnit

DISPLAY_PRECISION = 0.001


def celsius_to_fahrenheit(temperature: float) -> float:
    """Convert °C to °F."""
    return temperature * 1.8 + 32


def fahrenheit_to_celsius(temperature: float) -> float:
    """Convert °F to °C."""
    return (temperature - 32) / 1.8


def _round_half_up(value: float, step: float = 1.0) -> float:
    if not math.isfinite(value):
        return value
    return step * math.floor(value / step + 0.5)


def display_string(temperature: float | None) -> str:
    """Render a Celsius value as both units, e.g. ``"20.0 °C / 68.0 °F"``.

    Each unit is rounded independently to 0.001 so log lines never carry
    floating point noise.
    """
    if temperature is None or not math.isfinite(temperature):
        return f"{temperature} °C"
    celsius = round(_round_half_up(temperature, DISPLAY_PRECISION), 3)
    fahrenheit = round(_round_half_up(celsius_to_fahrenheit(temperature), DISPLAY_PRECISION), 3)
    return f"{celsius} °C / {fahrenheit} °F"


def unround_for_storage(value: float, uses_fahrenheit: bool) -> float:
    """Snap a Celsius value to the resolution of the active display unit.

    Fahrenheit: nearest whole °F, converted back to Celsius.
    Celsius: nearest 0.5 °C.
    Non-finite values pass through unchanged.
    """
    if uses_fahrenheit:
        return fahrenheit_to_celsius(_round_half_up(celsius_to_fahrenheit(value)))
    return _round_half_up(value, 0.5)


def temperature_props(display_unit: DisplayUnit) -> dict[str, dict[str, float | None]]:
    """Characteristic bounds for the current and target temperatures.

    HomeKit-style frameworks already limit Fahrenheit to whole degrees, so no
    min step is reported there; a Celsius step would make them round °F wrong.
    """
    if display_unit == DisplayUnit.FAHRENHEIT:
        min_set, max_set = fahrenheit_to_celsius(50), fahrenheit_to_celsius(90)
        min_get, max_get = fahrenheit_to_celsius(0), fahrenheit_to_celsius(160)
        step = None
    else:
        min_set, max_set = 9.0, 32.0
        min_get, max_get = -20.0, 60.0
        step = 0.5

    return {
        "current_temperature": {"min_value": min_get, "max_value": max_get, "min_step": step},
        "target_temperature": {"min_value": min_set, "max_value": max_set, "min_step": step},
        "heating_threshold_temperature": {"min_value": min_set, "max_value": max_set, "min_step": step},
        "cooling_threshold_temperature": {"min_value": min_set, "max_value": max_set, "min_step": step},
    }
