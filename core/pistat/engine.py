"""
Thermostat Control Engine

Edge-triggered hysteresis controller for a single relay. Called once per new
temperature reading (and on setpoint/mode changes), it compares the reading
with the setpoint and decides whether the relay must be switched.

The bands are asymmetric: turning the equipment off needs a wider overshoot
than turning it on, so the relay doesn't chatter around the setpoint.

Heat:  ON  when target - current >= heat_on_delta (and the compressor rested)
       OFF when current - target >= heat_off_delta
Cool:  ON  when current - target >= cool_on_delta (and the compressor rested)
       OFF when target - current >= cool_off_delta
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from .guard import DEFAULT_MIN_OFF_TIME, may_activate
from .models import ActuatorState, Command, Mode

logger = logging.getLogger(__name__)

# One degree Fahrenheit expressed in Celsius degrees
F_DEGREE = 5 / 9


@dataclass(frozen=True)
class ThresholdPolicy:
    """Hysteresis bands in Celsius degrees plus the compressor rest time.

    Defaults are the product's 1/3 °F (heat) and 1/2 °F (cool) tuning.
    """

    heat_on_delta: float = 1 * F_DEGREE
    heat_off_delta: float = 3 * F_DEGREE
    cool_on_delta: float = 1 * F_DEGREE
    cool_off_delta: float = 2 * F_DEGREE
    min_off_time: timedelta = DEFAULT_MIN_OFF_TIME

    @classmethod
    def from_fahrenheit(
        cls,
        heat_on: float = 1.0,
        heat_off: float = 3.0,
        cool_on: float = 1.0,
        cool_off: float = 2.0,
        min_off_minutes: float = 4.0,
    ) -> "ThresholdPolicy":
        """Build a policy from Fahrenheit degree deltas."""
        return cls(
            heat_on_delta=heat_on * F_DEGREE,
            heat_off_delta=heat_off * F_DEGREE,
            cool_on_delta=cool_on * F_DEGREE,
            cool_off_delta=cool_off * F_DEGREE,
            min_off_time=timedelta(minutes=min_off_minutes),
        )


DEFAULT_POLICY = ThresholdPolicy()


@dataclass(frozen=True)
class Decision:
    """Engine output: the command to issue (if any) and the new last-off instant."""

    command: Optional[Command]
    last_off: datetime


def _coerce_mode(mode: Any) -> Mode:
    try:
        return Mode.parse(mode)
    except (TypeError, ValueError):
        logger.warning(f"Invalid mode value {mode!r}, treating as Off")
        return Mode.OFF


def decide(
    mode: Any,
    current_temp: float,
    target_temp: float,
    actuator_is_active: bool,
    last_off: datetime,
    now: datetime,
    policy: ThresholdPolicy = DEFAULT_POLICY,
) -> Decision:
    """Decide the next actuator command.

    Never raises: invalid modes are treated as Off and non-finite temperatures
    never lead to an activation.

    Args:
        mode: Requested operating mode (Mode, int or name)
        current_temp: Current temperature (°C)
        target_temp: Target temperature (°C)
        actuator_is_active: Level currently reported by the actuator
        last_off: Instant the actuator was last switched off
        now: Decision instant
        policy: Hysteresis bands and compressor rest time

    Returns:
        Decision with the command (or None) and the updated last-off instant
    """
    mode = _coerce_mode(mode)

    if mode == Mode.OFF:
        if actuator_is_active:
            return Decision(Command.DEACTIVATE, now)
        return Decision(None, last_off)

    if mode == Mode.AUTO:
        logger.info("'Auto' mode is not supported for this device.")
        return Decision(None, last_off)

    if not (_finite(current_temp) and _finite(target_temp)):
        logger.warning(f"Skipping decision on non-finite temperatures ({current_temp}, {target_temp})")
        return Decision(None, last_off)

    if mode == Mode.HEAT:
        overshoot = current_temp - target_temp
        if actuator_is_active and overshoot >= policy.heat_off_delta:
            return Decision(Command.DEACTIVATE, now)
        if (
            not actuator_is_active
            and -overshoot >= policy.heat_on_delta
            and may_activate(last_off, now, policy.min_off_time)
        ):
            return Decision(Command.ACTIVATE, last_off)
        return Decision(None, last_off)

    # Mode.COOL
    overshoot = target_temp - current_temp
    if actuator_is_active and overshoot >= policy.cool_off_delta:
        return Decision(Command.DEACTIVATE, now)
    if (
        not actuator_is_active
        and -overshoot >= policy.cool_on_delta
        and may_activate(last_off, now, policy.min_off_time)
    ):
        return Decision(Command.ACTIVATE, last_off)
    return Decision(None, last_off)


def derive_actuator_state(
    mode: Any, active: bool, previous: ActuatorState = ActuatorState.OFF
) -> ActuatorState:
    """Map mode + relay level to the state reported to the framework.

    Auto never switches the relay, so an energized relay under Auto keeps
    reporting what it was doing before (``previous``).
    """
    if not active:
        return ActuatorState.OFF
    try:
        mode = Mode.parse(mode)
    except (TypeError, ValueError):
        return ActuatorState.OFF
    if mode == Mode.HEAT:
        return ActuatorState.HEATING
    if mode == Mode.COOL:
        return ActuatorState.COOLING
    if mode == Mode.AUTO:
        return previous
    return ActuatorState.OFF


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
