"""Unit tests for the hysteresis control engine and compressor guard."""

import logging
import math
from datetime import timedelta

import pytest

from core.pistat.engine import F_DEGREE, ThresholdPolicy, decide, derive_actuator_state
from core.pistat.guard import CompressorGuard, may_activate
from core.pistat.models import ActuatorState, Command, Mode
from tests.conftest import NOW

RESTED = NOW - timedelta(minutes=10)


@pytest.mark.parametrize("below_target", [0.6, 1.0, 2.5, 10.0])
def test_heat_activates_below_band_when_rested(below_target):
    decision = decide(Mode.HEAT, 22.0 - below_target, 22.0, False, RESTED, NOW)

    assert decision.command == Command.ACTIVATE
    assert decision.last_off == RESTED


def test_heat_stays_off_inside_activation_band():
    decision = decide(Mode.HEAT, 21.5, 22.0, False, RESTED, NOW)

    assert decision.command is None


@pytest.mark.parametrize("above_target", [1.7, 2.0, 5.0])
def test_heat_deactivates_past_off_band(above_target):
    decision = decide(Mode.HEAT, 22.0 + above_target, 22.0, True, RESTED, NOW)

    assert decision.command == Command.DEACTIVATE
    assert decision.last_off == NOW


def test_heat_keeps_running_inside_off_band():
    # 1.5 °C over target is still below the 3 °F (1.67 °C) off band
    decision = decide(Mode.HEAT, 23.5, 22.0, True, RESTED, NOW)

    assert decision.command is None
    assert decision.last_off == RESTED


def test_heat_does_not_reissue_activate_while_running():
    decision = decide(Mode.HEAT, 20.0, 22.0, True, RESTED, NOW)

    assert decision.command is None


def test_heat_waits_for_compressor_rest():
    decision = decide(Mode.HEAT, 20.0, 22.0, False, NOW - timedelta(minutes=3), NOW)

    assert decision.command is None


def test_scenario_a_heat_activation():
    decision = decide(Mode.HEAT, 20.0, 22.0, False, NOW - timedelta(minutes=10), NOW)

    assert decision.command == Command.ACTIVATE


def test_scenario_b_cool_stays_active_inside_band():
    # 1.1 °C below target, off band is 2 °F ≈ 1.11 °C
    decision = decide(Mode.COOL, 22.9, 24.0, True, NOW - timedelta(minutes=1), NOW)

    assert decision.command is None
    assert decision.last_off == NOW - timedelta(minutes=1)


def test_scenario_c_off_deactivates_regardless_of_temperature():
    decision = decide(Mode.OFF, 10.0, 30.0, True, RESTED, NOW)

    assert decision.command == Command.DEACTIVATE
    assert decision.last_off == NOW


def test_off_with_idle_actuator_is_a_no_op():
    decision = decide(Mode.OFF, 10.0, 30.0, False, RESTED, NOW)

    assert decision.command is None
    assert decision.last_off == RESTED


def test_cool_deactivates_past_off_band():
    decision = decide(Mode.COOL, 22.5, 24.0, True, RESTED, NOW)

    assert decision.command == Command.DEACTIVATE
    assert decision.last_off == NOW


def test_cool_activates_above_target_when_rested():
    decision = decide(Mode.COOL, 25.0, 24.0, False, RESTED, NOW)

    assert decision.command == Command.ACTIVATE


def test_cool_waits_for_compressor_rest():
    decision = decide(Mode.COOL, 30.0, 24.0, False, NOW - timedelta(seconds=30), NOW)

    assert decision.command is None


def test_auto_is_a_logged_no_op(caplog):
    with caplog.at_level(logging.INFO, logger="core.pistat.engine"):
        active = decide(Mode.AUTO, 10.0, 30.0, True, RESTED, NOW)
        idle = decide(Mode.AUTO, 10.0, 30.0, False, RESTED, NOW)

    assert active.command is None
    assert idle.command is None
    assert "not supported" in caplog.text


@pytest.mark.parametrize("mode", [7, -1, "bogus", None, 1.5])
def test_invalid_mode_is_treated_as_off(mode, caplog):
    with caplog.at_level(logging.WARNING, logger="core.pistat.engine"):
        decision = decide(mode, 10.0, 30.0, True, RESTED, NOW)

    assert decision.command == Command.DEACTIVATE
    assert "treating as Off" in caplog.text


def test_mode_accepts_ints_and_names():
    assert decide(1, 20.0, 22.0, False, RESTED, NOW).command == Command.ACTIVATE
    assert decide("cool", 25.0, 24.0, False, RESTED, NOW).command == Command.ACTIVATE


def test_non_finite_reading_never_activates():
    decision = decide(Mode.HEAT, math.nan, 22.0, False, RESTED, NOW)

    assert decision.command is None


def test_policy_from_fahrenheit_converts_deltas():
    policy = ThresholdPolicy.from_fahrenheit(heat_on=2, heat_off=4, cool_on=2, cool_off=3, min_off_minutes=5)

    assert policy.heat_on_delta == pytest.approx(2 * F_DEGREE)
    assert policy.cool_off_delta == pytest.approx(3 * F_DEGREE)
    assert policy.min_off_time == timedelta(minutes=5)

    # 1 °C below target is less than 2 °F, so no activation under this policy
    assert decide(Mode.HEAT, 21.0, 22.0, False, RESTED, NOW, policy).command is None


def test_default_policy_matches_fahrenheit_tuning():
    policy = ThresholdPolicy()

    assert policy.heat_on_delta == pytest.approx(5 / 9)
    assert policy.heat_off_delta == pytest.approx(3 * 5 / 9)
    assert policy.cool_on_delta == pytest.approx(5 / 9)
    assert policy.cool_off_delta == pytest.approx(2 * 5 / 9)
    assert policy.min_off_time == timedelta(minutes=4)


def test_derive_actuator_state():
    assert derive_actuator_state(Mode.HEAT, True) == ActuatorState.HEATING
    assert derive_actuator_state(Mode.COOL, True) == ActuatorState.COOLING
    assert derive_actuator_state(Mode.AUTO, True) == ActuatorState.OFF
    assert derive_actuator_state(Mode.AUTO, True, ActuatorState.COOLING) == ActuatorState.COOLING
    assert derive_actuator_state(Mode.AUTO, False, ActuatorState.HEATING) == ActuatorState.OFF
    assert derive_actuator_state(Mode.HEAT, False) == ActuatorState.OFF
    assert derive_actuator_state("garbage", True) == ActuatorState.OFF


def test_guard_blocks_before_four_minutes():
    assert may_activate(NOW - timedelta(minutes=3, seconds=59, microseconds=999999), NOW) is False
    assert may_activate(NOW, NOW) is False


def test_guard_boundary_is_inclusive():
    assert may_activate(NOW - timedelta(minutes=4), NOW) is True
    assert may_activate(NOW - timedelta(hours=1), NOW) is True


def test_guard_remaining():
    guard = CompressorGuard(timedelta(minutes=4))

    assert guard.remaining(NOW - timedelta(minutes=1), NOW) == timedelta(minutes=3)
    assert guard.remaining(NOW - timedelta(minutes=10), NOW) == timedelta(0)
    assert guard.may_activate(NOW - timedelta(minutes=4), NOW)
