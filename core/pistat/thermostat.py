"""
Thermostat accessory.

The fixed interface the accessory framework talks to: one getter/setter per
observable, an observer hook for pushing value changes, and the new-reading
event that drives the control engine.

Every path that can end in an actuator write runs under one re-entrant
control lock, so a timer tick and a setpoint change can't race on last_off.
"""

import logging
import math
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .engine import DEFAULT_POLICY, Decision, ThresholdPolicy, decide, derive_actuator_state
from .guard import CompressorGuard
from .hardware import Actuator
from .models import ActuatorState, Command, DisplayUnit, Mode, ThermostatState
from .store import StateStore
from .units import display_string, temperature_props, unround_for_storage

logger = logging.getLogger(__name__)

Observer = Callable[[str, Any], None]

# Modes offered to the framework; Auto is accepted but never actuated
VALID_MODES = (Mode.OFF, Mode.HEAT, Mode.COOL)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Thermostat:
    """Single-relay thermostat exposed to an accessory framework."""

    def __init__(
        self,
        store: StateStore,
        actuator: Actuator,
        policy: ThresholdPolicy = DEFAULT_POLICY,
        name: str = "Thermostat",
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.actuator = actuator
        self.policy = policy
        self.name = name
        self.clock = clock
        self.guard = CompressorGuard(policy.min_off_time)

        self._control_lock = threading.RLock()
        self._observers: list[Observer] = []

    # Observers

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register a callback for observable changes. Returns an unsubscribe function."""
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self, name: str, value: Any) -> None:
        for callback in list(self._observers):
            try:
                callback(name, value)
            except Exception as e:
                logger.error(f"Observer failed on {name} update: {e}", exc_info=True)

    def _notify_all(self) -> None:
        for name, value in self.observables().items():
            self._notify(name, value)

    def observables(self) -> dict[str, Any]:
        """Every observable as the framework would read it."""
        return {
            "current_actuator_state": self.get_current_actuator_state(),
            "mode": self.get_mode(),
            "current_temperature": self.get_current_temperature(),
            "target_temperature": self.get_target_temperature(),
            "display_unit": self.get_display_unit(),
            "heating_threshold_temperature": self.get_heating_threshold_temperature(),
            "cooling_threshold_temperature": self.get_cooling_threshold_temperature(),
        }

    # Lifecycle

    def restore(self) -> ThermostatState:
        """Load the persisted record, push it to observers and evaluate immediately."""
        with self._control_lock:
            if self.store.load() is not None:
                self._notify_all()
            self.evaluate()
            return self.store.snapshot()

    def _retry_pending_load(self) -> None:
        """Reload the persisted record if the startup load could not reach the store."""
        if not self.store.load_pending:
            return
        held_last_off = self.store.snapshot().last_off
        if self.store.load() is not None:
            logger.info(f"{self.name}: persisted state restored after store outage")
            # A switch-off made during the outage still counts for the guard
            self.store.merge(last_off=held_last_off)
            self._notify_all()

    # Getters

    def uses_fahrenheit(self) -> bool:
        return self.store.snapshot().display_unit == DisplayUnit.FAHRENHEIT

    def _report(self, temperature: float, state: ThermostatState) -> float:
        return unround_for_storage(temperature, state.display_unit == DisplayUnit.FAHRENHEIT)

    def get_current_temperature(self) -> float:
        state = self.store.snapshot()
        logger.debug(f"get_current_temperature {display_string(state.current_temperature)}")
        return self._report(state.current_temperature, state)

    def get_target_temperature(self) -> float:
        """Target temperature; while Off this mirrors the current temperature."""
        state = self.store.snapshot()
        logger.debug(f"get_target_temperature {display_string(state.target_temperature)}")
        if state.mode == Mode.OFF:
            return self._report(state.current_temperature, state)
        return self._report(state.target_temperature, state)

    def get_mode(self) -> Mode:
        mode = self.store.snapshot().mode
        logger.debug(f"get_mode {mode.label}")
        return mode

    def get_current_actuator_state(self) -> ActuatorState:
        actuator_state = self.store.snapshot().current_actuator_state
        logger.debug(f"get_current_actuator_state {actuator_state.label}")
        return actuator_state

    def get_display_unit(self) -> DisplayUnit:
        unit = self.store.snapshot().display_unit
        logger.debug(f"get_display_unit {unit.label}")
        return unit

    def get_heating_threshold_temperature(self) -> float:
        state = self.store.snapshot()
        return self._report(state.heating_threshold_temperature, state)

    def get_cooling_threshold_temperature(self) -> float:
        state = self.store.snapshot()
        return self._report(state.cooling_threshold_temperature, state)

    def get_props(self) -> dict[str, Any]:
        """Bounds and steps for the current display unit, plus the valid modes."""
        props: dict[str, Any] = temperature_props(self.get_display_unit())
        props["mode"] = {"valid_values": [int(m) for m in VALID_MODES]}
        return props

    # Setters

    def set_target_temperature(self, value: float) -> float:
        """Store a new setpoint snapped to the display unit and re-evaluate."""
        with self._control_lock:
            self._retry_pending_load()
            target = unround_for_storage(float(value), self.uses_fahrenheit())
            logger.debug(f"set_target_temperature {display_string(target)}")
            self.store.merge(target_temperature=target)
            self._notify("target_temperature", self.get_target_temperature())
            self.evaluate()
            return target

    def set_mode(self, value: Any) -> Mode:
        """Change mode; anything that isn't a mode is treated as Off."""
        try:
            mode = Mode.parse(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid mode value {value!r}, treating as Off")
            mode = Mode.OFF

        with self._control_lock:
            self._retry_pending_load()
            logger.debug(f"set_mode {mode.label}")
            self.store.merge(mode=mode)
            self._notify("mode", mode)
            self._notify("target_temperature", self.get_target_temperature())
            self.evaluate()
            return mode

    def set_display_unit(self, value: Any) -> DisplayUnit:
        """Change the display unit. Stored temperatures stay in Celsius.

        Raises:
            ValueError: If the value is not a display unit
        """
        unit = DisplayUnit.parse(value)
        with self._control_lock:
            self._retry_pending_load()
            self.store.merge(display_unit=unit)
            logger.debug(f"set_display_unit {unit.label}")
            self._notify_all()
            return unit

    def set_heating_threshold_temperature(self, value: float) -> float:
        with self._control_lock:
            self._retry_pending_load()
            threshold = unround_for_storage(float(value), self.uses_fahrenheit())
            logger.debug(f"set_heating_threshold_temperature {display_string(threshold)}")
            self.store.merge(heating_threshold_temperature=threshold)
            self._notify("heating_threshold_temperature", self.get_heating_threshold_temperature())
            return threshold

    def set_cooling_threshold_temperature(self, value: float) -> float:
        with self._control_lock:
            self._retry_pending_load()
            threshold = unround_for_storage(float(value), self.uses_fahrenheit())
            logger.debug(f"set_cooling_threshold_temperature {display_string(threshold)}")
            self.store.merge(cooling_threshold_temperature=threshold)
            self._notify("cooling_threshold_temperature", self.get_cooling_threshold_temperature())
            return threshold

    # Control

    def update_current_temperature(self, value: Optional[float]) -> Optional[Decision]:
        """New-reading event: store the reading, notify observers, run the engine.

        An absent or non-finite reading keeps the previous value and skips the
        decision.
        """
        if value is None or not math.isfinite(value):
            logger.debug(f"No valid reading ({value!r}), keeping previous temperature")
            return None

        with self._control_lock:
            self._retry_pending_load()
            previous = self.store.snapshot().current_temperature
            self.store.merge(current_temperature=float(value))
            if value != previous:
                self._notify("current_temperature", self.get_current_temperature())
                if self.get_mode() == Mode.OFF:
                    self._notify("target_temperature", self.get_target_temperature())
            logger.debug(f"handle_current_temperature {display_string(value)}")
            return self.evaluate()

    def evaluate(self) -> Decision:
        """Run the engine on a consistent snapshot and apply its command."""
        with self._control_lock:
            now = self.clock()
            state = self.store.snapshot()
            active = self.actuator.read()

            decision = decide(
                state.mode,
                state.current_temperature,
                state.target_temperature,
                active,
                state.last_off,
                now,
                self.policy,
            )

            if decision.command == Command.ACTIVATE:
                logger.info(f"{self.name}: activating relay ({state.mode.label})")
                self.actuator.write(True)
            elif decision.command == Command.DEACTIVATE:
                logger.info(f"{self.name}: deactivating relay ({state.mode.label})")
                self.actuator.write(False)

            actuator_state = derive_actuator_state(
                state.mode, self.actuator.read(), state.current_actuator_state
            )
            self.store.merge(current_actuator_state=actuator_state, last_off=decision.last_off)

        if actuator_state != state.current_actuator_state:
            self._notify("current_actuator_state", actuator_state)
        return decision

    def status(self) -> dict[str, Any]:
        """Human-readable dump of the whole record, for logs and diagnostics."""
        state = self.store.snapshot()
        now = self.clock()
        return {
            "cooling_threshold_temperature": display_string(state.cooling_threshold_temperature),
            "current_actuator_state": state.current_actuator_state.label,
            "current_temperature": display_string(state.current_temperature),
            "heating_threshold_temperature": display_string(state.heating_threshold_temperature),
            "last_off": state.last_off.isoformat(),
            "guard_remaining_seconds": self.guard.remaining(state.last_off, now).total_seconds(),
            "mode": state.mode.label,
            "target_temperature": display_string(state.target_temperature),
            "display_unit": state.display_unit.label,
        }
