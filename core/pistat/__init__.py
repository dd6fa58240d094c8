"""Pistat Raspberry Pi thermostat package."""

# Define public API
__all__ = [
    "ThermostatSettings",
    "load_settings",
    "ThermostatState",
    "Mode",
    "DisplayUnit",
    "ActuatorState",
    "StateStore",
    "Thermostat",
    "ThermostatService",
    "TemperatureAggregator",
    "decide",
]

# Import settings
from .settings import ThermostatSettings, load_settings

# Import models
from .models import ActuatorState, DisplayUnit, Mode, ThermostatState

# Import control
from .engine import decide
from .store import StateStore
from .aggregator import TemperatureAggregator
from .thermostat import Thermostat
from .thermostat_service import ThermostatService
