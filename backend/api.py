"""
Pistat API Endpoints

HTTP face of the thermostat accessory: one GET for every observable and one
PUT per writable characteristic. Thermostat routes are plain functions so
FastAPI runs them in its threadpool; they can block on the control lock and
on store I/O.
"""

import os
import sys
from typing import Union

from fastapi import APIRouter, HTTPException
from loguru import logger
from pydantic import BaseModel

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.pistat.thermostat import Thermostat
from core.pistat.thermostat_service import ThermostatService
from core.pistat.units import celsius_to_fahrenheit

router = APIRouter()

# Set by app.py during startup
thermostat: Thermostat | None = None
service: ThermostatService | None = None


class SetTemperatureRequest(BaseModel):
    """Request body for setting a temperature (°C)."""
    temperature: float


class SetModeRequest(BaseModel):
    """Request body for setting the mode (0-3 or Off/Heat/Cool/Auto)."""
    mode: Union[int, str]


class SetDisplayUnitRequest(BaseModel):
    """Request body for setting the display unit (0/1 or Celsius/Fahrenheit)."""
    unit: Union[int, str]


def _require_thermostat() -> Thermostat:
    if thermostat is None:
        raise HTTPException(status_code=503, detail="Thermostat not initialized")
    return thermostat


def _check_range(device: Thermostat, characteristic: str, value: float) -> None:
    props = device.get_props()[characteristic]
    if not props["min_value"] <= value <= props["max_value"]:
        raise HTTPException(
            status_code=400,
            detail=(
                f"{characteristic} {value} °C outside "
                f"[{props['min_value']:.2f}, {props['max_value']:.2f}] °C"
            ),
        )


def _thermostat_payload(device: Thermostat) -> dict:
    values = device.observables()
    return {
        "name": device.name,
        "current_temperature": values["current_temperature"],
        "current_temperature_f": celsius_to_fahrenheit(values["current_temperature"]),
        "target_temperature": values["target_temperature"],
        "heating_threshold_temperature": values["heating_threshold_temperature"],
        "cooling_threshold_temperature": values["cooling_threshold_temperature"],
        "mode": values["mode"].label,
        "current_actuator_state": values["current_actuator_state"].label,
        "display_unit": values["display_unit"].label,
        "status": device.status(),
    }


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": "Pistat",
        "version": "0.1.0",
        "thermostat_ready": thermostat is not None,
        "service_running": service.running if service else False,
    }


@router.get("/api/thermostat")
def get_thermostat():
    """Get every observable of the thermostat."""
    return _thermostat_payload(_require_thermostat())


@router.get("/api/thermostat/props")
def get_props():
    """Get characteristic bounds for the current display unit."""
    return _require_thermostat().get_props()


@router.put("/api/thermostat/target_temperature")
def set_target_temperature(request: SetTemperatureRequest):
    """Set the target temperature (°C, snapped to the display unit)."""
    device = _require_thermostat()
    _check_range(device, "target_temperature", request.temperature)
    stored = device.set_target_temperature(request.temperature)
    logger.info(f"Target temperature set to {stored:.2f}°C")
    return _thermostat_payload(device)


@router.put("/api/thermostat/mode")
def set_mode(request: SetModeRequest):
    """Set the operating mode. Unknown values are treated as Off."""
    device = _require_thermostat()
    mode = device.set_mode(request.mode)
    logger.info(f"Mode set to {mode.label}")
    return _thermostat_payload(device)


@router.put("/api/thermostat/display_unit")
def set_display_unit(request: SetDisplayUnitRequest):
    """Set the temperature display unit."""
    device = _require_thermostat()
    try:
        unit = device.set_display_unit(request.unit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    logger.info(f"Display unit set to {unit.label}")
    return _thermostat_payload(device)


@router.put("/api/thermostat/heating_threshold_temperature")
def set_heating_threshold_temperature(request: SetTemperatureRequest):
    """Set the heating threshold temperature (°C)."""
    device = _require_thermostat()
    _check_range(device, "heating_threshold_temperature", request.temperature)
    device.set_heating_threshold_temperature(request.temperature)
    return _thermostat_payload(device)


@router.put("/api/thermostat/cooling_threshold_temperature")
def set_cooling_threshold_temperature(request: SetTemperatureRequest):
    """Set the cooling threshold temperature (°C)."""
    device = _require_thermostat()
    _check_range(device, "cooling_threshold_temperature", request.temperature)
    device.set_cooling_threshold_temperature(request.temperature)
    return _thermostat_payload(device)
