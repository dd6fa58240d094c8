"""
Pistat Configuration Settings

User-facing settings are loaded from /data/options.json (add-on options),
falling back to config.yaml during development. Environment variables
(optionally from a .env file) override individual values.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .aggregator import POLICIES, SINGLE
from .engine import ThresholdPolicy
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

OPTIONS_PATH = "/data/options.json"
CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config.yaml")
STORE_BACKENDS = ("redis", "memory")


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def _snake_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    return {_camel_to_snake(k): v for k, v in (data or {}).items()}


@dataclass
class RemoteSettings:
    """Networked accessory server providing remote temperature sensors."""

    base_url: str = ""
    identities: list[str] = field(default_factory=list)  # Serial numbers or unique ids
    policy: str = SINGLE  # "single" or "average"
    timeout: float = 5.0  # Seconds per HTTP request

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.identities)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RemoteSettings":
        converted = _snake_keys(data)
        # Single-sensor shorthand
        if "serial_number" in converted:
            converted.setdefault("identities", [converted.pop("serial_number")])
        if isinstance(converted.get("identities"), str):
            converted["identities"] = _split_list(converted["identities"])
        return cls(**converted)


@dataclass
class StoreSettings:
    """Where the thermostat state and auth token are persisted."""

    backend: str = "redis"
    url: str = "redis://localhost:6379/0"
    state_key: str = "State"
    token_key: str = "Authorization"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StoreSettings":
        return cls(**_snake_keys(data))


@dataclass
class HardwareSettings:
    """Relay pin and local probe."""

    pin: int = 1  # BCM pin driving the relay
    active_low: bool = False
    local_sensor: bool = True
    sensor_id: Optional[str] = None  # First DS18B20 on the bus if not set

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HardwareSettings":
        return cls(**_snake_keys(data))


def thresholds_from_dict(data: Mapping[str, Any]) -> ThresholdPolicy:
    """Build a ThresholdPolicy from Fahrenheit-degree settings.

    Keys: heat_on, heat_off, cool_on, cool_off (°F deltas), min_off_minutes.
    """
    converted = _snake_keys(data)
    try:
        return ThresholdPolicy.from_fahrenheit(**{k: float(v) for k, v in converted.items()})
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid thresholds: {e}") from e


@dataclass
class ThermostatSettings:
    """Configuration for the thermostat."""

    name: str = "Thermostat"
    poll_interval_seconds: float = 60.0
    thresholds: ThresholdPolicy = field(default_factory=ThresholdPolicy)
    remote: RemoteSettings = field(default_factory=RemoteSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    hardware: HardwareSettings = field(default_factory=HardwareSettings)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ThermostatSettings":
        """Create from dictionary.

        Raises:
            ConfigurationError: If a key is unknown or a value is invalid
        """
        converted = _snake_keys(data)
        try:
            if "thresholds" in converted:
                converted["thresholds"] = thresholds_from_dict(converted["thresholds"])
            if "remote" in converted:
                converted["remote"] = RemoteSettings.from_dict(converted["remote"])
            if "store" in converted:
                converted["store"] = StoreSettings.from_dict(converted["store"])
            if "hardware" in converted:
                converted["hardware"] = HardwareSettings.from_dict(converted["hardware"])
            settings = cls(**converted)
        except TypeError as e:
            raise ConfigurationError(f"Invalid thermostat settings: {e}") from e

        settings.validate()
        return settings

    def validate(self) -> None:
        """Raises ConfigurationError on out-of-range values."""
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("poll_interval_seconds must be positive")
        if self.remote.policy not in POLICIES:
            raise ConfigurationError(f"remote.policy must be one of {POLICIES}, got {self.remote.policy!r}")
        if self.remote.timeout <= 0:
            raise ConfigurationError("remote.timeout must be positive")
        if self.store.backend not in STORE_BACKENDS:
            raise ConfigurationError(f"store.backend must be one of {STORE_BACKENDS}")
        if self.hardware.pin < 0:
            raise ConfigurationError("hardware.pin must be a BCM pin number")
        t = self.thresholds
        if min(t.heat_on_delta, t.heat_off_delta, t.cool_on_delta, t.cool_off_delta) < 0:
            raise ConfigurationError("Threshold deltas must not be negative")
        if t.min_off_time.total_seconds() < 0:
            raise ConfigurationError("min_off_minutes must not be negative")


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _read_options(options_path: str, config_path: str) -> dict[str, Any]:
    """Raw thermostat options from options.json, else config.yaml."""
    if os.path.exists(options_path):
        with open(options_path) as f:
            options = json.load(f)
        logger.info(f"Loaded thermostat options from {options_path}")
        return options.get("thermostat", {})

    if os.path.exists(config_path):
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Loaded thermostat options from {config_path}")
        return config.get("options", {}).get("thermostat", {})

    logger.warning("No thermostat configuration found, using defaults")
    return {}


def _apply_env(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Overlay environment variables onto raw options."""
    data = {k: dict(v) if isinstance(v, dict) else v for k, v in data.items()}
    remote = data.setdefault("remote", {})
    hardware = data.setdefault("hardware", {})
    store = data.setdefault("store", {})

    if env.get("BASE_URL"):
        remote["base_url"] = env["BASE_URL"]
    if env.get("SERIAL_NUMBER"):
        remote.pop("serial_number", None)
        remote.pop("serialNumber", None)
        remote["identities"] = _split_list(env["SERIAL_NUMBER"])
    if env.get("SENSOR_ID"):
        hardware["sensor_id"] = env["SENSOR_ID"]
    if env.get("REDIS_URL"):
        store["url"] = env["REDIS_URL"]

    try:
        if env.get("PIN"):
            hardware["pin"] = int(env["PIN"])
        if env.get("POLL_INTERVAL"):
            data["poll_interval_seconds"] = float(env["POLL_INTERVAL"])
    except ValueError as e:
        raise ConfigurationError(f"Invalid environment override: {e}") from e

    return data


def load_settings(
    options_path: str = OPTIONS_PATH,
    config_path: str = CONFIG_PATH,
    env: Optional[Mapping[str, str]] = None,
) -> ThermostatSettings:
    """Load thermostat settings.

    Args:
        options_path: Add-on options file (production)
        config_path: Development config.yaml
        env: Environment to read overrides from (defaults to os.environ after
            loading .env)

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    if env is None:
        load_dotenv()
        env = os.environ

    try:
        raw = _read_options(options_path, config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read configuration: {e}") from e

    return ThermostatSettings.from_dict(_apply_env(raw, env))
