"""
Pistat Data Models

The persisted thermostat record plus the small value types passed between
the aggregator, the engine and the store.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
from typing import Any, Optional

from .exceptions import StateSchemaError

SCHEMA_VERSION = 1

# Far enough in the past that the compressor guard never blocks on first run
EPOCH = datetime(1, 1, 1, tzinfo=timezone.utc)


class Mode(IntEnum):
    """Requested operating mode (target heating/cooling state)."""

    OFF = 0
    HEAT = 1
    COOL = 2
    AUTO = 3

    @classmethod
    def parse(cls, value: Any) -> "Mode":
        """Parse an enum, an int or a case-insensitive name.

        Raises:
            ValueError: If the value does not name a mode
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            if value.strip().isdigit():
                return cls(int(value))
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Invalid mode: {value!r}")
        if isinstance(value, bool):
            raise ValueError(f"Invalid mode: {value!r}")
        return cls(value)

    @property
    def label(self) -> str:
        return self.name.capitalize()


class ActuatorState(IntEnum):
    """Current heating/cooling state reported to the framework."""

    OFF = 0
    HEATING = 1
    COOLING = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()


class DisplayUnit(IntEnum):
    """Temperature display units. Never changes the storage unit."""

    CELSIUS = 0
    FAHRENHEIT = 1

    @classmethod
    def parse(cls, value: Any) -> "DisplayUnit":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            if value.strip().isdigit():
                return cls(int(value))
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Invalid display unit: {value!r}")
        if isinstance(value, bool):
            raise ValueError(f"Invalid display unit: {value!r}")
        return cls(value)

    @property
    def label(self) -> str:
        return self.name.capitalize()


class Command(str, Enum):
    """Actuator command emitted by the control engine."""

    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class ThermostatState:
    """The single persisted and synchronized thermostat record.

    All temperatures are Celsius; conversion only happens at the framework boundary.
    """

    current_temperature: float = 25.0
    target_temperature: float = 25.0
    mode: Mode = Mode.OFF
    current_actuator_state: ActuatorState = ActuatorState.OFF
    display_unit: DisplayUnit = DisplayUnit.CELSIUS
    heating_threshold_temperature: float = 25.0
    cooling_threshold_temperature: float = 25.0
    last_off: datetime = EPOCH

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def copy(self, **changes) -> "ThermostatState":
        return replace(self, **changes)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the versioned persisted schema."""
        record = asdict(self)
        record["mode"] = int(self.mode)
        record["current_actuator_state"] = int(self.current_actuator_state)
        record["display_unit"] = int(self.display_unit)
        record["last_off"] = self.last_off.isoformat()
        return {"version": SCHEMA_VERSION, **record}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ThermostatState":
        """Deserialize a versioned record.

        Raises:
            StateSchemaError: If the version is unknown or a field is invalid
        """
        version = record.get("version")
        if version != SCHEMA_VERSION:
            raise StateSchemaError(f"Unsupported state schema version: {version!r}")

        unknown = set(record) - cls.field_names() - {"version"}
        if unknown:
            raise StateSchemaError(f"Unknown state fields: {sorted(unknown)}")

        defaults = cls()
        try:
            return cls(
                current_temperature=float(record.get("current_temperature", defaults.current_temperature)),
                target_temperature=float(record.get("target_temperature", defaults.target_temperature)),
                mode=Mode.parse(record.get("mode", defaults.mode)),
                current_actuator_state=ActuatorState(
                    record.get("current_actuator_state", defaults.current_actuator_state)
                ),
                display_unit=DisplayUnit.parse(record.get("display_unit", defaults.display_unit)),
                heating_threshold_temperature=float(
                    record.get("heating_threshold_temperature", defaults.heating_threshold_temperature)
                ),
                cooling_threshold_temperature=float(
                    record.get("cooling_threshold_temperature", defaults.cooling_threshold_temperature)
                ),
                last_off=_parse_timestamp(record.get("last_off", defaults.last_off)),
            )
        except (TypeError, ValueError) as e:
            raise StateSchemaError(f"Invalid state record: {e}") from e


@dataclass
class AuthToken:
    """Bearer token issued by the remote temperature service."""

    access_token: str
    token_type: str = "Bearer"
    expires_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_response(cls, data: dict[str, Any], now: Optional[datetime] = None) -> "AuthToken":
        """Build from a `{access_token, token_type, expires_in}` response body."""
        now = now or datetime.now(timezone.utc)
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            expires_at=now + timedelta(seconds=int(data.get("expires_in", 0))),
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def ttl_seconds(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return max(0, int((self.expires_at - now).total_seconds()))

    def to_record(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "AuthToken":
        return cls(
            access_token=record["access_token"],
            token_type=record.get("token_type", "Bearer"),
            expires_at=_parse_timestamp(record["expires_at"]),
        )


@dataclass
class RemoteSensorReading:
    """A temperature resolved from the remote accessory catalog."""

    identity: str
    unique_id: str
    temperature_celsius: float
