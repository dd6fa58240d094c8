"""
Hardware adapters: the relay and the local 1-wire probe.

The relay is driven through RPi.GPIO (BCM numbering) and its reported level is
authoritative for the control engine. The DS18B20 probe is read from the
kernel's w1-therm sysfs interface.
"""

import logging
from pathlib import Path
from typing import Optional, Protocol

from .exceptions import ConfigurationError, SensorReadError

logger = logging.getLogger(__name__)

W1_DEVICES = Path("/sys/bus/w1/devices")
DS18B20_FAMILY = "28-"


class Actuator(Protocol):
    """Single binary output."""

    def write(self, active: bool) -> None: ...

    def read(self) -> bool: ...


class LocalSensor(Protocol):
    """Local temperature probe."""

    def read_celsius(self) -> float: ...


class GPIOActuator:
    """Relay on a Raspberry Pi GPIO pin."""

    def __init__(self, pin: int, active_low: bool = False):
        """Claim the pin as an output.

        Args:
            pin: BCM pin number driving the relay
            active_low: True for relay boards that energize on a LOW level

        Raises:
            ConfigurationError: If RPi.GPIO is unavailable on this machine
        """
        self.pin = pin
        self.active_low = active_low
        try:
            import RPi.GPIO as GPIO  # type: ignore
        except (ImportError, RuntimeError) as e:
            raise ConfigurationError(f"GPIO not available for relay on pin {pin}: {e}") from e

        self.GPIO = GPIO
        self.GPIO.setwarnings(False)
        self.GPIO.setmode(self.GPIO.BCM)
        self.GPIO.setup(self.pin, self.GPIO.OUT)
        logger.debug(f"Pin {self.pin} is currently {'high' if self.GPIO.input(self.pin) else 'low'}")

    def write(self, active: bool) -> None:
        level = self.GPIO.HIGH if active != self.active_low else self.GPIO.LOW
        self.GPIO.output(self.pin, level)
        logger.info(f"Relay on pin {self.pin} {'energized' if active else 'released'}")

    def read(self) -> bool:
        return bool(self.GPIO.input(self.pin)) != self.active_low

    def cleanup(self) -> None:
        """Release the pin."""
        self.GPIO.cleanup(self.pin)
        logger.info(f"Cleaned up GPIO pin {self.pin}")


def discover_sensor_ids(devices_dir: Path = W1_DEVICES) -> list[str]:
    """IDs of all DS18B20 probes on the 1-wire bus, sorted."""
    if not devices_dir.is_dir():
        return []
    return sorted(p.name for p in devices_dir.iterdir() if p.name.startswith(DS18B20_FAMILY))


class DS18B20Sensor:
    """DS18B20 probe read through the w1-therm driver."""

    def __init__(self, sensor_id: Optional[str] = None, devices_dir: Path = W1_DEVICES):
        """
        Args:
            sensor_id: 1-wire id like "28-0316a2794aff"; first probe found if omitted
            devices_dir: sysfs directory holding the 1-wire devices
        """
        self.devices_dir = Path(devices_dir)
        self.sensor_id = sensor_id

    def _resolve_id(self) -> str:
        if not self.sensor_id:
            ids = discover_sensor_ids(self.devices_dir)
            if not ids:
                raise SensorReadError(f"No DS18B20 sensor found under {self.devices_dir}")
            self.sensor_id = ids[0]
            logger.info(f"Using DS18B20 sensor {self.sensor_id}")
        return self.sensor_id

    def read_celsius(self) -> float:
        """Read the probe.

        Raises:
            SensorReadError: If the device is missing, the CRC check failed or
                the output cannot be parsed
        """
        sensor_id = self._resolve_id()
        path = self.devices_dir / sensor_id / "w1_slave"
        try:
            lines = path.read_text().splitlines()
        except OSError as e:
            raise SensorReadError(f"Cannot read {path}: {e}") from e

        return parse_w1_slave(lines, sensor_id)


def parse_w1_slave(lines: list[str], sensor_id: str = "?") -> float:
    """Parse w1_slave output (CRC line, then the ``t=<millidegrees>`` line)."""
    if len(lines) < 2 or not lines[0].strip().endswith("YES"):
        raise SensorReadError(f"CRC check failed for sensor {sensor_id}")

    _, sep, raw = lines[1].partition("t=")
    if not sep:
        raise SensorReadError(f"No temperature in output of sensor {sensor_id}")
    try:
        return int(raw.strip()) / 1000.0
    except ValueError as e:
        raise SensorReadError(f"Bad temperature value from sensor {sensor_id}: {raw!r}") from e
