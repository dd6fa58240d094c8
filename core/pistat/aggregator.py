"""
Temperature Source Aggregator

Resolves the thermostat's current temperature from the local probe and/or
remote sensors exposed by a networked accessory server.

Policies:
- average: mean of the local reading and every matched remote reading
- single:  one remote sensor by identity, falling back to the local reading

Remote identities are serial numbers or unique ids. Once an identity has been
matched in the catalog its unique id is remembered, so later reads go straight
to /api/accessories/{id} instead of scanning the whole catalog again.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Callable, Optional

from .exceptions import AuthenticationError, RemoteFetchError, SensorReadError
from .hardware import LocalSensor
from .models import AuthToken, RemoteSensorReading
from .remote_client import RemoteTemperatureClient, accessory_identities, accessory_temperature
from .store import StateStore

logger = logging.getLogger(__name__)

AVERAGE = "average"
SINGLE = "single"
POLICIES = (AVERAGE, SINGLE)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _valid(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


class TemperatureAggregator:
    """Combines local and remote temperature sources."""

    def __init__(
        self,
        store: StateStore,
        client: Optional[RemoteTemperatureClient] = None,
        identities: Optional[list[str]] = None,
        policy: str = SINGLE,
        local_sensor: Optional[LocalSensor] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Args:
            store: State store, also used as the auth token cache
            client: Remote service client (None disables remote sources)
            identities: Serial numbers or unique ids of remote sensors
            policy: "average" or "single"
            local_sensor: Local probe (None when the thermostat has no probe)
            clock: Source of the current UTC time
        """
        if policy not in POLICIES:
            raise ValueError(f"Unknown aggregation policy: {policy!r}")

        self.store = store
        self.client = client
        self.identities = [i for i in (identities or []) if i]
        self.policy = policy
        self.local_sensor = local_sensor
        self.clock = clock

        self._token: Optional[AuthToken] = None
        self._rejected_token: Optional[str] = None
        self._unique_ids: dict[str, str] = {}  # identity -> uniqueId

    @property
    def remote_enabled(self) -> bool:
        return self.client is not None and bool(self.identities)

    def read_local(self) -> Optional[float]:
        """Local probe reading, or None if there is no usable one."""
        if self.local_sensor is None:
            return None
        try:
            value = self.local_sensor.read_celsius()
        except SensorReadError as e:
            logger.warning(f"Local sensor read failed: {e}")
            return None
        if not _valid(value):
            logger.warning(f"Discarding invalid local reading {value!r}")
            return None
        return value

    def refresh(self) -> Optional[float]:
        """Read the local probe and resolve the current temperature."""
        return self.resolve_current_temperature(self.read_local())

    def resolve_current_temperature(self, local_reading: Optional[float]) -> Optional[float]:
        """Resolve the current temperature.

        Returns:
            Temperature in °C, or None when no source produced a valid reading
            (the caller keeps its previous value)
        """
        local = local_reading if _valid(local_reading) else None

        if not self.remote_enabled:
            return local

        if self.policy == SINGLE:
            try:
                readings = self.fetch_remote_readings(self.identities[:1])
            except RemoteFetchError as e:
                logger.error(f"Remote temperature unavailable, using local reading: {e}")
                return local
            if not readings:
                logger.warning(f"Remote sensor {self.identities[0]} not found, using local reading")
                return local
            return readings[0].temperature_celsius

        values = [] if local is None else [local]
        try:
            values.extend(r.temperature_celsius for r in self.fetch_remote_readings(self.identities))
        except RemoteFetchError as e:
            logger.error(f"Remote temperatures unavailable, using local reading only: {e}")

        if not values:
            return None
        return sum(values) / len(values)

    def fetch_remote_readings(self, identities: list[str]) -> list[RemoteSensorReading]:
        """Fetch the remote readings for the given identities.

        Unmatched identities and per-sensor failures are skipped.

        Raises:
            RemoteFetchError: If authentication or the catalog scan fails
        """
        token = self.get_token()
        try:
            return self._fetch(identities, token)
        except AuthenticationError:
            self.invalidate_token()
            raise

    def _fetch(self, identities: list[str], token: AuthToken) -> list[RemoteSensorReading]:
        found: dict[str, RemoteSensorReading] = {}

        unresolved = [i for i in identities if i not in self._unique_ids]
        if unresolved:
            for accessory in self.client.list_accessories(token):
                if not isinstance(accessory, dict):
                    continue
                matches = accessory_identities(accessory)
                for identity in unresolved:
                    if identity in matches and identity not in self._unique_ids:
                        unique_id = str(accessory.get("uniqueId"))
                        self._unique_ids[identity] = unique_id
                        logger.info(f"Matched remote sensor {identity} -> {unique_id}")
                        temperature = accessory_temperature(accessory)
                        if _valid(temperature):
                            found[identity] = RemoteSensorReading(identity, unique_id, temperature)

        for identity in identities:
            if identity in found or identity not in self._unique_ids:
                continue
            unique_id = self._unique_ids[identity]
            try:
                accessory = self.client.get_accessory(unique_id, token)
            except AuthenticationError:
                raise
            except RemoteFetchError as e:
                if e.status_code == 404:
                    # Accessory was re-registered under a new id; rescan next time
                    del self._unique_ids[identity]
                logger.warning(f"Failed to read remote sensor {identity}: {e}")
                continue

            temperature = accessory_temperature(accessory)
            if _valid(temperature):
                found[identity] = RemoteSensorReading(identity, unique_id, temperature)
            else:
                logger.warning(f"Remote sensor {identity} reported no temperature")

        return [found[i] for i in identities if i in found]

    def get_token(self) -> AuthToken:
        """Valid bearer token: memory, then the store, then a fresh exchange.

        Raises:
            AuthenticationError: If a fresh exchange is needed and fails
        """
        now = self.clock()
        if self._token is not None and not self._token.is_expired(now):
            return self._token

        cached = self.store.get_token()
        if (
            cached is not None
            and not cached.is_expired(now)
            and cached.access_token != self._rejected_token
        ):
            self._token = cached
            return cached

        token = self.client.authenticate()
        logger.debug(f"Obtained {token.token_type} token valid until {token.expires_at}")
        self._token = token
        self.store.set_token(token, now)
        return token

    def invalidate_token(self) -> None:
        """Forget the current token so the next call re-authenticates."""
        if self._token is not None:
            self._rejected_token = self._token.access_token
        self._token = None
