"""
State Store Adapter

Owns the in-memory ThermostatState and mirrors it to a key-value store
(Redis in production). Every mutation goes through merge(), which holds a
lock, overwrites the given fields and re-persists the whole record.

Persistence is best effort: a failed write is logged and the in-memory state
stays authoritative until the next merge writes it again.
"""

import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

import redis

from .exceptions import PersistenceError, StateSchemaError
from .models import EPOCH, AuthToken, ThermostatState

logger = logging.getLogger(__name__)

STATE_KEY = "State"
TOKEN_KEY = "Authorization"

# PascalCase keys written by the first generation of the thermostat
LEGACY_FIELDS = {
    "CurrentTemperature": "current_temperature",
    "TargetTemperature": "target_temperature",
    "TargetHeatingCoolingState": "mode",
    "CurrentHeatingCoolingState": "current_actuator_state",
    "TemperatureDisplayUnits": "display_unit",
    "HeatingThresholdTemperature": "heating_threshold_temperature",
    "CoolingThresholdTemperature": "cooling_threshold_temperature",
    "LastOff": "last_off",
}
LEGACY_TIMESTAMP_FORMAT = "%a %b %d %Y %H:%M:%S GMT%z"


class KeyValueStore(Protocol):
    """String-keyed get/set with optional expiry (``SET key value [EX seconds]``)."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ex: Optional[int] = None) -> None: ...


class RedisStore:
    """KeyValueStore backed by Redis."""

    def __init__(self, url: str = "redis://localhost:6379/0", timeout: float = 5):
        self.url = url
        self.client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            raise PersistenceError(f"Redis read of {key!r} failed: {e}") from e

    def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        try:
            self.client.set(key, value, ex=ex)
        except redis.RedisError as e:
            raise PersistenceError(f"Redis write of {key!r} failed: {e}") from e


class MemoryStore:
    """In-process KeyValueStore with expiry, for development without Redis."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ex if ex else None
            self._data[key] = (value, expires_at)


def migrate_legacy_state(blob: dict[str, Any]) -> ThermostatState:
    """Convert an unversioned PascalCase blob into the current schema."""
    record: dict[str, Any] = {"version": 1}
    for legacy_key, key in LEGACY_FIELDS.items():
        if legacy_key in blob:
            record[key] = blob[legacy_key]

    last_off = record.pop("last_off", None)
    state = ThermostatState.from_record(record)
    if last_off:
        try:
            state.last_off = datetime.strptime(str(last_off), LEGACY_TIMESTAMP_FORMAT)
        except ValueError:
            logger.debug(f"Unparseable legacy LastOff {last_off!r}, using epoch")
            state.last_off = EPOCH
    return state


def parse_state(blob: Any) -> ThermostatState:
    """Validate (or migrate) a decoded persisted blob.

    Raises:
        StateSchemaError: If the blob has an unknown shape or version
    """
    if not isinstance(blob, dict):
        raise StateSchemaError(f"Persisted state is not an object: {type(blob).__name__}")
    if "version" in blob:
        return ThermostatState.from_record(blob)
    if blob and set(blob) <= set(LEGACY_FIELDS):
        logger.info("Migrating unversioned thermostat state to schema v1")
        return migrate_legacy_state(blob)
    raise StateSchemaError(f"Unrecognized persisted state keys: {sorted(blob)}")


class StateStore:
    """Single owner of the thermostat record."""

    def __init__(
        self,
        kv: KeyValueStore,
        state_key: str = STATE_KEY,
        token_key: str = TOKEN_KEY,
        initial: Optional[ThermostatState] = None,
    ):
        self.kv = kv
        self.state_key = state_key
        self.token_key = token_key
        self._state = initial.copy() if initial else ThermostatState()
        self.lock = threading.Lock()
        self._load_pending = False

    @property
    def load_pending(self) -> bool:
        """True while the last load() could not reach the store.

        While pending, merges update the in-memory record only.
        """
        return self._load_pending

    def snapshot(self) -> ThermostatState:
        """Consistent copy of the whole record."""
        with self.lock:
            return self._state.copy()

    def load(self) -> Optional[ThermostatState]:
        """Replace the in-memory record with the persisted one, if any.

        This is the only path allowed to move last_off backwards. A read
        failure keeps the in-memory record and marks the load as pending.
        """
        try:
            raw = self.kv.get(self.state_key)
        except PersistenceError as e:
            logger.error(f"Could not load thermostat state, will retry: {e}")
            self._load_pending = True
            return None

        self._load_pending = False

        if not raw:
            logger.info("No persisted thermostat state, using defaults")
            return None

        logger.debug(f"Persisted state: {raw}")
        try:
            state = parse_state(json.loads(raw))
        except (ValueError, StateSchemaError) as e:
            logger.error(f"Rejected persisted thermostat state: {e}")
            return None

        with self.lock:
            self._state = state
            return state.copy()

    def merge(self, **partial: Any) -> ThermostatState:
        """Overwrite the given fields and persist the full record.

        Raises:
            TypeError: If a field name is not part of ThermostatState
        """
        unknown = set(partial) - ThermostatState.field_names()
        if unknown:
            raise TypeError(f"Unknown state fields: {sorted(unknown)}")

        with self.lock:
            last_off = partial.get("last_off")
            if last_off is not None and last_off < self._state.last_off:
                logger.debug(f"Ignoring older last_off {last_off} (have {self._state.last_off})")
                del partial["last_off"]

            self._state = self._state.copy(**partial)
            merged = self._state.copy()
            if self._load_pending:
                logger.warning("Persisted state not loaded yet, keeping change in memory only")
            else:
                self._persist(merged)

        return merged

    def _persist(self, state: ThermostatState) -> None:
        try:
            self.kv.set(self.state_key, json.dumps(state.to_record()))
        except PersistenceError as e:
            logger.error(f"State write error: {e}")

    def get_token(self) -> Optional[AuthToken]:
        """Cached auth token, or None on a miss."""
        try:
            raw = self.kv.get(self.token_key)
        except PersistenceError as e:
            logger.warning(f"Could not read cached authorization: {e}")
            return None
        if not raw:
            return None

        try:
            data = json.loads(raw)
            if "expires_at" in data:
                return AuthToken.from_record(data)
            # Raw issuer response; the store's own expiry bounds it
            return AuthToken.from_response(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed cached authorization: {e}")
            return None

    def set_token(self, token: AuthToken, now: Optional[datetime] = None) -> None:
        """Cache a token with a time-to-live equal to its remaining lifetime."""
        ttl = token.ttl_seconds(now or datetime.now(timezone.utc))
        if ttl <= 0:
            return
        try:
            self.kv.set(self.token_key, json.dumps(token.to_record()), ex=ttl)
        except PersistenceError as e:
            logger.warning(f"Could not cache authorization: {e}")
