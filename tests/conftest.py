from datetime import datetime, timedelta, timezone

import pytest

from core.pistat.store import MemoryStore, StateStore
from core.pistat.thermostat import Thermostat

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Controllable UTC clock."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeActuator:
    def __init__(self, active: bool = False):
        self.active = active
        self.writes: list[bool] = []

    def write(self, active: bool) -> None:
        self.active = active
        self.writes.append(active)

    def read(self) -> bool:
        return self.active


class FakeSensor:
    def __init__(self, value=None, error: Exception | None = None):
        self.value = value
        self.error = error
        self.reads = 0

    def read_celsius(self) -> float:
        self.reads += 1
        if self.error is not None:
            raise self.error
        return self.value


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def kv():
    return MemoryStore()


@pytest.fixture
def store(kv):
    return StateStore(kv)


@pytest.fixture
def actuator():
    return FakeActuator()


@pytest.fixture
def thermostat(store, actuator, clock):
    return Thermostat(store, actuator, clock=clock)
