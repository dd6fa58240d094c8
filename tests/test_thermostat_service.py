import asyncio
import threading

from core.pistat.models import Command, Mode
from core.pistat.thermostat_service import ThermostatService


class StubAggregator:
    def __init__(self, readings, gate: threading.Event | None = None):
        self.readings = list(readings)
        self.gate = gate
        self.calls = 0

    def refresh(self):
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(timeout=5)
        return self.readings.pop(0) if self.readings else None


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def test_tick_feeds_reading_to_thermostat(thermostat, actuator):
    thermostat.store.merge(mode=Mode.HEAT, target_temperature=22.0)
    service = ThermostatService(thermostat, StubAggregator([20.0]))

    decision = asyncio.run(service.tick())

    assert decision.command == Command.ACTIVATE
    assert thermostat.get_current_temperature() == 20.0
    assert actuator.writes == [True]
    assert service.ticks == 1


def test_tick_without_reading_keeps_previous_temperature(thermostat):
    thermostat.update_current_temperature(19.0)
    service = ThermostatService(thermostat, StubAggregator([None]))

    assert asyncio.run(service.tick()) is None
    assert thermostat.get_current_temperature() == 19.0


def test_overlapping_tick_is_skipped(thermostat):
    gate = threading.Event()
    aggregator = StubAggregator([21.0], gate=gate)
    service = ThermostatService(thermostat, aggregator)

    async def scenario():
        first = asyncio.create_task(service.tick())
        await _wait_for(lambda: aggregator.calls == 1)

        skipped = await service.tick()

        gate.set()
        await first
        return skipped

    assert asyncio.run(scenario()) is None
    assert service.skipped_ticks == 1
    assert service.ticks == 1
    assert aggregator.calls == 1
    assert thermostat.get_current_temperature() == 21.0


def test_start_restores_and_stop_cancels_loop(thermostat, actuator):
    thermostat.store.merge(mode=Mode.HEAT, current_temperature=18.0, target_temperature=22.0)
    aggregator = StubAggregator([18.0])
    service = ThermostatService(thermostat, aggregator, poll_interval_seconds=3600)

    async def scenario():
        await service.start()
        assert service.running
        await _wait_for(lambda: aggregator.calls == 1)
        await service.start()  # already running, no second loop
        await service.stop()

    asyncio.run(scenario())

    assert not service.running
    assert actuator.writes == [True]
    assert aggregator.calls == 1


def test_loop_survives_failing_tick(thermostat, caplog):
    class BrokenAggregator:
        calls = 0

        def refresh(self):
            BrokenAggregator.calls += 1
            raise RuntimeError("bus error")

    service = ThermostatService(thermostat, BrokenAggregator(), poll_interval_seconds=0.01)

    async def scenario():
        await service.start()
        await _wait_for(lambda: BrokenAggregator.calls >= 2)
        await service.stop()

    asyncio.run(scenario())

    assert "Error in thermostat refresh loop" in caplog.text
