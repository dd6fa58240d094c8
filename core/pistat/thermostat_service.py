"""
Thermostat Service

Background service that refreshes the current temperature on a slow timer and
feeds each new reading to the thermostat. Sensor and network I/O run in a
worker thread so the event loop is never blocked; ticks never overlap.
"""

import asyncio
import logging
from typing import Optional

from .aggregator import TemperatureAggregator
from .engine import Decision
from .thermostat import Thermostat

logger = logging.getLogger(__name__)


class ThermostatService:
    """
    Periodic temperature refresh and control evaluation.

    Each tick resolves a reading through the aggregator and hands it to the
    thermostat as a new-reading event. A missing reading keeps the previous
    temperature.
    """

    def __init__(
        self,
        thermostat: Thermostat,
        aggregator: TemperatureAggregator,
        poll_interval_seconds: float = 60
    ):
        self.thermostat = thermostat
        self.aggregator = aggregator
        self.poll_interval_seconds = poll_interval_seconds

        self._task: asyncio.Task | None = None
        self._running = False
        self._tick_lock = asyncio.Lock()
        self.ticks = 0
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Restore persisted state, then start the refresh loop."""
        if self._running:
            logger.warning("Thermostat service already running")
            return

        self._running = True
        await asyncio.to_thread(self.thermostat.restore)
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Thermostat service started for '{self.thermostat.name}'")
        logger.info(f"   Poll interval: {self.poll_interval_seconds} seconds")

    async def stop(self):
        """Stop the refresh loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("Thermostat service stopped")

    async def _run_loop(self):
        """Main loop - one tick every interval."""
        logger.info("Thermostat refresh loop starting...")

        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in thermostat refresh loop: {e}", exc_info=True)

            # Sleep until next interval
            await asyncio.sleep(self.poll_interval_seconds)

    async def tick(self) -> Optional[Decision]:
        """Refresh the temperature and evaluate once.

        Skipped (returns None) if the previous tick is still waiting on I/O.
        """
        if self._tick_lock.locked():
            self.skipped_ticks += 1
            logger.debug("Previous tick still in progress, skipping")
            return None

        async with self._tick_lock:
            self.ticks += 1
            reading = await asyncio.to_thread(self.aggregator.refresh)
            decision = await asyncio.to_thread(self.thermostat.update_current_temperature, reading)
            logger.debug(f"Thermostat state {self.thermostat.status()}")
            return decision
