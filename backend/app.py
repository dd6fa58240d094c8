"""
Pistat Backend Application

FastAPI application hosting the thermostat service and its HTTP surface.
"""

import os
import sys
from contextlib import asynccontextmanager

import log_config  # noqa: F401
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import api
from api import router as api_router

from core.pistat.aggregator import TemperatureAggregator
from core.pistat.exceptions import ConfigurationError
from core.pistat.hardware import DS18B20Sensor, GPIOActuator
from core.pistat.remote_client import RemoteTemperatureClient
from core.pistat.settings import ThermostatSettings, load_settings
from core.pistat.store import MemoryStore, RedisStore, StateStore
from core.pistat.thermostat import Thermostat
from core.pistat.thermostat_service import ThermostatService


def build_runtime(settings: ThermostatSettings) -> tuple[Thermostat, ThermostatService]:
    """Wire store, hardware, remote sources and the service from settings.

    Raises:
        ConfigurationError: If the relay cannot be claimed
    """
    if settings.store.backend == "redis":
        kv = RedisStore(settings.store.url)
        logger.info(f"Persisting state to {settings.store.url}")
    else:
        kv = MemoryStore()
        logger.warning("Using in-memory state store, state will not survive restarts")
    store = StateStore(kv, settings.store.state_key, settings.store.token_key)

    actuator = GPIOActuator(settings.hardware.pin, settings.hardware.active_low)
    sensor = DS18B20Sensor(settings.hardware.sensor_id) if settings.hardware.local_sensor else None

    client = None
    if settings.remote.enabled:
        client = RemoteTemperatureClient(settings.remote.base_url, settings.remote.timeout)
        logger.info(
            f"Remote temperature: {settings.remote.policy} of {settings.remote.identities} "
            f"via {settings.remote.base_url}"
        )

    aggregator = TemperatureAggregator(
        store,
        client,
        identities=settings.remote.identities,
        policy=settings.remote.policy,
        local_sensor=sensor,
    )
    thermostat = Thermostat(store, actuator, settings.thresholds, settings.name)
    service = ThermostatService(thermostat, aggregator, settings.poll_interval_seconds)
    return thermostat, service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for startup/shutdown."""
    # Startup
    logger.info("Pistat starting")

    service = None
    try:
        settings = load_settings()
        thermostat, service = build_runtime(settings)
        await service.start()

        # Make thermostat available to API
        api.thermostat = thermostat
        api.service = service
    except ConfigurationError as e:
        logger.error(f"Thermostat disabled: {e}")

    yield

    # Shutdown
    logger.info("Pistat shutting down")
    if service:
        await service.stop()
        actuator = service.thermostat.actuator
        if isinstance(actuator, GPIOActuator):
            actuator.cleanup()


# Create FastAPI application
app = FastAPI(
    title="Pistat API",
    description="Raspberry Pi relay thermostat with compressor protection",
    version="0.1.0",
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions gracefully."""
    logger.opt(exception=exc).error(f"Unhandled exception on {request.url.path}: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "message": "Internal server error",
        },
    )


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


# For development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
