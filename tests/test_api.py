import inspect

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import api


@pytest.fixture
def client(monkeypatch, thermostat):
    monkeypatch.setattr(api, "thermostat", thermostat)
    monkeypatch.setattr(api, "service", None)
    app = FastAPI()
    app.include_router(api.router)
    return TestClient(app)


@pytest.fixture
def bare_client(monkeypatch):
    monkeypatch.setattr(api, "thermostat", None)
    monkeypatch.setattr(api, "service", None)
    app = FastAPI()
    app.include_router(api.router)
    return TestClient(app)


def test_health(client):
    body = client.get("/api/health").json()

    assert body["status"] == "healthy"
    assert body["thermostat_ready"] is True
    assert body["service_running"] is False


def test_uninitialized_thermostat_returns_503(bare_client):
    assert bare_client.get("/api/health").json()["thermostat_ready"] is False
    assert bare_client.get("/api/thermostat").status_code == 503
    assert bare_client.put("/api/thermostat/mode", json={"mode": 1}).status_code == 503


def test_get_thermostat(client):
    body = client.get("/api/thermostat").json()

    assert body["mode"] == "Off"
    assert body["current_temperature"] == 25.0
    assert body["current_temperature_f"] == 77.0
    assert body["current_actuator_state"] == "Off"
    assert body["display_unit"] == "Celsius"
    assert body["status"]["guard_remaining_seconds"] == 0.0


def test_get_props(client):
    body = client.get("/api/thermostat/props").json()

    assert body["target_temperature"] == {"min_value": 9.0, "max_value": 32.0, "min_step": 0.5}
    assert body["mode"]["valid_values"] == [0, 1, 2]


def test_set_target_temperature_snaps(client, thermostat):
    response = client.put("/api/thermostat/target_temperature", json={"temperature": 21.3})

    assert response.status_code == 200
    assert thermostat.store.snapshot().target_temperature == 21.5


def test_set_target_out_of_range(client, thermostat):
    response = client.put("/api/thermostat/target_temperature", json={"temperature": 40})

    assert response.status_code == 400
    assert thermostat.store.snapshot().target_temperature == 25.0


def test_set_mode_drives_relay(client, thermostat, actuator):
    thermostat.update_current_temperature(18.0)
    client.put("/api/thermostat/target_temperature", json={"temperature": 22})

    body = client.put("/api/thermostat/mode", json={"mode": "Heat"}).json()

    assert body["mode"] == "Heat"
    assert body["current_actuator_state"] == "Heating"
    assert actuator.writes == [True]


def test_set_invalid_mode_falls_back_to_off(client):
    body = client.put("/api/thermostat/mode", json={"mode": 9}).json()

    assert body["mode"] == "Off"


def test_set_display_unit(client):
    body = client.put("/api/thermostat/display_unit", json={"unit": "1"}).json()

    assert body["display_unit"] == "Fahrenheit"


def test_set_invalid_display_unit(client):
    response = client.put("/api/thermostat/display_unit", json={"unit": "kelvin"})

    assert response.status_code == 400


def test_set_thresholds(client, thermostat):
    assert client.put("/api/thermostat/heating_threshold_temperature", json={"temperature": 19}).status_code == 200
    assert client.put("/api/thermostat/cooling_threshold_temperature", json={"temperature": 26}).status_code == 200

    state = thermostat.store.snapshot()
    assert state.heating_threshold_temperature == 19.0
    assert state.cooling_threshold_temperature == 26.0


@pytest.mark.parametrize(
    "endpoint",
    [
        api.get_thermostat,
        api.get_props,
        api.set_target_temperature,
        api.set_mode,
        api.set_display_unit,
        api.set_heating_threshold_temperature,
        api.set_cooling_threshold_temperature,
    ],
)
def test_thermostat_routes_run_in_threadpool(endpoint):
    assert not inspect.iscoroutinefunction(endpoint)
