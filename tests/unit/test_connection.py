from __future__ import annotations

import os

import pytest

from dsemulator.emulator.connection import (
    EmulatorConnection,
    EnvironmentPublisher,
    strip_scheme,
)


def test_strip_scheme() -> None:
    assert strip_scheme("http://localhost:8081/") == "localhost:8081"
    assert strip_scheme(" localhost:8081 ") == "localhost:8081"


def test_connection_normalizes_host() -> None:
    conn = EmulatorConnection(host="http://localhost:8081", project_id="p")
    assert conn.host == "localhost:8081"
    assert conn.base_url == "http://localhost:8081"
    assert conn.client_kwargs() == {"project": "p"}


def test_from_env_prefers_emulator_host() -> None:
    env = {
        "DATASTORE_EMULATOR_HOST": "localhost:9000",
        "DATASTORE_HOST": "http://localhost:8081",
        "DATASTORE_PROJECT_ID": "proj",
    }
    conn = EmulatorConnection.from_env(env)
    assert conn == EmulatorConnection(host="localhost:9000", project_id="proj")


def test_from_env_falls_back_to_datastore_host() -> None:
    env = {"DATASTORE_HOST": "http://localhost:8081", "DATASTORE_PROJECT_ID": "proj"}
    conn = EmulatorConnection.from_env(env)
    assert conn is not None
    assert conn.host == "localhost:8081"


@pytest.mark.parametrize(
    "env",
    [
        {},
        {"DATASTORE_EMULATOR_HOST": "localhost:8081"},
        {"DATASTORE_PROJECT_ID": "proj"},
        {"DATASTORE_EMULATOR_HOST": " ", "DATASTORE_PROJECT_ID": "proj"},
        {"DATASTORE_EMULATOR_HOST": "localhost:8081", "DATASTORE_PROJECT_ID": ""},
    ],
)
def test_from_env_requires_host_and_project(env: dict[str, str]) -> None:
    assert EmulatorConnection.from_env(env) is None


def test_to_env_round_trips_through_from_env() -> None:
    conn = EmulatorConnection(host="localhost:8081", project_id="proj")
    env = conn.to_env()
    assert env == {
        "DATASTORE_EMULATOR_HOST": "localhost:8081",
        "DATASTORE_HOST": "http://localhost:8081",
        "DATASTORE_PROJECT_ID": "proj",
        "DATASTORE_DATASET": "proj",
    }
    assert EmulatorConnection.from_env(env) == conn


def test_publisher_publish_and_clear() -> None:
    environ = {"UNRELATED": "1"}
    publisher = EnvironmentPublisher(environ)

    publisher.publish(EmulatorConnection(host="localhost:8081", project_id="proj"))
    assert environ["DATASTORE_EMULATOR_HOST"] == "localhost:8081"
    assert "DATASTORE_PROJECT_ID" in publisher.published

    publisher.clear()
    assert environ == {"UNRELATED": "1"}
    # Clearing twice is harmless
    publisher.clear()
    assert environ == {"UNRELATED": "1"}


def test_publisher_clear_without_publish_removes_standard_keys() -> None:
    environ = {"DATASTORE_EMULATOR_HOST": "x:1", "DATASTORE_PROJECT_ID": "p", "OTHER": "y"}
    EnvironmentPublisher(environ).clear()
    assert environ == {"OTHER": "y"}


def test_publisher_writes_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATASTORE_EMULATOR_HOST", raising=False)
    monkeypatch.delenv("DATASTORE_PROJECT_ID", raising=False)
    publisher = EnvironmentPublisher(os.environ)

    publisher.publish(EmulatorConnection(host="localhost:8081", project_id="proj"))
    try:
        assert os.environ["DATASTORE_EMULATOR_HOST"] == "localhost:8081"
        assert os.environ["DATASTORE_PROJECT_ID"] == "proj"
    finally:
        publisher.clear()
    assert "DATASTORE_EMULATOR_HOST" not in os.environ
