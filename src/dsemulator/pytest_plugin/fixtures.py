from __future__ import annotations

from collections.abc import Generator

import allure
import pytest

from ..config.loader import load_settings
from ..config.models import EmulatorSettings
from ..emulator.connection import EmulatorConnection
from ..emulator.supervisor import Emulator
from ..launch_mode import LaunchMode
from ..utils.logging import bind_context, clear_contextvars, setup_logging


@pytest.fixture(scope="session")
def emulator_settings(pytestconfig: pytest.Config) -> EmulatorSettings:
    """
    Load emulator configuration once per session.

    Supports overriding via command-line options:
      --emulator-config <path>
      --emulator-mode <fixed|env-init>
      --no-emulator-reuse
    """
    cfg_path: str | None = pytestconfig.getoption("--emulator-config")
    s = load_settings(cfg_path)

    mode: str | None = pytestconfig.getoption("--emulator-mode")
    if mode:
        s.launch_mode = LaunchMode(mode)
    if pytestconfig.getoption("--no-emulator-reuse"):
        s.reuse_existing = False
    return s


@pytest.fixture(scope="session")
def datastore_emulator(emulator_settings: EmulatorSettings) -> Generator[Emulator, None, None]:
    """
    Manage the lifecycle of a Datastore emulator at pytest session level.

    - If a healthy emulator is advertised by the environment, reuse it.
    - Otherwise launch one through gcloud and wait until it is healthy.
    - On session end, stop the emulator only if it was started by this fixture.
    """
    emulator = Emulator(emulator_settings)
    with allure.step("Start Datastore emulator"):
        emulator.start()
    try:
        yield emulator
    finally:
        with allure.step("Stop Datastore emulator"):
            emulator.close()


@pytest.fixture(scope="session")
def emulator_connection(datastore_emulator: Emulator) -> EmulatorConnection:
    """Coordinates of the session emulator, for injecting into datastore clients."""
    return datastore_emulator.connection


@pytest.fixture(scope="function")
def clean_datastore(
    datastore_emulator: Emulator, request: pytest.FixtureRequest
) -> EmulatorConnection:
    """
    Reset the emulator before the test so it starts from an empty datastore.
    """
    with allure.step("Reset Datastore emulator"):
        datastore_emulator.reset()
    bind_context(connection=datastore_emulator.connection, test_name=request.node.name)
    return datastore_emulator.connection


# ----- Logging: initialization and context -----
@pytest.fixture(scope="session", autouse=True)
def _setup_structlog() -> None:
    """One-time structured logging setup for the entire test session."""
    setup_logging()


@pytest.fixture(autouse=True)
def _bind_test_logging_context(request: pytest.FixtureRequest) -> Generator[None, None, None]:
    """
    Bind the test name to the logging context.

    Updates contextvars at the start of each test and clears them afterwards.
    """
    bind_context(test_name=request.node.name)
    try:
        yield
    finally:
        clear_contextvars()
