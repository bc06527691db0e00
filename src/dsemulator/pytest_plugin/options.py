import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    """
    Registers custom command-line (CLI) options for pytest.

    Adds options to configure the Datastore emulator:
      --emulator-config <path> : Path to the YAML configuration file.
      --emulator-mode <mode>   : Launch mode override ("fixed" or "env-init").
      --no-emulator-reuse      : Always launch a new emulator instead of adopting one.

    These options are used by the emulator_settings fixture.
    """
    g = parser.getgroup("dsemulator")
    g.addoption(
        "--emulator-config",
        action="store",
        default=None,
        help="Path to YAML emulator configuration file",
    )
    g.addoption(
        "--emulator-mode",
        action="store",
        default=None,
        choices=("fixed", "env-init"),
        help="Launch mode override: fixed|env-init",
    )
    g.addoption(
        "--no-emulator-reuse",
        action="store_true",
        default=False,
        help="Do not adopt an emulator advertised by the environment",
    )
