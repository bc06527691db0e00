from __future__ import annotations

import os
import shlex
import sys
from typing import Any

import pytest
import typer

from ..config.loader import load_settings
from ..emulator.connection import EmulatorConnection
from ..emulator.control import ControlClient
from ..emulator.errors import EmulatorError
from ..emulator.supervisor import Emulator
from ..launch_mode import LaunchMode
from ..utils.logging import setup_logging

# Create a CLI application using Typer
app = typer.Typer(add_completion=False, help="Manage a Datastore emulator for integration tests.")


@app.callback()
def main() -> None:
    # stdout is reserved for command output such as `export` lines
    setup_logging(stream=sys.stderr)


def _advertised() -> EmulatorConnection:
    conn = EmulatorConnection.from_env(os.environ)
    if conn is None:
        typer.echo(
            "No emulator advertised: DATASTORE_EMULATOR_HOST/DATASTORE_PROJECT_ID unset",
            err=True,
        )
        raise typer.Exit(code=1)
    return conn


def _control(conn: EmulatorConnection, config: str | None) -> ControlClient:
    settings = load_settings(config)
    return ControlClient(conn.base_url, timeout=settings.request_timeout)


@app.command()
def start(
    config: str = typer.Option(None, help="Path to the YAML configuration file"),
    mode: LaunchMode = typer.Option(None, help="fixed|env-init"),
    host_port: str = typer.Option(None, help="Address for the emulator in fixed mode"),
    project: str = typer.Option(None, help="Project id in fixed mode"),
) -> None:
    """
    Start (or reuse) an emulator and leave it running.

    Prints shell `export` lines; evaluate them so later test runs reuse the instance:

        eval "$(dsemulator start)"
    """
    settings = load_settings(config)
    if mode:
        settings.launch_mode = mode
    if host_port:
        settings.host_port = host_port
    if project:
        settings.project = project

    emulator = Emulator(settings)
    try:
        conn = emulator.start()
    except EmulatorError as e:
        typer.echo(f"Failed to start the Datastore emulator: {e}", err=True)
        raise typer.Exit(code=1) from e

    for key, value in conn.to_env().items():
        typer.echo(f"export {key}={shlex.quote(value)}")


@app.command()
def status(config: str = typer.Option(None, help="Path to the YAML configuration file")) -> None:
    """Check whether the advertised emulator answers health checks."""
    conn = _advertised()
    if not _control(conn, config).is_healthy():
        typer.echo(f"Emulator at {conn.host} is not reachable", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Emulator at {conn.host} is healthy (project {conn.project_id})")


@app.command()
def reset(config: str = typer.Option(None, help="Path to the YAML configuration file")) -> None:
    """Clear all data of the advertised emulator."""
    conn = _advertised()
    try:
        _control(conn, config).reset()
    except EmulatorError as e:
        typer.echo(f"Reset failed: {e}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo(f"Emulator at {conn.host} reset")


@app.command()
def stop(config: str = typer.Option(None, help="Path to the YAML configuration file")) -> None:
    """Shut down the advertised emulator, whoever started it."""
    conn = _advertised()
    try:
        _control(conn, config).shutdown()
    except EmulatorError as e:
        typer.echo(f"Shutdown failed: {e}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo(f"Emulator at {conn.host} stopped")


@app.command()
def run(
    config: str = typer.Option(None, help="Path to the YAML configuration file"),
    mode: str = typer.Option(None, help="fixed|env-init"),
    tests_path: str = typer.Option("tests", help="Path to the tests to run"),
    extra: str = typer.Option("", help="Additional arguments for pytest (space-separated)"),
) -> Any:
    """
    Run pytest with the emulator options passed through.

    Example usage:
        dsemulator run --config configs/emulator.yaml --mode env-init --extra "-m integration"
    """
    args = [tests_path]
    if config:
        args += ["--emulator-config", config]
    if mode:
        args += ["--emulator-mode", mode]
    if extra:
        args += extra.split()

    # Exit with pytest's return code
    raise SystemExit(pytest.main(args))


if __name__ == "__main__":
    app()
