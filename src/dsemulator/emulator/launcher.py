from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, cast

from ..config.models import EmulatorSettings
from ..launch_mode import LaunchMode
from ..utils.cli import run_cmd
from ..utils.logging import get_logger
from ..utils.net import is_listening, owner_info, split_host_port
from .connection import EMULATOR_HOST_ENV, PROJECT_ENV, EmulatorConnection
from .errors import LaunchError

ENV_INIT_TIMEOUT_SEC = 30


def parse_env_init(text: str) -> dict[str, str]:
    """
    Parse the output of `gcloud ... env-init`.

    Each non-blank line has the shape `export KEY=VALUE` (or `set KEY=VALUE` on Windows):
    the assignment is the second space-delimited token and is split on the first "=".

    Raises:
        LaunchError: If a line is not an assignment or a required key is missing.
    """
    env: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split(" ")
        if len(parts) < 2 or "=" not in parts[1]:
            raise LaunchError(f"unexpected env-init output line: {line!r}")
        key, _, value = parts[1].partition("=")
        if not key:
            raise LaunchError(f"unexpected env-init output line: {line!r}")
        env[key] = value

    missing = [k for k in (EMULATOR_HOST_ENV, PROJECT_ENV) if not env.get(k)]
    if missing:
        raise LaunchError(f"env-init output is missing {', '.join(missing)}")
    return env


@dataclass(slots=True)
class LaunchResult:
    """A spawned emulator process and the coordinates it will serve."""

    process: subprocess.Popen[Any]
    connection: EmulatorConnection


class GcloudLauncher:
    """
    Starts the Datastore emulator through the gcloud command-line interface.

    The emulator always runs with in-memory storage and full consistency.
    """

    def __init__(self, settings: EmulatorSettings) -> None:
        self.settings = settings
        self._log = get_logger(__name__)
        self._gcloud: str | None = None

    @property
    def gcloud_binary(self) -> str:
        if self._gcloud is None:
            found = shutil.which(self.settings.gcloud_bin)
            if found is None:
                raise LaunchError(f"gcloud binary not found: {self.settings.gcloud_bin}")
            self._gcloud = found
        return self._gcloud

    def command(self, *extra: str) -> list[str]:
        return [self.gcloud_binary, *self.settings.gcloud_args, *extra]

    def start_args(self) -> list[str]:
        s = self.settings
        args = [
            "start",
            f"--consistency={s.consistency}",  # 1.0 prevents random test failures
            "--no-store-on-disk",  # test in memory
        ]
        if s.launch_mode == LaunchMode.FIXED:
            args += [f"--host-port={s.host_port}", f"--project={s.project}"]
        if s.data_dir:
            args.append(f"--data-dir={s.data_dir}")
        return args

    def env_init_args(self) -> list[str]:
        args = ["env-init"]
        if self.settings.data_dir:
            args.append(f"--data-dir={self.settings.data_dir}")
        return args

    def spawn(self) -> subprocess.Popen[Any]:
        """
        Spawn the emulator without waiting for it to become ready.

        Raises:
            LaunchError: If gcloud cannot be found or the process fails to start.
        """
        cmd = self.command(*self.start_args())
        log_file = self.settings.log_file
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        self._log.info(
            "Starting Datastore emulator",
            action="emulator_start",
            cmd=" ".join(cmd),
            log=log_file,
        )
        try:
            with open(log_file, "ab") as out:
                # The child keeps its own copy of the descriptor
                proc = cast(
                    subprocess.Popen[Any],
                    run_cmd(cmd, spawn=True, stdout=out, stderr=subprocess.STDOUT),
                )
        except OSError as e:
            raise LaunchError(f"failed to start the Datastore emulator: {e}") from e

        self._log.info("Emulator process started", action="emulator_started", pid=proc.pid)
        return proc

    def env_init(self) -> EmulatorConnection:
        """
        Read the coordinates of the launched emulator through `env-init`.

        Raises:
            LaunchError: If the command fails or its output cannot be parsed.
        """
        cmd = self.command(*self.env_init_args())
        try:
            out = run_cmd(cmd, check=True, timeout=ENV_INIT_TIMEOUT_SEC)
        except subprocess.CalledProcessError as e:
            raise LaunchError(f"env-init exited with code {e.returncode}") from e
        except (OSError, subprocess.TimeoutExpired) as e:
            raise LaunchError(f"env-init failed: {e}") from e

        env = parse_env_init(str(getattr(out, "stdout", "")))
        return EmulatorConnection(host=env[EMULATOR_HOST_ENV], project_id=env[PROJECT_ENV])

    def warn_if_port_taken(self) -> None:
        """Log the owner of the fixed address if something already listens on it."""
        if self.settings.launch_mode != LaunchMode.FIXED:
            return
        try:
            host, port = split_host_port(self.settings.host_port)
        except ValueError:
            return
        if is_listening(host, port):
            self._log.warning(
                "Emulator address is already in use by an unhealthy or unknown process",
                host_port=self.settings.host_port,
                owner=owner_info(port),
            )

    def launch(self) -> LaunchResult:
        """
        Spawn the emulator and determine the coordinates it serves.

        In env-init mode the spawned process is killed if the coordinates cannot be read.
        """
        self.warn_if_port_taken()
        proc = self.spawn()
        if self.settings.launch_mode == LaunchMode.FIXED:
            conn = EmulatorConnection(host=self.settings.host_port, project_id=self.settings.project)
            return LaunchResult(process=proc, connection=conn)

        try:
            conn = self.env_init()
        except LaunchError:
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            raise
        return LaunchResult(process=proc, connection=conn)
