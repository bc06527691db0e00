from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import IO, Any


def _text(data: bytes | str | None) -> str:
    if isinstance(data, bytes | bytearray):
        return data.decode(errors="replace")
    return data or ""


@dataclass(frozen=True, slots=True)
class Completed:
    """Finished command with its output decoded to text."""

    returncode: int
    stdout: str
    stderr: str

    @classmethod
    def from_process(cls, proc: subprocess.CompletedProcess[Any]) -> Completed:
        return cls(proc.returncode, _text(proc.stdout), _text(proc.stderr))


def run_cmd(
    args: Sequence[str],
    *,
    check: bool = True,
    spawn: bool = False,
    timeout: float | None = None,
    stdout: IO[Any] | int | None = None,
    stderr: IO[Any] | int | None = None,
) -> Completed | subprocess.Popen[Any]:
    """
    Run a command to completion, or start it in the background with `spawn=True`.

    A spawned process is returned as a Popen with its output sent to `stdout`/`stderr`.
    Otherwise output is captured and `timeout` bounds the wait.

    Raises:
        subprocess.CalledProcessError: If `check` is set and the command exits non-zero.
        subprocess.TimeoutExpired: If the command outlives `timeout`.
        FileNotFoundError: If the executable does not exist.
    """
    cmd = list(args)
    if spawn:
        return subprocess.Popen(cmd, stdout=stdout, stderr=stderr)

    proc = subprocess.run(cmd, capture_output=True, timeout=timeout, check=False)
    if check and proc.returncode != 0:
        raise subprocess.CalledProcessError(proc.returncode, cmd, proc.stdout, proc.stderr)
    return Completed.from_process(proc)
