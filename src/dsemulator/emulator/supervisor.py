from __future__ import annotations

import os
import subprocess
from collections.abc import MutableMapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any

from ..config.models import EmulatorSettings
from ..utils.logging import get_logger
from .connection import EmulatorConnection, EnvironmentPublisher
from .control import ControlClient
from .errors import CloseError, EmulatorError, LaunchError, RequestError, StartupTimeoutError
from .launcher import GcloudLauncher
from .startup import StartupConfirmation, StartupState


@dataclass(slots=True)
class _State:
    """Auxiliary structure for storing the emulator process state."""

    connection: EmulatorConnection | None = None
    proc: subprocess.Popen[Any] | None = None
    owned: bool = False  # Whether the emulator was started by this handle
    closed: bool = False


class Emulator:
    """
    Handle on a Datastore emulator used as the backend of integration tests.

    `start()` adopts a healthy emulator already advertised by the environment
    (DATASTORE_EMULATOR_HOST / DATASTORE_PROJECT_ID) or launches a new one through
    gcloud, waits until it answers health checks and publishes its coordinates.

    Only an emulator launched by this handle (`owned`) is ever shut down by `close()`;
    an adopted instance keeps running for whoever started it.

    The environment is a single shared slot: run at most one handle per process and
    do not use it from several threads.
    """

    def __init__(
        self,
        settings: EmulatorSettings | None = None,
        *,
        environ: MutableMapping[str, str] | None = None,
        launcher: GcloudLauncher | None = None,
    ) -> None:
        self.settings = settings or EmulatorSettings()
        self._environ: MutableMapping[str, str] = os.environ if environ is None else environ
        self._launcher = launcher or GcloudLauncher(self.settings)
        self._publisher = EnvironmentPublisher(self._environ)
        self._state = _State()
        self._log = get_logger(__name__)

    def __enter__(self) -> Emulator:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ------------------------
    # Public API
    # ------------------------
    @property
    def connection(self) -> EmulatorConnection:
        if self._state.connection is None:
            raise EmulatorError("emulator has not been started")
        return self._state.connection

    @property
    def host(self) -> str:
        return self.connection.host

    @property
    def project_id(self) -> str:
        return self.connection.project_id

    @property
    def base_url(self) -> str:
        return self.connection.base_url

    @property
    def owned(self) -> bool:
        return self._state.owned

    @property
    def pid(self) -> int | None:
        p = self._state.proc
        return p.pid if p is not None else None

    def start(self) -> EmulatorConnection:
        """
        Adopt a running emulator or launch a new one and block until it is healthy.

        Raises:
            LaunchError: If gcloud is missing, fails to start or exits during startup.
            StartupTimeoutError: If the emulator is not healthy within `startup_timeout`.
        """
        if self._state.connection is not None and not self._state.closed:
            return self._state.connection

        self._state = _State()
        adopted = self.try_adopt()
        if adopted is not None:
            self._state.connection = adopted
            self._log.info(
                "Emulator detected and running — reusing it",
                action="emulator_adopted",
                host=adopted.host,
                project_id=adopted.project_id,
                started_by_us=False,
            )
            return adopted

        result = self._launcher.launch()
        self._state.proc = result.process
        self._state.owned = True
        self._state.connection = result.connection

        try:
            self._confirm_startup(result.connection)
        except EmulatorError:
            self._abandon_startup()
            raise

        self._publisher.publish(result.connection)
        self._log.info(
            "Emulator is ready for use",
            action="emulator_ready",
            host=result.connection.host,
            project_id=result.connection.project_id,
            pid=self.pid,
        )
        return result.connection

    def try_adopt(self) -> EmulatorConnection | None:
        """
        Return the emulator advertised by the environment if it answers a health check.

        Any failure means "nothing to adopt" and is never raised.
        """
        if not self.settings.reuse_existing:
            return None
        conn = EmulatorConnection.from_env(self._environ)
        if conn is None:
            return None
        if not self._client(conn).is_healthy():
            self._log.debug(
                "Advertised emulator is not healthy — ignoring it",
                action="emulator_adopt_skipped",
                host=conn.host,
            )
            return None
        return conn

    def is_healthy(self) -> bool:
        return self._client(self.connection).is_healthy()

    def reset(self) -> None:
        """
        Clear all data held by the emulator (in-memory storage only).

        Raises:
            RequestError: If the emulator does not answer 200.
        """
        self._client(self.connection).reset()
        self._log.info("Emulator data reset", action="emulator_reset", host=self.host)

    def close(self) -> None:
        """
        Shut down the emulator if this handle launched it and clear the published environment.

        A no-op for adopted emulators and for handles that are already closed.
        An owned emulator that is no longer reachable is not an error.

        Raises:
            CloseError: If the shutdown request to a healthy owned emulator fails.
        """
        if self._state.closed or self._state.connection is None:
            return
        self._state.closed = True

        if not self._state.owned:
            self._log.info(
                "Emulator was not started by this handle — leaving it running",
                action="emulator_stop_skipped",
                host=self._state.connection.host,
                started_by_us=False,
            )
            return

        self._publisher.clear()
        client = self._client(self._state.connection)
        error: RequestError | None = None
        shutdown_sent = False
        if client.is_healthy():
            self._log.info("Stopping Datastore emulator", action="emulator_stop", pid=self.pid)
            try:
                client.shutdown()
                shutdown_sent = True
            except RequestError as e:
                error = e
        else:
            self._log.info(
                "Emulator is not reachable — skipping shutdown request",
                action="emulator_stop_skipped",
                pid=self.pid,
            )

        self._reap_process(graceful=shutdown_sent)
        if error is not None:
            raise CloseError(f"emulator shutdown failed: {error}") from error

    # ------------------------
    # Helper methods
    # ------------------------
    def _client(self, conn: EmulatorConnection, timeout: float | None = None) -> ControlClient:
        return ControlClient(conn.base_url, timeout=timeout or self.settings.request_timeout)

    def _process_exit_reason(self) -> str | None:
        p = self._state.proc
        if p is None:
            return None
        code = p.poll()
        if code is None:
            return None
        return f"emulator process exited with code {code} (see {self.settings.log_file})"

    def _confirm_startup(self, conn: EmulatorConnection) -> None:
        s = self.settings
        # A probe never outlasts one interval so the deadline is overrun by one tick at most
        probe = self._client(conn, timeout=min(s.request_timeout, s.poll_interval))
        confirmation = StartupConfirmation(
            probe.is_healthy,
            timeout=s.startup_timeout,
            interval=s.poll_interval,
            abort=self._process_exit_reason,
        )
        self._log.info(
            "Waiting for emulator readiness",
            action="emulator_wait_ready",
            host=conn.host,
            timeout=s.startup_timeout,
        )
        state = confirmation.run()
        if state is StartupState.CONFIRMED:
            return
        if state is StartupState.ABORTED:
            raise LaunchError(confirmation.abort_reason or "emulator process exited")

        self._log.error(
            "Emulator did not become ready within the timeout",
            action="emulator_ready_timeout",
            host=conn.host,
            timeout=s.startup_timeout,
            attempts=confirmation.attempts,
        )
        raise StartupTimeoutError(
            f"Datastore emulator at {conn.host} not healthy within {s.startup_timeout} seconds"
        )

    def _abandon_startup(self) -> None:
        """Best-effort teardown of a launch that never became healthy."""
        try:
            self.close()
        except EmulatorError as e:
            self._log.warning("Cleanup after failed startup failed", error=str(e))

    def _reap_process(self, *, graceful: bool) -> None:
        """
        Make sure the owned child process has exited.

        After a successful shutdown request the child gets `stop_timeout` seconds to exit
        on its own; otherwise (or if it is still alive) it is terminated, then killed.
        """
        p = self._state.proc
        self._state.proc = None
        if p is None:
            return
        if graceful:
            try:
                p.wait(timeout=self.settings.stop_timeout)
                return
            except subprocess.TimeoutExpired:
                pass
        if p.poll() is not None:
            return

        self._log.info("Terminating emulator process", pid=p.pid)
        p.terminate()
        try:
            p.wait(timeout=self.settings.stop_timeout)
            return
        except subprocess.TimeoutExpired:
            pass

        self._log.warning("Emulator did not exit in time — forcing process kill", pid=p.pid)
        p.kill()
        p.wait()


def start_emulator(
    settings: EmulatorSettings | None = None,
    *,
    environ: MutableMapping[str, str] | None = None,
) -> Emulator:
    """Create an Emulator handle and start it."""
    emulator = Emulator(settings, environ=environ)
    emulator.start()
    return emulator
