from __future__ import annotations

import subprocess
import sys
import threading
import time
from collections.abc import Callable, Generator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, cast

import pytest

from dsemulator.utils.net import get_free_port


class _FakeEmulatorHTTPServer(ThreadingHTTPServer):
    """ThreadingHTTPServer carrying the FakeEmulator that owns it."""

    daemon_threads = True

    def __init__(self, address: tuple[str, int], fake: FakeEmulator) -> None:
        super().__init__(address, _ControlHandler)
        self.fake = fake


class _ControlHandler(BaseHTTPRequestHandler):
    """Serves the emulator control endpoints: GET /, POST /reset and POST /shutdown."""

    def log_message(self, fmt: str, *args: Any) -> None:  # noqa: A003
        pass

    @property
    def fake(self) -> FakeEmulator:
        return cast(_FakeEmulatorHTTPServer, self.server).fake

    def do_GET(self) -> None:  # noqa: N802
        fake = self.fake
        fake.record("GET", self.path)
        if fake.delay:
            time.sleep(fake.delay)
        if self.path == "/":
            self._send_text(fake.health_status, "Ok")
        else:
            self._send_text(404, "Not Found")

    def do_POST(self) -> None:  # noqa: N802
        fake = self.fake
        fake.record("POST", self.path)
        if self.path == "/reset":
            if fake.reset_status == 200:
                fake.entities.clear()
            self._send_text(fake.reset_status, "Resetting...")
        elif self.path == "/shutdown":
            self._send_text(fake.shutdown_status, "Shutting down...")
            if fake.shutdown_status == 200:
                threading.Thread(target=fake.stop, daemon=True).start()
        else:
            self._send_text(404, "Not Found")

    def _send_text(self, code: int, text: str) -> None:
        data = text.encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)


class FakeEmulator:
    """In-process stand-in for the emulator's HTTP control endpoints."""

    def __init__(self, host: str = "127.0.0.1", port: int | None = None) -> None:
        self.host = host
        self.port = port or get_free_port()
        self.requests: list[tuple[str, str]] = []
        self.entities: dict[str, object] = {}
        self.health_status = 200
        self.reset_status = 200
        self.shutdown_status = 200
        self.delay = 0.0
        self._lock = threading.Lock()
        self._server: _FakeEmulatorHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def running(self) -> bool:
        return self._server is not None

    def record(self, method: str, path: str) -> None:
        with self._lock:
            self.requests.append((method, path))

    def called(self, method: str, path: str) -> bool:
        with self._lock:
            return (method, path) in self.requests

    def start(self) -> None:
        if self._server is not None:
            return
        self._server = _FakeEmulatorHTTPServer((self.host, self.port), self)
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="FakeEmulator", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        with self._lock:
            server, self._server = self._server, None
        if server is None:
            return
        server.shutdown()
        server.server_close()


@pytest.fixture()
def fake_emulator() -> Generator[FakeEmulator, None, None]:
    """A running fake emulator on 127.0.0.1:<free port>, stopped after the test."""
    fake = FakeEmulator()
    fake.start()
    try:
        yield fake
    finally:
        fake.stop()


@pytest.fixture()
def spawn_process() -> Generator[Callable[..., subprocess.Popen[Any]], None, None]:
    """
    Factory for real child processes standing in for gcloud; survivors are killed afterwards.
    """
    procs: list[subprocess.Popen[Any]] = []

    def _spawn(code: str = "import time; time.sleep(60)") -> subprocess.Popen[Any]:
        p = subprocess.Popen([sys.executable, "-c", code])
        procs.append(p)
        return p

    yield _spawn
    for p in procs:
        if p.poll() is None:
            p.kill()
            p.wait()
