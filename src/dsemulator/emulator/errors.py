from __future__ import annotations


class EmulatorError(Exception):
    """Base class for all emulator supervisor errors."""


class LaunchError(EmulatorError):
    """The emulator process could not be started or its coordinates could not be read."""


class RequestError(EmulatorError):
    """A control request (health check, reset, shutdown) did not return 200."""

    def __init__(
        self, message: str, *, path: str, method: str, status: int | None = None
    ) -> None:
        super().__init__(message)
        self.path = path
        self.method = method
        self.status = status


class StartupTimeoutError(EmulatorError, TimeoutError):
    """The emulator did not become healthy before the startup deadline."""


class CloseError(EmulatorError):
    """The shutdown request to an owned emulator failed."""
