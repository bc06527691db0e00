from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum


class StartupState(str, Enum):
    POLLING = "polling"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"


class StartupConfirmation:
    """
    Polls a health probe until it succeeds or the overall timeout elapses.

    The probe runs on every tick of a fixed interval measured from the start of `run()`.
    A tick that would fall after the deadline is not taken: the loop sleeps until the
    deadline and times out instead. `run()` therefore never returns before the first
    tick and never later than `timeout` plus one interval (plus the duration of a probe).

    `abort` is checked before every probe; when it returns a message the loop stops early
    in the ABORTED state with `abort_reason` holding that message.
    """

    def __init__(
        self,
        probe: Callable[[], bool],
        *,
        timeout: float,
        interval: float,
        abort: Callable[[], str | None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._probe = probe
        self._timeout = timeout
        self._interval = interval
        self._abort = abort
        self._clock = clock
        self._sleep = sleep
        self.state = StartupState.POLLING
        self.attempts = 0
        self.abort_reason: str | None = None

    def run(self) -> StartupState:
        start = self._clock()
        deadline = start + self._timeout
        next_tick = start + self._interval

        while self.state is StartupState.POLLING:
            now = self._clock()
            if next_tick > deadline:
                self._sleep(max(0.0, deadline - now))
                self.state = StartupState.TIMED_OUT
                break

            self._sleep(max(0.0, next_tick - now))
            # Ticks missed while a slow probe was running are dropped
            next_tick += self._interval
            after = self._clock()
            if next_tick <= after:
                next_tick = after + self._interval

            if self._abort is not None:
                reason = self._abort()
                if reason:
                    self.abort_reason = reason
                    self.state = StartupState.ABORTED
                    break

            self.attempts += 1
            if self._probe():
                self.state = StartupState.CONFIRMED

        return self.state
