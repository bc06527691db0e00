from __future__ import annotations

import json
import logging
import os
import re
import threading
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, TextIO

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars

LOG_DIR = Path("artifacts/logs")
SESSION_LOG = LOG_DIR / "framework.log"

_UNSAFE_CHARS = re.compile(r"[\\/:\s]")
_configured = False


def current_test_log_path(test_name: str | None = None) -> Path:
    """
    Log file of the given test, or the session-wide log when no test name is known.
    """
    if not test_name:
        return SESSION_LOG
    return LOG_DIR / f"test_{_UNSAFE_CHARS.sub('_', str(test_name))}.log"


class _FileSink:
    """
    structlog processor duplicating every record into the session log and,
    while a test is bound, into that test's own log file.

    Write errors are ignored; a full disk must not fail the test run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        line = json.dumps(event_dict, ensure_ascii=False, default=str) + "\n"
        targets = [SESSION_LOG]
        test_name = event_dict.get("test")
        if isinstance(test_name, str) and test_name:
            targets.append(current_test_log_path(test_name))

        with self._lock:
            for target in targets:
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with target.open("a", encoding="utf-8") as f:
                        f.write(line)
                except OSError:
                    continue
        return event_dict


def _without_empty_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    # bind_context binds None for unknown fields
    return {k: v for k, v in event_dict.items() if v is not None}


def bind_context(*, connection: Any | None = None, test_name: str | None = None) -> None:
    """Bind the current test and the emulator coordinates into every following log record."""
    bind_contextvars(
        test=test_name,
        emulator_host=getattr(connection, "host", None),
        project_id=getattr(connection, "project_id", None),
    )


def setup_logging(stream: TextIO | None = None) -> None:
    """
    Configure structlog once per process: JSON lines on stdout (or `stream`),
    duplicated into artifacts/logs by test.

    The level comes from DSEMULATOR_LOG_LEVEL (DEBUG|INFO|WARNING|ERROR, default INFO).
    """
    global _configured
    if _configured:
        return

    level = logging.getLevelName(os.getenv("DSEMULATOR_LOG_LEVEL", "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.CallsiteParameterAdder(
                [structlog.processors.CallsiteParameter.MODULE]
            ),
            _without_empty_context,
            _FileSink(),
            structlog.processors.JSONRenderer(default=str),
        ],
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.getLogger().setLevel(level)
    _configured = True


def get_logger(name: str | None = None) -> Any:
    if not _configured:
        setup_logging()
    return structlog.get_logger(name or __name__)


__all__ = [
    "setup_logging",
    "bind_context",
    "current_test_log_path",
    "get_logger",
    "clear_contextvars",
]
