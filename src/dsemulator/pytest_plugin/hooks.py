from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Any

import allure

from ..utils.logging import current_test_log_path

LOG_TAIL_LINES = 200


def _tail(path: Path, lines: int = LOG_TAIL_LINES) -> str:
    if not path.is_file():
        return ""
    try:
        with path.open(encoding="utf-8", errors="ignore") as f:
            return "".join(deque(f, maxlen=lines))
    except OSError:
        return ""


def pytest_runtest_makereport(item: Any, call: Any) -> None:
    """Attach the end of the test's log to the Allure report when the test body fails."""
    if getattr(call, "when", None) != "call" or getattr(call, "excinfo", None) is None:
        return

    content = _tail(current_test_log_path(getattr(item, "name", None)))
    if content:
        allure.attach(
            content,
            name="Emulator test log",
            attachment_type=allure.attachment_type.TEXT,
        )
