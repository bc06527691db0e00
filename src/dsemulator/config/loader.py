from __future__ import annotations

import os
from typing import Any

import yaml

from .models import EmulatorSettings

# Default path to the configuration file.
# Can be overridden with the "DSEMULATOR_CONFIG" environment variable.
DEFAULT_CONFIG: str = os.getenv("DSEMULATOR_CONFIG", "configs/emulator.yaml")


def load_settings(path: str | None = None) -> EmulatorSettings:
    """
    Load emulator settings from a YAML configuration file.

    Args:
        path (str | None): Optional path to the configuration file.
                           If not provided, DEFAULT_CONFIG is used.

    Returns:
        EmulatorSettings: Settings initialized with the loaded configuration.
                          If the file does not exist or is empty, defaults are used.
    """
    file_path: str = path or DEFAULT_CONFIG
    data: dict[str, Any] = {}

    if os.path.exists(file_path):
        with open(file_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
            if isinstance(loaded, dict):
                data = loaded

    return EmulatorSettings(**data)
