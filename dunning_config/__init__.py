"""
dunning_config -- single public entrypoint for reminder policy.

Responsibility:
    Provides the way to obtain the reminder policy at runtime through
    ``get_active_config()``.  Services receive a ``ReminderConfig``; they
    never read policy files or environment variables themselves.

Resolution order:
    1. The ``path`` argument.
    2. The ``DUNNING_CONFIG_PATH`` environment variable.
    3. The packaged ``defaults.yaml``.

Failure modes:
    - ``FileNotFoundError`` -- the resolved file does not exist.
    - ``ValueError`` -- the policy is structurally invalid.

Audit relevance:
    Every call emits a ``dunning_config_loaded`` log entry with the config
    id, version, checksum and source path.
"""

from __future__ import annotations

import os
from pathlib import Path

from dunning_config.loader import LoadedReminderConfig, load_reminder_config
from dunning_kernel.logging_config import get_logger
from dunning_modules.reminders.config import ReminderConfig

logger = get_logger("config")

CONFIG_PATH_ENV = "DUNNING_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_active_config(path: str | Path | None = None) -> LoadedReminderConfig:
    """Like ``get_active_config`` but keeps the id, version and checksum."""
    loaded = load_reminder_config(resolve_config_path(path))
    logger.info(
        "dunning_config_loaded",
        extra={
            "config_id": loaded.config_id,
            "version": loaded.version,
            "checksum": loaded.checksum,
            "source": str(loaded.source),
            "client_override_count": len(loaded.config.client_overrides),
        },
    )
    return loaded


def get_active_config(path: str | Path | None = None) -> ReminderConfig:
    """The public configuration entrypoint."""
    return load_active_config(path).config


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "LoadedReminderConfig",
    "get_active_config",
    "load_active_config",
    "resolve_config_path",
]
