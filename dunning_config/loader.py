"""
Configuration Loader (``dunning_config.loader``).

Responsibility
--------------
Loads reminder policy YAML files and parses them into ``ReminderConfig``.
Runtime callers go through ``dunning_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``reminders`` section or unknown fields  -> ``ValueError``.
* Invalid policy values  -> ``ValueError`` from ``ReminderConfig``.

Audit relevance
---------------
``compute_checksum`` gives every loaded policy a deterministic identity, so
a reminder run can be tied to the exact policy file that governed it.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from dunning_modules.reminders.config import ReminderConfig


@dataclass(frozen=True)
class LoadedReminderConfig:
    """A parsed policy together with its identity."""

    config_id: str
    version: int
    checksum: str
    source: Path
    config: ReminderConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_reminder_config(data: dict[str, Any]) -> ReminderConfig:
    """Build a ReminderConfig from the ``reminders`` section of a policy file."""
    if "reminders" not in data:
        raise ValueError("Policy file has no 'reminders' section")
    section = data["reminders"] or {}
    if not isinstance(section, dict):
        raise ValueError("'reminders' must be a mapping")
    return ReminderConfig.from_dict(section)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Deterministic SHA-256 over the canonical JSON form of ``data``.

    Key order in the YAML source does not affect the result.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_reminder_config(path: Path) -> LoadedReminderConfig:
    """Load, parse and fingerprint a policy file."""
    path = Path(path)
    data = load_yaml_file(path)
    return LoadedReminderConfig(
        config_id=str(data.get("config_id", path.stem)),
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        source=path,
        config=parse_reminder_config(data),
    )
