"""Tests for dunning_config (YAML policy loading and get_active_config)."""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from dunning_config import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_PATH,
    get_active_config,
    load_active_config,
    resolve_config_path,
)
from dunning_config.loader import (
    compute_checksum,
    load_reminder_config,
    load_yaml_file,
    parse_reminder_config,
)
from dunning_engines.late_fee import LateFeeType
from dunning_engines.reminder_schedule import ReminderLevel
from dunning_modules.reminders.config import ReminderConfig

POLICY = """
config_id: studio-policy
version: 3
reminders:
  schedule:
    gentle: [2]
    final: [20]
  grace_period_days: 5
  late_fee_type: percentage
  late_fee_rate: "1.5"
  client_overrides:
    client-9:
      late_fee_enabled: false
"""


@pytest.fixture
def policy_file(tmp_path) -> Path:
    path = tmp_path / "policy.yaml"
    path.write_text(POLICY)
    return path


class TestLoader:

    def test_load_yaml_file(self, policy_file):
        data = load_yaml_file(policy_file)
        assert data["config_id"] == "studio-policy"

    def test_empty_file_loads_as_empty_dict(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "nope.yaml")

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("reminders: [unclosed")
        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)

    def test_load_reminder_config(self, policy_file):
        loaded = load_reminder_config(policy_file)

        assert loaded.config_id == "studio-policy"
        assert loaded.version == 3
        assert loaded.source == policy_file
        config = loaded.config
        assert config.schedule == {ReminderLevel.GENTLE: (2,), ReminderLevel.FINAL: (20,)}
        assert config.grace_period_days == 5
        assert config.late_fee_type is LateFeeType.PERCENTAGE
        assert config.late_fee_rate == Decimal("1.5")
        assert config.for_client("client-9").late_fee_enabled is False

    def test_missing_reminders_section_rejected(self):
        with pytest.raises(ValueError, match="reminders"):
            parse_reminder_config({"config_id": "x"})

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError, match="grace_period_days"):
            parse_reminder_config({"reminders": {"grace_period_days": -1}})

    def test_empty_reminders_section_uses_defaults(self):
        assert parse_reminder_config({"reminders": None}).max_reminders == 10


class TestChecksum:

    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": {"c": 2, "d": 3}}) == compute_checksum(
            {"b": {"d": 3, "c": 2}, "a": 1}
        )

    def test_content_changes_checksum(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

    def test_sha256_hex(self):
        assert len(compute_checksum({})) == 64


class TestActiveConfig:

    def test_packaged_defaults_match_schema_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)

        config = get_active_config()

        defaults = ReminderConfig()
        assert config.schedule == defaults.schedule
        assert config.grace_period_days == defaults.grace_period_days
        assert config.late_fee_type is defaults.late_fee_type
        assert config.late_fee_rate == defaults.late_fee_rate
        assert config.flat_fee_amount == defaults.flat_fee_amount
        assert config.max_late_fee_percentage == defaults.max_late_fee_percentage
        assert config.email_templates == defaults.email_templates
        assert config.max_sends_per_run is None

    def test_resolution_order(self, monkeypatch, policy_file, tmp_path):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        assert resolve_config_path() == DEFAULT_CONFIG_PATH

        monkeypatch.setenv(CONFIG_PATH_ENV, str(policy_file))
        assert resolve_config_path() == policy_file

        explicit = tmp_path / "explicit.yaml"
        assert resolve_config_path(explicit) == explicit

    def test_env_path_used(self, monkeypatch, policy_file):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(policy_file))
        assert get_active_config().grace_period_days == 5

    def test_load_logs_checksum(self, policy_file, captured_logs):
        loaded = load_active_config(policy_file)

        records = [r for r in captured_logs() if r["message"] == "dunning_config_loaded"]
        assert len(records) == 1
        assert records[0]["checksum"] == loaded.checksum
        assert records[0]["config_id"] == "studio-policy"
