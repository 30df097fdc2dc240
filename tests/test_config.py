"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for report settings.
"""

import os
import tempfile
from datetime import timezone

import pytest
import yaml

from token_savings.config.loader import (
    DB_PATH_ENV_VAR,
    Settings,
    WeekAnchor,
    default_db_path,
    load_settings,
    resolve_timezone,
)


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        config_path = self._write_config({
            "db_path": os.path.join(self.temp_dir, "history.db"),
            "timezone": "Europe/Oslo",
            "week_start": "sunday",
            "history_days": 90
        })
        settings = load_settings(config_path)

        assert settings.db_path == os.path.join(self.temp_dir, "history.db")
        assert settings.timezone == "Europe/Oslo"
        assert settings.week_start == WeekAnchor.SUNDAY
        assert settings.history_days == 90

    def test_defaults_without_path(self, monkeypatch):
        monkeypatch.delenv(DB_PATH_ENV_VAR, raising=False)
        settings = load_settings()
        assert settings.timezone == "UTC"
        assert settings.week_start == WeekAnchor.MONDAY
        assert settings.history_days is None
        assert settings.db_path.endswith(os.path.join("token-savings", "history.db"))

    def test_partial_config_uses_defaults(self):
        settings = load_settings(self._write_config({"week_start": "Tuesday"}))
        assert settings.week_start == WeekAnchor.TUESDAY
        assert settings.timezone == "UTC"

    def test_empty_file_uses_defaults(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, 'w').close()
        assert load_settings(config_path).timezone == "UTC"

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_settings(os.path.join(self.temp_dir, "missing.yaml"))

    def test_invalid_yaml_raises(self):
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("timezone: [unclosed")
        with pytest.raises(yaml.YAMLError):
            load_settings(config_path)

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_settings(self._write_config({"timezone": "UTC", "colour": "blue"}))

    def test_non_mapping_rejected(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            load_settings(self._write_config(["UTC"]))

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            load_settings(self._write_config({"timezone": "Mars/Olympus_Mons"}))

    def test_invalid_week_start_rejected(self):
        with pytest.raises(ValueError, match="week_start"):
            load_settings(self._write_config({"week_start": "someday"}))

    @pytest.mark.parametrize("value", [0, -3, "ten", True])
    def test_invalid_history_days_rejected(self, value):
        with pytest.raises(ValueError, match="history_days"):
            load_settings(self._write_config({"history_days": value}))

    def test_db_path_expands_user(self):
        settings = load_settings(self._write_config({"db_path": "~/savings.db"}))
        assert "~" not in settings.db_path


class TestSettings:

    def test_env_var_overrides_default_db_path(self, monkeypatch):
        monkeypatch.setenv(DB_PATH_ENV_VAR, "/tmp/custom.db")
        assert default_db_path() == "/tmp/custom.db"

    def test_empty_db_path_rejected(self):
        with pytest.raises(ValueError, match="db_path"):
            Settings(db_path="")

    def test_utc_resolves_without_tz_database(self):
        assert resolve_timezone("UTC") is timezone.utc
        assert Settings(db_path="x.db").tz is timezone.utc

    def test_settings_are_immutable(self):
        settings = Settings(db_path="x.db")
        with pytest.raises(Exception):
            settings.timezone = "Europe/Oslo"
