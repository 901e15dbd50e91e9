"""
Tests for imgshrink.config.settings module.

This test suite covers:
- Settings loading over defaults
- Default settings initialization
- Type conversion helpers (get_bool, get_int)
- Error handling for corrupted settings files
"""

import json

import pytest

from imgshrink.config import settings


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    """Point the settings module at a temporary file and restore defaults after."""
    path = tmp_path / "settings.json"
    monkeypatch.setattr("imgshrink.config.settings.SETTINGS_PATH", path)
    settings.settings_store.values = {}
    yield path
    settings.settings_store.values = dict(settings.DEFAULT_SETTINGS)


class TestLoadSettings:
    """Tests for load_settings() function."""

    def test_load_defaults_when_no_file(self, settings_file):
        """Test that default settings are loaded when file doesn't exist."""
        settings.load_settings()

        assert settings.settings_store.values["compression_level"] == 9
        assert settings.settings_store.values["zero_fill_enabled"] is True
        assert settings.settings_store.values["log_file_name"] == "imgshrink.log"

    def test_load_merges_with_defaults(self, settings_file):
        """Test that loaded settings merge with defaults."""
        settings_file.write_text(json.dumps({"compression_level": 6}))

        settings.load_settings()

        assert settings.settings_store.values["compression_level"] == 6
        assert settings.settings_store.values["zero_fill_enabled"] is True

    def test_load_handles_corrupted_json(self, settings_file):
        """Test handling of corrupted JSON file."""
        settings_file.write_text("{invalid json")

        settings.load_settings()

        assert settings.settings_store.values == settings.DEFAULT_SETTINGS

    def test_load_ignores_non_object(self, settings_file):
        settings_file.write_text(json.dumps([1, 2, 3]))

        settings.load_settings()

        assert settings.settings_store.values == settings.DEFAULT_SETTINGS


class TestGetSetting:
    """Tests for get_setting()."""

    def test_settings_are_read_only_from_disk(self, settings_file):
        """Test reading settings never writes the settings file."""
        settings.load_settings()

        assert settings.get_setting("log_file_name") == "imgshrink.log"
        assert not settings_file.exists()

    def test_missing_key_uses_default(self, settings_file):
        settings.load_settings()

        assert settings.get_setting("nope", "fallback") == "fallback"


class TestTypedGetters:
    """Tests for get_bool() and get_int()."""

    def test_get_bool(self, settings_file):
        settings.settings_store.values = {"zero_fill_enabled": 0}

        assert settings.get_bool("zero_fill_enabled", True) is False
        assert settings.get_bool("missing", True) is True

    def test_get_int(self, settings_file):
        settings.settings_store.values = {"compression_level": "6"}

        assert settings.get_int("compression_level", 9) == 6

    def test_get_int_bad_value_uses_default(self, settings_file):
        """Test a non-numeric value falls back to the default."""
        settings.settings_store.values = {"compression_level": "max"}

        assert settings.get_int("compression_level", 9) == 9
