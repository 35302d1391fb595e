"""
Unit tests for configuration loading.
"""
import json

import pytest

from config import Config


@pytest.mark.unit
class TestConfig:

    def test_environment_defaults(self, monkeypatch, temp_dir):
        monkeypatch.setenv("CONFIG_DIR", str(temp_dir))
        monkeypatch.setenv("RECEIVING_API_URL", "https://fleet.example.com")
        monkeypatch.setenv("REQUIRE_BRAND", "true")
        monkeypatch.delenv("DEFAULT_LOCATION", raising=False)

        config = Config()

        assert config.api_base_url == "https://fleet.example.com"
        assert config.require_brand is True
        assert config.default_location == "WAREHOUSE-A"
        assert config.batch_prefix == "BATCH"

    def test_settings_file_overlay(self, monkeypatch, temp_dir):
        (temp_dir / "receiving_settings.json").write_text(json.dumps({
            "_comment": "ignored",
            "default_location": "YARD-2",
            "max_serial_attempts": "5",
            "unknown_key": 1,
        }))
        monkeypatch.setenv("CONFIG_DIR", str(temp_dir))

        config = Config()

        assert config.default_location == "YARD-2"
        assert config.max_serial_attempts == 5
        assert not hasattr(config, "unknown_key")

    def test_broken_settings_file_ignored(self, monkeypatch, temp_dir):
        (temp_dir / "receiving_settings.json").write_text("{not json")
        monkeypatch.setenv("CONFIG_DIR", str(temp_dir))
        monkeypatch.delenv("DEFAULT_LOCATION", raising=False)

        assert Config().default_location == "WAREHOUSE-A"
