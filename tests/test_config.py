"""Tests for configuration loading and saving."""

import json
import tempfile
from pathlib import Path
from unittest.mock import patch

from typing_stats.config import (
    DEFAULT_API_URL,
    DISPLAY_KEYSTROKES,
    DISPLAY_WORDS,
    MIN_POLL_INTERVAL,
    Config,
)


class TestConfig:
    """Tests for Config."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = Path(self.temp_dir) / "config.json"

    def test_defaults(self):
        config = Config()

        assert config.device_id is None
        assert config.display_mode == DISPLAY_KEYSTROKES
        assert config.remote.api_url == DEFAULT_API_URL
        assert config.remote.enabled is True
        assert config.persistence.debounce_seconds == 1.0

    def test_missing_file_gives_defaults(self):
        assert Config.load(self.config_file) == Config()

    def test_save_and_load(self):
        config = Config(device_id="abc", display_mode=DISPLAY_WORDS)
        config.remote.poll_interval_seconds = 120
        config.persistence.debounce_seconds = 2.5

        config.save_to(self.config_file)
        loaded = Config.load(self.config_file)

        assert loaded == config

    def test_unknown_keys_ignored(self):
        self.config_file.write_text(json.dumps({
            "device_id": "abc",
            "legacy_option": True,
            "remote": {"api_url": "https://example.com", "shiny": 1},
        }))

        config = Config.load(self.config_file)

        assert config.device_id == "abc"
        assert config.remote.api_url == "https://example.com"

    def test_corrupt_file_gives_defaults(self):
        self.config_file.write_text("{not json")

        assert Config.load(self.config_file) == Config()

    def test_poll_interval_clamped(self):
        self.config_file.write_text(json.dumps({"remote": {"poll_interval_seconds": 1}}))

        assert Config.load(self.config_file).remote.poll_interval_seconds == MIN_POLL_INTERVAL

    def test_invalid_display_mode_reset(self):
        self.config_file.write_text(json.dumps({"display_mode": "sentences"}))

        assert Config.load(self.config_file).display_mode == DISPLAY_KEYSTROKES

    def test_toggle_display_mode(self):
        config = Config()

        assert config.toggle_display_mode() == DISPLAY_WORDS
        assert config.toggle_display_mode() == DISPLAY_KEYSTROKES

    def test_ensure_device_id_generates_once(self):
        config = Config()

        with patch.object(Config, "get_config_file", return_value=self.config_file):
            first = config.ensure_device_id()
            second = config.ensure_device_id()

        assert first == second
        assert len(first) == 36
        assert json.loads(self.config_file.read_text())["device_id"] == first

    def test_ensure_device_id_keeps_existing(self):
        config = Config(device_id="existing")

        assert config.ensure_device_id() == "existing"
