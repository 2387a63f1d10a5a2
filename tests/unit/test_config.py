"""
Tests for configuration settings and loading.
"""

import pytest

from web_recorder.config import (
    ConfigLoader,
    DEFAULT_CLOSURE_MARKERS,
    ServerSettings,
    Settings,
    get_settings,
    load_config,
    reset_settings,
)
from web_recorder.exceptions import ConfigurationError


class TestSettings:
    """Test the Settings model."""

    def test_defaults(self):
        """Test default values."""
        settings = Settings()
        assert settings.server.host == "127.0.0.1"
        assert settings.server.port == 8000
        assert settings.browser.default_kind == "chrome-playwright"
        assert settings.injection.max_attempts == 3
        assert settings.supervisor.closure_markers == DEFAULT_CLOSURE_MARKERS
        assert settings.logging.level == "INFO"

    def test_merge_with_nested(self):
        """Test merging nested overrides keeps untouched values."""
        settings = Settings()
        merged = settings.merge_with({"server": {"port": 9100}, "injection": {"max_attempts": 5}})

        assert merged.server.port == 9100
        assert merged.server.host == "127.0.0.1"
        assert merged.injection.max_attempts == 5
        assert settings.server.port == 8000

    def test_env_override(self, monkeypatch):
        """Test environment variables with the WEB_RECORDER__ prefix."""
        monkeypatch.setenv("WEB_RECORDER__SERVER__PORT", "9200")
        monkeypatch.setenv("WEB_RECORDER__BROWSER__HEADLESS", "true")

        settings = Settings()
        assert settings.server.port == 9200
        assert settings.browser.headless is True

    def test_invalid_port_rejected(self):
        """Test that out-of-range values fail validation."""
        with pytest.raises(ValueError):
            ServerSettings(port=0)


class TestCallbackBaseUrl:
    """Test the callback URL embedded into page scripts."""

    def test_default(self):
        """Test the default callback URL."""
        assert ServerSettings().callback_base_url == "http://127.0.0.1:8000"

    def test_wildcard_host_becomes_localhost(self):
        """Test that a wildcard bind address is not used as callback host."""
        assert ServerSettings(host="0.0.0.0", port=8080).callback_base_url == "http://localhost:8080"

    def test_public_host_and_base_path(self):
        """Test public host and base path."""
        server = ServerSettings(host="0.0.0.0", public_host="10.0.0.5", base_path="/recorder/")
        assert server.callback_base_url == "http://10.0.0.5:8000/recorder"


class TestConfigLoader:
    """Test loading configuration from files."""

    def test_load_yaml(self, tmp_path):
        """Test loading values from a YAML file."""
        path = tmp_path / "web-recorder.yaml"
        path.write_text("server:\n  port: 9300\ninjection:\n  marker_id: my-marker\n")

        settings = load_config(config_path=path)
        assert settings.server.port == 9300
        assert settings.injection.marker_id == "my-marker"

    def test_overrides_win_over_file(self, tmp_path):
        """Test that keyword overrides beat file values."""
        path = tmp_path / "web-recorder.yaml"
        path.write_text("server:\n  port: 9300\n")

        settings = load_config(config_path=path, server={"port": 9400})
        assert settings.server.port == 9400

    def test_empty_file(self, tmp_path):
        """Test that an empty file yields defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert ConfigLoader(path).load_yaml_config(path) == {}

    def test_missing_explicit_file(self, tmp_path):
        """Test that a missing explicit config file is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(config_path=tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test that malformed YAML is a configuration error."""
        path = tmp_path / "bad.yaml"
        path.write_text("server: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(config_path=path)

    def test_non_mapping_yaml(self, tmp_path):
        """Test that a YAML list at the top level is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(config_path=path)

    def test_env_wins_over_file(self, tmp_path, monkeypatch):
        """Test that environment variables beat file values but not overrides."""
        path = tmp_path / "web-recorder.yaml"
        path.write_text("server:\n  port: 9300\n  base_path: rec\n")
        monkeypatch.setenv("WEB_RECORDER__SERVER__PORT", "9500")

        settings = load_config(config_path=path)
        assert settings.server.port == 9500
        assert settings.server.base_path == "rec"

        assert load_config(config_path=path, server={"port": 9600}).server.port == 9600

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        """Test locating the config file through WEB_RECORDER_CONFIG."""
        path = tmp_path / "custom.yaml"
        path.write_text("injection:\n  max_attempts: 7\n")
        monkeypatch.setenv("WEB_RECORDER_CONFIG", str(path))

        assert load_config().injection.max_attempts == 7

    def test_invalid_value(self, tmp_path):
        """Test that a value failing validation is a configuration error."""
        path = tmp_path / "web-recorder.yaml"
        path.write_text("server:\n  port: not-a-port\n")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(config_path=path)


class TestGlobalSettings:
    """Test the process-wide settings accessor."""

    def test_cached_until_reset(self):
        """Test that get_settings caches and reset_settings reloads."""
        reset_settings()
        try:
            first = get_settings()
            assert get_settings() is first

            reset_settings()
            assert get_settings() is not first
        finally:
            reset_settings()
