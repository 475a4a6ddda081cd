# tests/config/test_relay_config.py
"""
Tests for the RoomRelay configuration models and the TOML loader.
"""

import pytest

from roomrelay.config import (
    ExchangeConfig,
    LoggingConfig,
    OllamaConfig,
    RelayConfig,
    SessionsConfig,
    load_relay_config,
)
from roomrelay.exceptions import ConfigError, ErrorKind


class TestDefaults:

    def test_packaged_defaults(self):
        config = load_relay_config()

        assert config.ollama.default_model == "llama3.2"
        assert config.ollama.autostart is False
        assert config.sessions.max_history == 25
        assert config.exchange.idle_timeout == 75.0
        assert config.exchange.hard_timeout == pytest.approx(112.5)
        assert config.retention.enabled is True
        assert config.retention.max_message_age == 7200.0
        assert config.retention.sweep_interval == 3600.0
        assert config.logging.components["httpx"] == "WARNING"

    def test_model_defaults_match_packaged_file(self):
        assert RelayConfig().exchange.idle_timeout == load_relay_config().exchange.idle_timeout


class TestValidation:

    def test_hard_timeout_follows_factor(self):
        assert ExchangeConfig(idle_timeout=10, hard_timeout_factor=2).hard_timeout == 20

    @pytest.mark.parametrize("kwargs", [
        {"idle_timeout": 0},
        {"idle_timeout": -1},
        {"hard_timeout_factor": 0.5},
    ])
    def test_invalid_exchange_values(self, kwargs):
        with pytest.raises(ValueError):
            ExchangeConfig(**kwargs)

    def test_max_history_lower_bound(self):
        with pytest.raises(ValueError):
            SessionsConfig(max_history=1)

    def test_file_mode_choices(self):
        assert LoggingConfig(file_mode="per_run").file_mode == "per_run"
        with pytest.raises(ValueError):
            LoggingConfig(file_mode="hourly")


class TestApiKeyExpansion:

    def test_expands_environment_reference(self, monkeypatch):
        monkeypatch.setenv("ROOMRELAY_TEST_KEY", "s3cret")
        assert OllamaConfig(api_key="${ROOMRELAY_TEST_KEY}").api_key == "s3cret"

    def test_unset_reference_means_no_credential(self, monkeypatch):
        monkeypatch.delenv("ROOMRELAY_MISSING_KEY", raising=False)
        assert OllamaConfig(api_key="$ROOMRELAY_MISSING_KEY").api_key is None

    def test_literal_key_kept(self):
        assert OllamaConfig(api_key="plain").api_key == "plain"


class TestLoader:

    def test_dict_overrides_defaults(self):
        config = load_relay_config(config_dict={"exchange": {"idle_timeout": 30}})

        assert config.exchange.idle_timeout == 30
        assert config.exchange.hard_timeout == 45
        assert config.sessions.max_history == 25

    def test_file_then_dict_precedence(self, tmp_path):
        path = tmp_path / "relay.toml"
        path.write_text(
            '[ollama]\n'
            'host = "http://gpu-box:11434"\n'
            'default_model = "mistral"\n'
            '\n'
            '[sessions]\n'
            'max_history = 10\n'
        )

        config = load_relay_config(
            config_dict={"ollama": {"default_model": "phi3"}},
            config_path=path,
        )

        assert config.ollama.host == "http://gpu-box:11434"
        assert config.ollama.default_model == "phi3"
        assert config.sessions.max_history == 10
        # nested tables merge instead of replacing
        assert config.logging.components["httpx"] == "WARNING"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found") as exc_info:
            load_relay_config(config_path=tmp_path / "absent.toml")
        assert exc_info.value.kind is ErrorKind.CONFIG

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[ollama\nhost = ")
        with pytest.raises(ConfigError, match="Failed to read"):
            load_relay_config(config_path=path)

    def test_invalid_values(self):
        with pytest.raises(ConfigError, match="Invalid RoomRelay configuration"):
            load_relay_config(config_dict={"exchange": {"idle_timeout": -5}})
