"""
Unit tests for config module.
"""

import os

import pytest

from ccremote import config
from ccremote.errors import ConfigError
from ccremote.settings import MONITOR


class TestLoadConfig:
    """Test config loading functionality."""

    def test_returns_empty_dict_when_no_file(self, tmp_path, monkeypatch):
        """Should return empty dict when config file doesn't exist."""
        monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "nonexistent.yaml")
        assert config.load_config() == {}

    def test_loads_valid_yaml(self, tmp_path, monkeypatch):
        """Should load valid YAML config."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("monitoring:\n  interval_ms: 5000\n")
        monkeypatch.setattr(config, "CONFIG_PATH", config_file)

        assert config.load_config() == {"monitoring": {"interval_ms": 5000}}

    def test_returns_empty_dict_on_invalid_yaml(self, tmp_path, monkeypatch):
        """Should return empty dict when YAML is invalid."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("invalid: yaml: content: [")
        monkeypatch.setattr(config, "CONFIG_PATH", config_file)

        assert config.load_config() == {}

    def test_returns_empty_dict_when_yaml_is_not_dict(self, tmp_path, monkeypatch):
        """Should return empty dict when YAML root is not a dict."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- item1\n- item2\n")
        monkeypatch.setattr(config, "CONFIG_PATH", config_file)

        assert config.load_config() == {}

    def test_default_path_is_in_state_dir(self, isolated_state_dir):
        """Without an override the file lives in the state directory."""
        config.save_config({"monitoring": {"max_retries": 5}})

        assert (isolated_state_dir / "config.yaml").exists()
        assert config.load_config()["monitoring"]["max_retries"] == 5

    def test_save_round_trip(self, tmp_path, monkeypatch):
        """save_config creates parent dirs and writes YAML."""
        config_file = tmp_path / "nested" / "config.yaml"
        monkeypatch.setattr(config, "CONFIG_PATH", config_file)

        config.save_config({"discord": {"owner_id": "1"}})

        assert config.load_config() == {"discord": {"owner_id": "1"}}


class TestMonitorConfig:
    """Tests for get_monitor_config."""

    def test_defaults(self):
        """Without config the defaults apply."""
        result = config.get_monitor_config()

        assert result.poll_interval == MONITOR.poll_interval
        assert result.max_retries == MONITOR.max_retries
        assert result.cooldown_seconds == 300
        assert result.warnings == []

    def test_interval_from_env_in_ms(self, monkeypatch):
        """CCREMOTE_MONITORING_INTERVAL is in milliseconds."""
        monkeypatch.setenv("CCREMOTE_MONITORING_INTERVAL", "5000")
        assert config.get_monitor_config().poll_interval == 5.0

    def test_short_interval_warns(self, monkeypatch):
        """Intervals under a second are allowed with a warning."""
        monkeypatch.setenv("CCREMOTE_MONITORING_INTERVAL", "500")

        result = config.get_monitor_config()

        assert result.poll_interval == 0.5
        assert "500ms" in result.warnings[0]

    @pytest.mark.parametrize("value", ["0", "-100", "fast"])
    def test_invalid_interval(self, monkeypatch, value):
        """Non-positive or non-numeric intervals are rejected."""
        monkeypatch.setenv("CCREMOTE_MONITORING_INTERVAL", value)
        with pytest.raises(ConfigError):
            config.get_monitor_config()

    def test_yaml_values(self, tmp_path, monkeypatch):
        """The monitoring section of config.yaml is honoured."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "monitoring:\n  interval_ms: 3000\n  max_retries: 7\n  cooldown_seconds: 60\n"
        )
        monkeypatch.setattr(config, "CONFIG_PATH", config_file)

        result = config.get_monitor_config()

        assert result.poll_interval == 3.0
        assert result.max_retries == 7
        assert result.cooldown_seconds == 60.0

    def test_env_beats_yaml(self, tmp_path, monkeypatch):
        """Environment variables override the file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("monitoring:\n  max_retries: 7\n")
        monkeypatch.setattr(config, "CONFIG_PATH", config_file)
        monkeypatch.setenv("CCREMOTE_MAX_RETRIES", "2")

        assert config.get_monitor_config().max_retries == 2

    def test_max_retries_at_least_one(self, monkeypatch):
        """A retry limit below one is raised to one."""
        monkeypatch.setenv("CCREMOTE_MAX_RETRIES", "0")
        assert config.get_monitor_config().max_retries == 1


class TestDiscordConfig:
    """Tests for get_discord_config."""

    def test_none_without_token(self):
        """No token means Discord is disabled."""
        assert config.get_discord_config() is None

    def test_missing_owner(self, monkeypatch):
        """A token without an owner is a configuration error."""
        monkeypatch.setenv("CCREMOTE_DISCORD_BOT_TOKEN", "tok")

        with pytest.raises(ConfigError, match="CCREMOTE_DISCORD_OWNER_ID"):
            config.get_discord_config()

    def test_from_env(self, monkeypatch):
        """All fields can come from the environment."""
        monkeypatch.setenv("CCREMOTE_DISCORD_BOT_TOKEN", "tok")
        monkeypatch.setenv("CCREMOTE_DISCORD_OWNER_ID", "100")
        monkeypatch.setenv("CCREMOTE_DISCORD_AUTHORIZED_USERS", "200, 300,,100")
        monkeypatch.setenv("CCREMOTE_DISCORD_CHANNEL_ID", "900")

        result = config.get_discord_config()

        assert result.bot_token == "tok"
        assert result.authorized_users == ["200", "300", "100"]
        assert result.channel_id == "900"
        assert result.allowed_user_ids() == ["100", "200", "300"]

    def test_from_yaml(self, tmp_path, monkeypatch):
        """The discord section accepts a list of users."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "discord:\n  bot_token: tok\n  owner_id: 100\n  authorized_users: [200]\n"
        )
        monkeypatch.setattr(config, "CONFIG_PATH", config_file)

        result = config.get_discord_config()

        assert result.owner_id == "100"
        assert result.authorized_users == ["200"]
        assert result.channel_id is None

    def test_validate_requires_token(self):
        """validate_discord_config treats a missing token as an error."""
        with pytest.raises(ConfigError, match="CCREMOTE_DISCORD_BOT_TOKEN"):
            config.validate_discord_config()


class TestLoadEnvFiles:
    """Tests for load_env_files."""

    def test_loads_without_overriding(self, tmp_path, monkeypatch):
        """Env files fill in unset variables only."""
        monkeypatch.setattr(config, "HOME_ENV_FILE", tmp_path / "home.env")
        # Registered so monkeypatch removes whatever dotenv sets
        monkeypatch.setenv("CCREMOTE_DISCORD_OWNER_ID", "placeholder")
        monkeypatch.delenv("CCREMOTE_DISCORD_OWNER_ID")
        monkeypatch.setenv("CCREMOTE_DISCORD_BOT_TOKEN", "from-shell")
        (tmp_path / "ccremote.env").write_text(
            "CCREMOTE_DISCORD_BOT_TOKEN=from-file\nCCREMOTE_DISCORD_OWNER_ID=100\n"
        )

        loaded = config.load_env_files(tmp_path)

        assert loaded == [tmp_path / "ccremote.env"]
        assert os.environ["CCREMOTE_DISCORD_BOT_TOKEN"] == "from-shell"
        assert os.environ["CCREMOTE_DISCORD_OWNER_ID"] == "100"

    def test_first_file_wins(self, tmp_path, monkeypatch):
        """ccremote.env takes priority over .env."""
        monkeypatch.setattr(config, "HOME_ENV_FILE", tmp_path / "home.env")
        monkeypatch.setenv("CCREMOTE_MAX_RETRIES", "placeholder")
        monkeypatch.delenv("CCREMOTE_MAX_RETRIES")
        (tmp_path / "ccremote.env").write_text("CCREMOTE_MAX_RETRIES=4\n")
        (tmp_path / ".env").write_text("CCREMOTE_MAX_RETRIES=9\n")

        loaded = config.load_env_files(tmp_path)

        assert len(loaded) == 2
        assert os.environ["CCREMOTE_MAX_RETRIES"] == "4"

    def test_no_files(self, tmp_path, monkeypatch):
        """Nothing to load is fine."""
        monkeypatch.setattr(config, "HOME_ENV_FILE", tmp_path / "home.env")
        assert config.load_env_files(tmp_path) == []
