"""
Tests for configuration loading.
"""

import base64

import pytest

from reactgate.config.settings import (
    DEFAULT_APPROVE_REACTIONS,
    BotConfig,
    ConfigError,
)

SECRET_B64 = base64.b64encode(bytes(range(32))).decode()


class TestBotConfig:
    """Environment and YAML loading."""

    def test_env_defaults(self):
        config = BotConfig.from_env({"MACAROON_SECRET": SECRET_B64})

        assert config.macaroon_secret == bytes(range(32))
        assert config.approve_reactions == DEFAULT_APPROVE_REACTIONS
        assert config.deadline_seconds == 300.0
        assert config.sweep_interval_seconds == 5.0
        assert config.port == 3000

    def test_env_overrides(self):
        config = BotConfig.from_env(
            {
                "MACAROON_SECRET": SECRET_B64,
                "SLACK_SIGNING_SECRET": "shh",
                "REACTGATE_CHANNEL": "C0DEPLOYS",
                "REACTGATE_APPROVE_REACTIONS": "shipit, :white_check_mark:",
                "REACTGATE_DEADLINE": "120",
                "REACTGATE_PORT": "8080",
            }
        )

        assert config.signing_secret == "shh"
        assert config.channel == "C0DEPLOYS"
        assert config.approve_reactions == frozenset({"shipit", "white_check_mark"})
        assert config.deadline_seconds == 120.0
        assert config.port == 8080

    def test_missing_secret(self):
        with pytest.raises(ConfigError, match="no MACAROON_SECRET"):
            BotConfig.from_env({})

    def test_short_secret(self):
        short = base64.b64encode(b"too short").decode()
        with pytest.raises(ConfigError, match="32 bytes"):
            BotConfig.from_env({"MACAROON_SECRET": short})

    def test_undecodable_secret(self):
        with pytest.raises(ConfigError, match="decode"):
            BotConfig.from_env({"MACAROON_SECRET": "not base64!!"})

    def test_bad_number(self):
        with pytest.raises(ConfigError):
            BotConfig.from_env({"MACAROON_SECRET": SECRET_B64, "REACTGATE_DEADLINE": "soon"})

    def test_non_positive_deadline(self):
        with pytest.raises(ConfigError):
            BotConfig.from_env({"MACAROON_SECRET": SECRET_B64, "REACTGATE_DEADLINE": "0"})

    def test_yaml_file_overlaid_by_env(self, tmp_path):
        path = tmp_path / "reactgate.yaml"
        path.write_text(
            "channel: C0FROMFILE\n"
            "deadline_seconds: 90\n"
            "approve_reactions:\n"
            "  - '+1'\n"
            "  - shipit\n"
        )

        config = BotConfig.load(
            path,
            environ={"MACAROON_SECRET": SECRET_B64, "REACTGATE_DEADLINE": "60"},
        )

        assert config.channel == "C0FROMFILE"
        assert config.deadline_seconds == 60.0
        assert config.approve_reactions == frozenset({"+1", "shipit"})

    def test_config_path_from_env(self, tmp_path):
        path = tmp_path / "reactgate.yaml"
        path.write_text("channel: C0VIAENV\n")

        config = BotConfig.load(
            environ={"MACAROON_SECRET": SECRET_B64, "REACTGATE_CONFIG": str(path)}
        )

        assert config.channel == "C0VIAENV"

    def test_unreadable_yaml(self, tmp_path):
        with pytest.raises(ConfigError):
            BotConfig.load(tmp_path / "missing.yaml", environ={"MACAROON_SECRET": SECRET_B64})

    def test_to_dict_redacts_secrets(self):
        config = BotConfig.from_env(
            {"MACAROON_SECRET": SECRET_B64, "SLACK_BOT_TOKEN": "xoxb-secret"}
        )
        d = config.to_dict()

        assert d["bot_token_set"] is True
        assert "xoxb-secret" not in str(d)
        assert "macaroon_secret" not in d
