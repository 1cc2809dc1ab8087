"""
Unit tests for configuration and the command line.
"""

import pytest

from httppipeline.__main__ import build_parser, config_from_args, main
from httppipeline.config import ServerConfig
from httppipeline.pipeline import DEFAULT_BLOCKED_AGENTS


class TestServerConfig:

    def test_defaults(self):
        config = ServerConfig()

        assert config.port == 3000
        assert config.api_token == "123"
        assert config.blocked_user_agents == DEFAULT_BLOCKED_AGENTS
        config.validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "4000")
        monkeypatch.setenv("API_TOKEN", "s3cret")
        monkeypatch.setenv("HTTP_LOG_LEVEL", "debug")
        monkeypatch.setenv("BLOCKED_USER_AGENTS", "curl, wget ,")
        monkeypatch.setenv("AGENT_LOG_EXTENDED", "yes")

        config = ServerConfig.from_env()

        assert config.port == 4000
        assert config.api_token == "s3cret"
        assert config.log_level == "DEBUG"
        assert config.blocked_user_agents == ("curl", "wget")
        assert config.agent_log_extended is True

    @pytest.mark.parametrize("raw,expected", [("2.5", 2.5), ("0", None), ("", None)])
    def test_pipeline_timeout_from_env(self, monkeypatch, raw, expected):
        monkeypatch.setenv("PIPELINE_TIMEOUT", raw)

        assert ServerConfig.from_env().pipeline_timeout == expected

    def test_empty_blocklist_from_env(self, monkeypatch):
        monkeypatch.setenv("BLOCKED_USER_AGENTS", "")

        assert ServerConfig.from_env().blocked_user_agents == ()

    @pytest.mark.parametrize("overrides", [
        {"port": 70000},
        {"port": -1},
        {"workers": 0},
        {"buffer_size": 10},
        {"timeout": 0},
        {"pipeline_timeout": -1.0},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
        {"api_token": ""},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()


class TestCommandLine:

    def parse(self, *argv):
        return config_from_args(build_parser().parse_args(list(argv)), base=ServerConfig())

    def test_no_flags_keeps_base(self):
        assert self.parse() == ServerConfig()

    def test_flags_override(self):
        config = self.parse("--port", "4000", "-w", "2", "--token", "abc", "--json-logs")

        assert config.port == 4000
        assert config.workers == 2
        assert config.api_token == "abc"
        assert config.log_format == "json"

    def test_block_agent_replaces_defaults(self):
        config = self.parse("--block-agent", "curl", "--block-agent", "wget")

        assert config.blocked_user_agents == ("curl", "wget")

    def test_allow_all_agents(self):
        assert self.parse("--allow-all-agents").blocked_user_agents == ()

    def test_zero_timeout_disables_deadline(self):
        assert self.parse("--timeout", "0").pipeline_timeout is None
        assert self.parse("--timeout", "1.5").pipeline_timeout == 1.5

    def test_main_rejects_bad_config(self, capsys):
        assert main(["--port", "70000"]) == 2
        assert "Invalid configuration" in capsys.readouterr().err
