"""Tests for the clawup CLI and the registry inspector."""

import json
from unittest.mock import AsyncMock, patch

import pytest

import manage_plugins
from cli.commands import build_request, cmd_render, cmd_resolve, mask_value, parse_plugin_config
from cli.main import build_parser, main
from clawup.errors import ConfigurationError
from clawup.plugins.hooks import ResolvedSecrets

ENV = {
    "ANTHROPIC_API_KEY": "sk-ant-api03-XXXX",
    "GATEWAY_TOKEN": "gw-token",
    "TAILSCALE_AUTH_KEY": "tskey-1",
    "SLACK_BOT_TOKEN": "xoxb-1",
    "PM_SLACK_BOT_TOKEN": "xoxb-pm",
}


@pytest.fixture
def cli_env(monkeypatch):
    for name, value in ENV.items():
        monkeypatch.setenv(name, value)
    return ENV


class TestParsePluginConfig:
    def test_merges_repeated_flags(self):
        result = parse_plugin_config(['slack={"mode": "socket"}', 'slack={"dm": {"policy": "open"}}'])

        assert result == {"slack": {"mode": "socket", "dm": {"policy": "open"}}}

    @pytest.mark.parametrize("value", ["slack", '=["x"]', "slack={bad", 'slack=["list"]'])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError):
            parse_plugin_config([value])


class TestBuildRequest:
    """Flags plus environment to DeploymentRequest."""

    def test_from_flags(self):
        args = build_parser().parse_args([
            "render", "-p", "slack", "-d", "gh", "--role", "pm",
            "--agent-name", "Juno", "--gateway-port", "9000", "--compress", "--foreground",
        ])

        request = build_request(args, ENV)

        assert request.provider_api_keys == {"anthropic": "sk-ant-api03-XXXX"}
        assert request.plugins[0].secrets == {"SLACK_BOT_TOKEN": "xoxb-pm"}
        assert request.deps == ["gh"]
        assert request.agent_name == "Juno"
        assert request.gateway_port == 9000
        assert request.compress
        assert request.foreground_mode
        assert not request.skip_tailscale

    def test_unset_flags_keep_defaults(self):
        request = build_request(build_parser().parse_args(["render"]), ENV)

        assert request.model == "anthropic/claude-opus-4-6"
        assert request.gateway_port == 18789
        assert request.target == "local"
        assert request.plugins == []

    def test_from_identity(self, tmp_path):
        (tmp_path / "identity.yaml").write_text(
            "name: juno\ndisplayName: Juno\nrole: pm\nemoji: owl\ndescription: PM\n"
            "volumeSize: 30\nplugins: [slack]\n"
        )
        args = build_parser().parse_args(["render", "-i", str(tmp_path), "--target", "aws"])

        request = build_request(args, ENV)

        assert request.agent_name == "Juno"
        assert request.target == "aws"
        assert request.plugins[0].secrets == {"SLACK_BOT_TOKEN": "xoxb-pm"}


class TestRenderCommand:
    """cmd_render writes to stdout or a file."""

    def test_config_only(self, cli_env, capsys):
        args = build_parser().parse_args(["render", "-p", "slack", "--config-only"])

        cmd_render(args)

        config = json.loads(capsys.readouterr().out)
        assert config["channels"]["slack"]["botToken"] == "xoxb-1"
        assert config["gateway"]["auth"]["token"] == "gw-token"

    def test_script_to_file(self, cli_env, tmp_path):
        output = tmp_path / "user-data.sh"
        args = build_parser().parse_args(["render", "-v", "nix-docker", "-o", str(output)])

        cmd_render(args)

        assert output.read_text().startswith("#!/bin/bash")


class TestResolveFailures:
    """A failed resolve hook stops both render --resolve and resolve with exit 1."""

    @pytest.fixture
    def linear_env(self, cli_env, monkeypatch):
        monkeypatch.setenv("LINEAR_API_KEY", "lin_api_1")
        monkeypatch.setenv("LINEAR_WEBHOOK_SECRET", "whsec")
        monkeypatch.delenv("LINEAR_USER_UUID", raising=False)
        failed = ResolvedSecrets(ok=False, error="viewer query failed")
        with patch("cli.main.setup_logging"), patch(
            "clawup.services.deployment_service.resolve_plugin_secrets",
            new=AsyncMock(return_value=failed),
        ):
            yield

    def test_render_writes_nothing(self, linear_env, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["render", "-p", "openclaw-linear", "--resolve", "--variant", "nix-docker"])

        captured = capsys.readouterr()
        assert exc_info.value.code == 1
        assert captured.out == ""
        assert "viewer query failed" in captured.err

    def test_render_to_file_leaves_no_file(self, linear_env, tmp_path):
        output = tmp_path / "user-data.sh"

        with pytest.raises(SystemExit) as exc_info:
            main(["render", "-p", "openclaw-linear", "--resolve", "-o", str(output)])

        assert exc_info.value.code == 1
        assert not output.exists()

    def test_resolve_exits_1_for_optional_secret(self, linear_env, capsys):
        """linearUserUuid is optional, yet its hook failing is still an error."""
        with pytest.raises(SystemExit) as exc_info:
            main(["resolve", "-p", "openclaw-linear"])

        assert exc_info.value.code == 1
        assert "Secret resolution failed" in capsys.readouterr().err


class TestResolveCommand:
    """cmd_resolve lists plugin secrets and checks value prefixes."""

    def test_all_present(self, cli_env, monkeypatch, capsys):
        monkeypatch.setenv("SLACK_APP_TOKEN", "xapp-1")

        cmd_resolve(build_parser().parse_args(["resolve", "-p", "slack"]))

        err = capsys.readouterr().err
        assert "SLACK_BOT_TOKEN" in err
        assert "xoxb-1" not in err

    def test_wrong_prefix_exits_1(self, cli_env, monkeypatch, capsys):
        monkeypatch.setenv("SLACK_BOT_TOKEN", "bot-token-without-prefix")
        monkeypatch.setenv("SLACK_APP_TOKEN", "xapp-1")

        with pytest.raises(SystemExit) as exc_info:
            cmd_resolve(build_parser().parse_args(["resolve", "-p", "slack"]))

        assert exc_info.value.code == 1
        assert "1 secret(s) with an invalid prefix" in capsys.readouterr().err

    def test_missing_required_exits_1(self, cli_env, monkeypatch, capsys):
        monkeypatch.delenv("SLACK_APP_TOKEN", raising=False)

        with pytest.raises(SystemExit) as exc_info:
            cmd_resolve(build_parser().parse_args(["resolve", "-p", "slack"]))

        assert exc_info.value.code == 1
        assert "1 required secret(s) missing" in capsys.readouterr().err


class TestMain:
    """Top-level error handling."""

    def test_no_command_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1

    def test_configuration_error_exits_1(self, cli_env):
        with patch("cli.main.setup_logging"), pytest.raises(SystemExit) as exc_info:
            main(["render", "--model", "mistral/large", "--config-only"])

        assert exc_info.value.code == 1

    def test_mask_value(self):
        assert mask_value("short") == "****"
        assert mask_value("xoxb-123456789") == "xoxb****89"


class TestManagePlugins:
    """Registry inspector output."""

    def test_list(self, capsys):
        manage_plugins.main(["list"])

        out = capsys.readouterr().out
        assert "openclaw-linear" in out
        assert "brave-search" in out
        assert "claude-code" in out
        assert "openrouter" in out

    def test_info_plugin(self, capsys):
        manage_plugins.main(["info", "openclaw-linear"])

        out = capsys.readouterr().out
        assert "Webhook:     /hooks/linear" in out
        assert "linearUserUuid (LINEAR_USER_UUID)" in out

    def test_info_unknown(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            manage_plugins.main(["info", "terraform"])

        assert exc_info.value.code == 1
        assert "not a known" in capsys.readouterr().out

    def test_secrets_filtered(self, capsys):
        manage_plugins.main(["secrets", "-p", "slack", "-d", "gh"])

        out = capsys.readouterr().out
        assert "SLACK_BOT_TOKEN" in out
        assert "GITHUB_TOKEN" in out
        assert "LINEAR_API_KEY" not in out

    def test_secrets_unknown_plugin(self):
        with pytest.raises(SystemExit):
            manage_plugins.main(["secrets", "-p", "nope"])
