"""Tests for the render pipeline and request builders."""

import asyncio
import base64
import gzip
from unittest.mock import AsyncMock, patch

import pytest

from clawup.errors import UnknownProviderError
from clawup.models.requests import DeploymentRequest, IdentityBundle, IdentityManifest, PluginEntry, ScriptVariant
from clawup.plugins.hooks import ResolvedSecrets
from clawup.plugins.manifest import PluginManifest
from clawup.services.deployment_service import (
    DeploymentService,
    build_request_from_identity,
    dep_secrets_from_env,
    interpolation_values,
    plugin_entries_from_env,
    provider_credentials_from_env,
    resolve_request_secrets,
    wrap_envelope,
)


def make_request(**kwargs) -> DeploymentRequest:
    data = {
        "provider_api_keys": {"anthropic": "sk-ant-api03-XXXX"},
        "gateway_token": "gw-token",
        "tailscale_auth_key": "tskey-auth-1",
    }
    data.update(kwargs)
    return DeploymentRequest(**data)


def make_bundle(**kwargs) -> IdentityBundle:
    manifest = {
        "name": "juno", "displayName": "Juno", "role": "pm", "emoji": "owl",
        "description": "PM", "volumeSize": 30, "plugins": ["slack"], "deps": ["gh"],
        "pluginDefaults": {"slack": {"dm": {"policy": "allowlist"}, "mode": "socket"}},
        "skills": ["clawhub:weather", "local-skill"],
    }
    manifest.update(kwargs)
    return IdentityBundle(manifest=IdentityManifest.model_validate(manifest), files={"SOUL.md": "soul"})


class TestInterpolationValues:
    """Placeholder values come from secret profile vars plus two infra secrets."""

    def test_values(self):
        request = make_request(
            plugins=[PluginEntry(name="slack", secrets={"SLACK_BOT_TOKEN": "xoxb-1"})],
            env_vars={"PLAIN": "visible"},
        )

        values = interpolation_values(request)

        assert values["ANTHROPIC_API_KEY"] == "sk-ant-api03-XXXX"
        assert values["SLACK_BOT_TOKEN"] == "xoxb-1"
        assert values["TAILSCALE_AUTH_KEY"] == "tskey-auth-1"
        assert values["GATEWAY_TOKEN"] == "gw-token"
        assert "PLAIN" not in values

    def test_empty_infra_secrets_are_omitted(self):
        values = interpolation_values(make_request(gateway_token="", tailscale_auth_key=""))

        assert "TAILSCALE_AUTH_KEY" not in values
        assert "GATEWAY_TOKEN" not in values


class TestWrapEnvelope:
    """Envelope choice per variant."""

    def test_uncompressed(self):
        assert wrap_envelope("#!/bin/bash\n", ScriptVariant.NIX_VM, False) == ("#!/bin/bash\n", False)

    def test_vm_uses_mime(self):
        envelope, compressed = wrap_envelope("#!/bin/bash\n", ScriptVariant.NIX_VM, True)

        assert compressed
        assert envelope.startswith("Content-Type: multipart/mixed")

    def test_full_uses_bash_wrapper(self):
        envelope, compressed = wrap_envelope("#!/bin/bash\n", ScriptVariant.FULL, True)

        assert compressed
        assert envelope.startswith("#!/bin/bash\nbase64 -d")

    def test_docker_never_compressed(self):
        assert wrap_envelope("x", ScriptVariant.NIX_DOCKER, True) == ("x", False)


class TestRender:
    """End-to-end pipeline through DeploymentService.render."""

    def test_secrets_are_interpolated(self):
        request = make_request(plugins=[PluginEntry(name="slack", secrets={"SLACK_BOT_TOKEN": "xoxb-1"})])

        result = DeploymentService().render(request, ScriptVariant.NIX_VM)

        assert 'export ANTHROPIC_API_KEY="sk-ant-api03-XXXX"' in result.script
        assert '[ -n "xoxb-1" ] && export SLACK_BOT_TOKEN="xoxb-1"' in result.script
        assert 'tailscale up --authkey="tskey-auth-1"' in result.script
        assert result.unresolved_placeholders == []
        assert result.envelope == result.script
        assert not result.compressed

    def test_missing_tailscale_key_is_reported(self):
        result = DeploymentService().render(make_request(tailscale_auth_key=""), ScriptVariant.NIX_VM)

        assert result.unresolved_placeholders == ["TAILSCALE_AUTH_KEY"]

    def test_compressed_full_script(self):
        request = make_request(compress=True, skip_tailscale=True)

        result = DeploymentService().render(request, "full")

        assert result.variant == ScriptVariant.FULL
        assert result.compressed
        payload = result.envelope.splitlines()[2]
        assert gzip.decompress(base64.b64decode(payload)).decode("utf-8") == result.script

    def test_config_matches_synthesizer(self):
        result = DeploymentService().render(make_request(), ScriptVariant.NIX_DOCKER)

        assert result.config["gateway"]["port"] == 18789
        assert {c["type"] for c in result.commands} <= {"config_set", "models_set"}

        as_dict = result.to_dict()
        assert as_dict["variant"] == "nix-docker"
        assert set(as_dict) == {
            "variant", "config", "commands", "script", "envelope", "compressed", "unresolved_placeholders",
        }

    def test_unknown_provider_fails_before_output(self):
        with pytest.raises(UnknownProviderError):
            DeploymentService().render(make_request(model="mistral/large"))

    def test_render_config(self):
        rendered = DeploymentService().render_config(make_request())

        assert set(rendered) == {"config", "commands"}
        assert rendered["config"]["gateway"]["mode"] == "local"


class TestEnvBuilders:
    """Requests assembled from environment variables."""

    def test_provider_credentials(self):
        env = {"ANTHROPIC_API_KEY": "sk-ant-1", "PM_OPENAI_API_KEY": "sk-pm"}

        creds = provider_credentials_from_env(env, ["anthropic/x", "openai/gpt-5", None], role="pm")

        assert creds == {"anthropic": "sk-ant-1", "openai": "sk-pm"}

    def test_anthropic_oauth_token_fallback(self):
        env = {"CLAUDE_CODE_OAUTH_TOKEN": "sk-ant-oat-1"}

        assert provider_credentials_from_env(env, ["anthropic/x"]) == {"anthropic": "sk-ant-oat-1"}

    def test_plugin_entries_config_precedence(self):
        entries = plugin_entries_from_env(
            ["slack"],
            {"SLACK_BOT_TOKEN": "xoxb-1", "SLACK_APP_TOKEN": ""},
            defaults={"slack": {"mode": "socket", "dm": {"policy": "open"}}},
            plugin_config={"slack": {"dm": {"policy": "allowlist"}}},
        )

        assert entries[0].secrets == {"SLACK_BOT_TOKEN": "xoxb-1"}
        assert entries[0].config == {"mode": "socket", "dm": {"policy": "allowlist"}}

    def test_dep_secrets(self):
        env = {"ENG_GITHUB_TOKEN": "ghp-eng", "BRAVE_API_KEY": "brave"}

        assert dep_secrets_from_env(["gh", "brave-search"], env, role="eng") == {
            "GITHUB_TOKEN": "ghp-eng",
            "BRAVE_API_KEY": "brave",
        }


class TestBuildFromIdentity:
    """Identity bundle plus environment to DeploymentRequest."""

    ENV = {
        "ANTHROPIC_API_KEY": "sk-ant-1",
        "PM_SLACK_BOT_TOKEN": "xoxb-pm",
        "SLACK_BOT_TOKEN": "xoxb-shared",
        "GITHUB_TOKEN": "ghp-1",
        "GATEWAY_TOKEN": "gw",
    }

    def test_fields(self):
        request = build_request_from_identity(make_bundle(), self.ENV)

        assert request.agent_name == "Juno"
        assert request.agent_emoji == "owl"
        assert request.workspace_files == {"SOUL.md": "soul"}
        assert request.clawhub_skills == ["weather"]
        assert request.deps == ["gh"]
        assert request.dep_secrets == {"GITHUB_TOKEN": "ghp-1"}
        assert request.gateway_token == "gw"
        assert request.provider_api_keys == {"anthropic": "sk-ant-1"}

    def test_role_prefixed_secret_wins(self):
        request = build_request_from_identity(make_bundle(), self.ENV)

        assert request.plugins[0].secrets["SLACK_BOT_TOKEN"] == "xoxb-pm"

    def test_operator_config_overrides_identity_defaults(self):
        request = build_request_from_identity(
            make_bundle(), self.ENV, plugin_config={"slack": {"dm": {"policy": "open"}}},
        )

        assert request.plugins[0].config == {"dm": {"policy": "open"}, "mode": "socket"}

    def test_model_precedence(self):
        bundle = make_bundle(model="openai/gpt-5")
        env = {**self.ENV, "OPENAI_API_KEY": "sk-openai"}

        assert build_request_from_identity(bundle, env).model == "openai/gpt-5"
        request = build_request_from_identity(bundle, env, model="anthropic/claude-sonnet-4-5", target="aws")
        assert request.model == "anthropic/claude-sonnet-4-5"
        assert request.target == "aws"

    def test_plugin_override_manifest_is_used(self):
        override = PluginManifest(name="slack", display_name="Team Slack", installable=False, config_path="channels")
        bundle = make_bundle().model_copy(update={"plugin_manifests": {"slack": override}})

        request = build_request_from_identity(bundle, self.ENV)

        assert request.plugins[0].manifest.display_name == "Team Slack"
        assert request.plugins[0].secrets == {}


class TestResolveRequestSecrets:
    """Resolve hooks run only for plugins with missing auto-resolvable values."""

    LINEAR_SECRETS = {"LINEAR_API_KEY": "lin_api_1", "LINEAR_WEBHOOK_SECRET": "whsec"}

    def test_resolved_values_are_merged(self):
        request = make_request(plugins=[PluginEntry(name="openclaw-linear", secrets=self.LINEAR_SECRETS)])
        resolved = ResolvedSecrets(ok=True, values={"LINEAR_USER_UUID": "uuid-1"})

        with patch(
            "clawup.services.deployment_service.resolve_plugin_secrets",
            new=AsyncMock(return_value=resolved),
        ) as mock_resolve:
            updated, errors = asyncio.run(resolve_request_secrets(request, {"HOME": "/root"}))

        assert errors == []
        assert updated.plugins[0].secrets["LINEAR_USER_UUID"] == "uuid-1"
        hook_env = mock_resolve.call_args.args[1]
        assert hook_env["LINEAR_API_KEY"] == "lin_api_1"
        assert hook_env["HOME"] == "/root"

    def test_supplied_values_win_over_hook_output(self):
        """A hook that echoes back a different API key cannot replace the operator's."""
        request = make_request(plugins=[PluginEntry(name="openclaw-linear", secrets=self.LINEAR_SECRETS)])
        resolved = ResolvedSecrets(ok=True, values={"LINEAR_API_KEY": "other", "LINEAR_USER_UUID": "uuid-1"})

        with patch(
            "clawup.services.deployment_service.resolve_plugin_secrets",
            new=AsyncMock(return_value=resolved),
        ):
            updated, errors = asyncio.run(resolve_request_secrets(request, {}))

        assert errors == []
        assert updated.plugins[0].secrets == {**self.LINEAR_SECRETS, "LINEAR_USER_UUID": "uuid-1"}

    def test_already_present_values_skip_hooks(self):
        secrets = {**self.LINEAR_SECRETS, "LINEAR_USER_UUID": "known"}
        request = make_request(plugins=[
            PluginEntry(name="openclaw-linear", secrets=secrets),
            PluginEntry(name="slack"),
        ])

        with patch("clawup.services.deployment_service.resolve_plugin_secrets", new=AsyncMock()) as mock_resolve:
            updated, errors = asyncio.run(resolve_request_secrets(request, {}))

        mock_resolve.assert_not_called()
        assert updated == request
        assert errors == []

    def test_failures_are_collected(self):
        request = make_request(plugins=[PluginEntry(name="openclaw-linear", secrets=self.LINEAR_SECRETS)])
        failed = ResolvedSecrets(ok=False, error="boom")

        with patch(
            "clawup.services.deployment_service.resolve_plugin_secrets",
            new=AsyncMock(return_value=failed),
        ):
            updated, errors = asyncio.run(resolve_request_secrets(request, {}))

        assert errors == ["openclaw-linear: boom"]
        assert "LINEAR_USER_UUID" not in updated.plugins[0].secrets
