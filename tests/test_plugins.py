"""Tests for plugin manifests, the built-in registry and plugin resolution."""

import pytest
from pydantic import ValidationError

from clawup.models.requests import PluginEntry
from clawup.plugins.manifest import ConfigPath, PluginHooks, PluginManifest
from clawup.plugins.registry import PLUGIN_MANIFEST_REGISTRY
from clawup.plugins.resolver import (
    build_known_secrets,
    build_validators,
    collect_plugin_secrets,
    format_secret_label,
    is_builtin,
    is_secret_covered,
    lookup_secret_value,
    resolve_plugin,
    resolve_plugins,
)


def manifest_data(**kwargs) -> dict:
    data = {
        "name": "demo",
        "displayName": "Demo",
        "installable": True,
        "secrets": {
            "apiKey": {"envVar": "DEMO_API_KEY", "scope": "agent", "isSecret": True},
            "userId": {"envVar": "DEMO_USER_ID", "scope": "agent", "isSecret": False, "autoResolvable": True},
        },
    }
    data.update(kwargs)
    return data


class TestManifestValidation:
    """Construction-time invariants of PluginManifest."""

    def test_camel_case_input(self):
        manifest = PluginManifest.model_validate(manifest_data())

        assert manifest.display_name == "Demo"
        assert manifest.secrets["userId"].auto_resolvable
        assert manifest.config_path == ConfigPath.PLUGINS_ENTRIES
        assert manifest.secret_env_vars() == {"apiKey": "DEMO_API_KEY", "userId": "DEMO_USER_ID"}

    def test_webhook_secret_must_exist(self):
        data = manifest_data(webhookSetup={
            "urlPath": "/hooks/demo",
            "secretKey": "signingSecret",
            "configJsonPath": "plugins.entries.demo.config.signingSecret",
        })

        with pytest.raises(ValidationError, match="signingSecret"):
            PluginManifest.model_validate(data)

    def test_resolve_key_must_exist(self):
        with pytest.raises(ValidationError, match="does not exist in secrets"):
            PluginManifest.model_validate(manifest_data(hooks={"resolve": {"teamId": "echo t"}}))

    def test_resolve_key_must_be_auto_resolvable(self):
        with pytest.raises(ValidationError, match="not autoResolvable"):
            PluginManifest.model_validate(manifest_data(hooks={"resolve": {"apiKey": "echo k"}}))

    def test_valid_resolve_hook(self):
        manifest = PluginManifest.model_validate(manifest_data(hooks={"resolve": {"userId": "echo u"}}))

        assert manifest.hooks.resolve == {"userId": "echo u"}

    @pytest.mark.parametrize("hooks", [
        {"resolve": {"userId": "   "}},
        {"postProvision": ""},
        {"preStart": "  \n"},
        {"onboard": {"description": "setup", "script": ""}},
    ])
    def test_empty_hook_scripts_rejected(self, hooks):
        with pytest.raises(ValidationError):
            PluginManifest.model_validate(manifest_data(hooks=hooks))

    def test_scope_is_restricted(self):
        data = manifest_data(secrets={"k": {"envVar": "K", "scope": "team", "isSecret": True}})

        with pytest.raises(ValidationError):
            PluginManifest.model_validate(data)

    def test_manifests_are_frozen(self):
        manifest = PluginManifest.model_validate(manifest_data())

        with pytest.raises(ValidationError):
            manifest.installable = False

    def test_dump_by_alias_round_trips(self):
        manifest = PLUGIN_MANIFEST_REGISTRY["openclaw-linear"]
        dumped = manifest.model_dump(mode="json", by_alias=True)

        assert dumped["webhookSetup"]["secretKey"] == "webhookSecret"
        assert PluginManifest.model_validate(dumped) == manifest


class TestBuiltinRegistry:
    """Tests for the built-in plugin manifests."""

    def test_linear(self):
        linear = PLUGIN_MANIFEST_REGISTRY["openclaw-linear"]

        assert linear.installable and linear.needs_funnel
        assert linear.internal_keys == ["agentId", "linearUserUuid"]
        assert linear.webhook_setup.url_path == "/hooks/linear"
        assert list(linear.hooks.resolve) == ["linearUserUuid"]

    def test_slack(self):
        slack = PLUGIN_MANIFEST_REGISTRY["slack"]

        assert slack.is_channel
        assert not slack.installable
        assert slack.secrets["botToken"].validator == "xoxb-"
        assert slack.config_transforms[0].target_keys == {"policy": "dmPolicy", "allowFrom": "allowFrom"}


class TestResolution:
    """override > built-in > fallback."""

    def test_override_wins(self):
        override = PluginManifest.model_validate(manifest_data(name="slack", displayName="Custom Slack"))

        assert resolve_plugin("slack", {"slack": override}).display_name == "Custom Slack"

    def test_builtin(self):
        assert resolve_plugin("slack") is PLUGIN_MANIFEST_REGISTRY["slack"]
        assert is_builtin("slack")

    def test_fallback(self):
        manifest = resolve_plugin("openclaw-notion")

        assert manifest.name == "openclaw-notion"
        assert manifest.installable
        assert manifest.secrets == {}
        assert manifest.config_path == ConfigPath.PLUGINS_ENTRIES
        assert manifest.internal_keys == []
        assert not is_builtin("openclaw-notion")

    def test_batch_preserves_order(self):
        names = ["slack", "openclaw-notion", "openclaw-linear"]

        assert [m.name for m in resolve_plugins(names)] == names

    def test_collect_secrets(self):
        refs = collect_plugin_secrets(resolve_plugins(["openclaw-linear", "slack"]))

        assert [(r.plugin_name, r.config_key) for r in refs] == [
            ("openclaw-linear", "apiKey"),
            ("openclaw-linear", "webhookSecret"),
            ("openclaw-linear", "linearUserUuid"),
            ("slack", "botToken"),
            ("slack", "appToken"),
        ]

    def test_is_secret_covered(self):
        manifests = resolve_plugins(["slack"])

        assert is_secret_covered("botToken", manifests)
        assert not is_secret_covered("apiKey", manifests)


class TestKnownSecrets:
    """Labels and validators for secret prompts."""

    def test_format_label(self):
        assert format_secret_label("apiKey") == "Api Key"
        assert format_secret_label("botToken") == "Bot Token"
        assert format_secret_label("linearUserUuid") == "Linear User Uuid"

    def test_build_known_secrets(self):
        known = build_known_secrets(resolve_plugins(["slack", "openclaw-linear"]))

        assert known["botToken"].label == "Slack Bot Token"
        assert known["botToken"].per_agent
        assert not known["linearUserUuid"].is_secret

    def test_build_validators(self):
        validators = build_validators(resolve_plugins(["slack", "openclaw-linear"]))

        assert set(validators) == {"botToken", "appToken", "apiKey"}
        assert validators["botToken"]("xoxb-1") is None
        assert validators["botToken"]("xapp-1") == "Must start with xoxb-"

    def test_lookup_prefers_role_prefix(self):
        env = {"PM_SLACK_BOT_TOKEN": "xoxb-pm", "SLACK_BOT_TOKEN": "xoxb-shared", "EMPTY": ""}

        assert lookup_secret_value(env, "SLACK_BOT_TOKEN", "pm") == "xoxb-pm"
        assert lookup_secret_value(env, "SLACK_BOT_TOKEN", "eng") == "xoxb-shared"
        assert lookup_secret_value(env, "SLACK_BOT_TOKEN") == "xoxb-shared"
        assert lookup_secret_value(env, "EMPTY") is None
        assert lookup_secret_value(env, "MISSING") is None


class TestPluginEntry:
    """Tests for the deployed plugin value type."""

    def test_manifest_is_resolved_from_name(self):
        entry = PluginEntry(name="slack")

        assert entry.manifest == PLUGIN_MANIFEST_REGISTRY["slack"]

    def test_manifest_name_must_match(self):
        with pytest.raises(ValidationError, match="does not match"):
            PluginEntry(name="other", manifest=PLUGIN_MANIFEST_REGISTRY["slack"])

    def test_secret_value(self):
        entry = PluginEntry(name="slack", secrets={"SLACK_BOT_TOKEN": "xoxb-1", "SLACK_APP_TOKEN": ""})

        assert entry.secret_value("botToken") == "xoxb-1"
        assert entry.secret_value("appToken") is None
        assert entry.secret_value("unknown") is None

    def test_secrets_hidden_from_repr(self):
        entry = PluginEntry(name="slack", secrets={"SLACK_BOT_TOKEN": "xoxb-hidden"})

        assert "xoxb-hidden" not in repr(entry)

    def test_hooks_model(self):
        hooks = PluginHooks(post_provision="echo hi")

        assert hooks.pre_start is None
        assert hooks.resolve == {}
