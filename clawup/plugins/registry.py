"""Built-in plugin registry - manifests for the plugins clawup knows about."""

from types import MappingProxyType
from typing import Mapping

from clawup.plugins.manifest import (
    ConfigPath,
    ConfigTransform,
    PluginHooks,
    PluginManifest,
    PluginSecret,
    SecretInstructions,
    WebhookSetup,
)

_LINEAR_VIEWER_QUERY = (
    'curl -s -X POST https://api.linear.app/graphql '
    '-H "Authorization: $LINEAR_API_KEY" '
    '-H "Content-Type: application/json" '
    '-d \'{"query":"{ viewer { id } }"}\' | jq -r ".data.viewer.id"'
)

PLUGIN_MANIFEST_REGISTRY: Mapping[str, PluginManifest] = MappingProxyType({
    "openclaw-linear": PluginManifest(
        name="openclaw-linear",
        display_name="Linear",
        installable=True,
        needs_funnel=True,
        config_path=ConfigPath.PLUGINS_ENTRIES,
        secrets={
            "apiKey": PluginSecret(
                env_var="LINEAR_API_KEY",
                scope="agent",
                is_secret=True,
                validator="lin_api_",
                instructions=SecretInstructions(
                    title="Linear API Key",
                    steps=[
                        "Create a separate Linear account for each agent (used by openclaw-linear plugin):",
                        "1. Invite you+agentname@domain.com to your Linear workspace",
                        "2. Go to Settings → Security & Access → Personal API keys → \"New API key\"",
                        "3. Copy the key (starts with lin_api_)",
                    ],
                ),
            ),
            "webhookSecret": PluginSecret(
                env_var="LINEAR_WEBHOOK_SECRET",
                scope="agent",
                is_secret=True,
            ),
            "linearUserUuid": PluginSecret(
                env_var="LINEAR_USER_UUID",
                scope="agent",
                is_secret=False,
                required=False,
                auto_resolvable=True,
            ),
        },
        internal_keys=["agentId", "linearUserUuid"],
        webhook_setup=WebhookSetup(
            url_path="/hooks/linear",
            secret_key="webhookSecret",
            instructions=[
                "1. Go to Linear Settings → API → Webhooks → \"New webhook\"",
                "2. Paste the URL above",
                "3. Select events to receive (e.g., Issues, Comments)",
                "4. Create the webhook and copy the \"Signing secret\"",
            ],
            config_json_path="plugins.entries.openclaw-linear.config.webhookSecret",
        ),
        hooks=PluginHooks(resolve={"linearUserUuid": _LINEAR_VIEWER_QUERY}),
    ),
    "slack": PluginManifest(
        name="slack",
        display_name="Slack",
        installable=False,
        config_path=ConfigPath.CHANNELS,
        secrets={
            "botToken": PluginSecret(
                env_var="SLACK_BOT_TOKEN",
                scope="agent",
                is_secret=True,
                validator="xoxb-",
                instructions=SecretInstructions(
                    title="Slack App Setup",
                    steps=[
                        "1. Go to https://api.slack.com/apps → \"Create New App\" → \"From a manifest\"",
                        "2. Select your workspace, paste the JSON manifest, and create the app",
                        "3. Go to \"OAuth & Permissions\" and copy the Bot Token (xoxb-...)",
                        "4. Under \"Basic Information\" → \"App-Level Tokens\", generate a token "
                        "with the connections:write scope and copy it (xapp-...)",
                    ],
                ),
            ),
            "appToken": PluginSecret(
                env_var="SLACK_APP_TOKEN",
                scope="agent",
                is_secret=True,
                validator="xapp-",
            ),
        },
        config_transforms=[
            ConfigTransform(
                source_key="dm",
                target_keys={"policy": "dmPolicy", "allowFrom": "allowFrom"},
                remove_source=True,
            ),
        ],
    ),
})
