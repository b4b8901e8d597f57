"""Config synthesizer - turns a DeploymentRequest into openclaw config.

The single representation is an ordered list of ConfigSetCommand records.
The JSON document (openclaw.json) is derived by applying that list to a base
document, and the shell-side apply loop is derived by rendering the same list,
so both paths always agree.
"""

import copy
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from clawup.constants import (
    ACK_REACTION,
    ACP_DEFAULT_AGENT,
    CLI_BACKEND_KEY,
    HEARTBEAT,
    OPENROUTER_BASE_URL,
)
from clawup.models.requests import DeploymentRequest, PluginEntry
from clawup.services.coding_agents import CodingAgentSpec, get_coding_agent
from clawup.services.providers import ModelProviderSpec, provider_env, require_provider
from clawup.utils.shell import shell_quote, single_quote_body

logger = logging.getLogger(__name__)

CONFIG_SET = "config_set"
MODELS_SET = "models_set"

MODEL_KEY = "agents.defaults.model"


@dataclass(frozen=True)
class ConfigSetCommand:
    """One idempotent `openclaw config set` (or `models set`) operation."""

    key: str  # Dotted config path, e.g. gateway.auth
    value: Any
    comment: Optional[str] = None
    type: str = CONFIG_SET

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type, "key": self.key, "value": self.value}
        if self.comment:
            data["comment"] = self.comment
        return data


# ============================================================================
# Provider credentials
# ============================================================================

def _credential_comment(spec: ModelProviderSpec, env_var: str, prefix: str = "") -> str:
    if env_var == spec.oauth_env_var:
        return f"{prefix}{spec.name} OAuth token (subscription)"
    return f"{prefix}{spec.name} API key"


def _provider_commands(request: DeploymentRequest, primary: ModelProviderSpec) -> List[ConfigSetCommand]:
    cmds = []
    credentials = request.provider_api_keys

    primary_env = provider_env(primary, credentials)
    if not primary_env:
        logger.warning(f"No credential for primary provider '{primary.key}', env key omitted")
    for env_var, value in primary_env.items():
        cmds.append(ConfigSetCommand(f"env.{env_var}", value, _credential_comment(primary, env_var)))

    if request.backup_model:
        backup = require_provider(request.backup_model)
        if backup.key != primary.key:
            backup_env = provider_env(backup, credentials)
            if not backup_env:
                logger.warning(f"No credential for backup provider '{backup.key}', env key omitted")
            for env_var, value in backup_env.items():
                cmds.append(ConfigSetCommand(
                    f"env.{env_var}", value, _credential_comment(backup, env_var, prefix="Backup: "),
                ))

    return cmds


def needs_openrouter_alias(agent: Optional[CodingAgentSpec], provider_key: str) -> bool:
    """OpenAI-compatible coding CLIs reach OpenRouter through the OpenAI env vars."""
    return agent is not None and agent.openai_compatible and provider_key == "openrouter"


def _alias_commands(request: DeploymentRequest, agent: Optional[CodingAgentSpec],
                    primary: ModelProviderSpec) -> List[ConfigSetCommand]:
    if not needs_openrouter_alias(agent, primary.key):
        return []
    credential = request.provider_api_keys.get("openrouter")
    if not credential:
        return []
    return [
        ConfigSetCommand(
            "env.OPENAI_API_KEY", credential,
            f"Aliased OPENROUTER_API_KEY -> OPENAI_API_KEY for {agent.display_name}",
        ),
        ConfigSetCommand("env.OPENAI_BASE_URL", OPENROUTER_BASE_URL, f"OpenRouter base URL for {agent.display_name}"),
    ]


def _model_command(request: DeploymentRequest) -> ConfigSetCommand:
    if request.backup_model:
        return ConfigSetCommand(
            MODEL_KEY,
            {"primary": request.model, "fallbacks": [request.backup_model]},
            f"Model: {request.model} (fallback: {request.backup_model})",
        )
    return ConfigSetCommand(MODEL_KEY, request.model, f"Model: {request.model}", type=MODELS_SET)


def _cli_backend_command(agent: Optional[CodingAgentSpec], agent_name: str) -> ConfigSetCommand:
    backends = {CLI_BACKEND_KEY: agent.cli_backend.to_config()} if agent else {}
    return ConfigSetCommand("agents.defaults.cliBackends", backends, f"CLI backend: {agent_name}")


# ============================================================================
# Plugins
# ============================================================================

def effective_plugin_config(entry: PluginEntry) -> Dict[str, Any]:
    """Registry default config overlaid by the entry's own config."""
    return {**(entry.manifest.default_config or {}), **entry.config}


def build_plugin_commands(entry: PluginEntry) -> List[ConfigSetCommand]:
    """Config commands for one plugin, routed by its config path.

    Internal keys are dropped from both secrets and config. Secrets without a
    resolved value are omitted.
    """
    manifest = entry.manifest
    internal = set(manifest.internal_keys)
    config = effective_plugin_config(entry)
    cmds = []

    if manifest.is_channel:
        base = f"channels.{manifest.name}"
        transforms = {t.source_key: t for t in manifest.config_transforms}

        for config_key in manifest.secrets:
            if config_key in internal:
                continue
            value = entry.secret_value(config_key)
            if value is not None:
                cmds.append(ConfigSetCommand(
                    f"{base}.{config_key}", value, f"{manifest.name} channel secret: {config_key}",
                ))

        for key, value in config.items():
            if key in internal:
                continue
            transform = transforms.get(key)
            if transform is not None and isinstance(value, dict):
                for nested_key, target_key in transform.target_keys.items():
                    if nested_key in value:
                        cmds.append(ConfigSetCommand(f"{base}.{target_key}", value[nested_key]))
                if transform.remove_source:
                    continue
            cmds.append(ConfigSetCommand(f"{base}.{key}", value))

        cmds.append(ConfigSetCommand(f"{base}.enabled", entry.enabled))
        # Channel plugins are mirrored as an entries stub so the plugin system sees them
        cmds.append(ConfigSetCommand(f"plugins.entries.{manifest.name}.enabled", entry.enabled))
        return cmds

    base = f"plugins.entries.{manifest.name}"
    cmds.append(ConfigSetCommand(f"{base}.enabled", entry.enabled, f"Configure {manifest.name} plugin"))
    for config_key in manifest.secrets:
        if config_key in internal:
            continue
        value = entry.secret_value(config_key)
        if value is not None:
            cmds.append(ConfigSetCommand(f"{base}.config.{config_key}", value))
    for key, value in config.items():
        if key in internal:
            continue
        cmds.append(ConfigSetCommand(f"{base}.config.{key}", value))
    return cmds


def _identity_commands(request: DeploymentRequest) -> List[ConfigSetCommand]:
    if not request.agent_name:
        return []

    identity = {"name": request.agent_name}
    if request.agent_emoji:
        identity["emoji"] = request.agent_emoji
    cmds = [ConfigSetCommand(
        "agents.list", [{"id": "default", "identity": identity}], f"Agent identity: {request.agent_name}",
    )]

    if any(e.name == "slack" and e.manifest.is_channel for e in request.plugins):
        cmds.append(ConfigSetCommand("channels.slack.allowBots", True, "Allow bots in Slack"))

    cmds.append(ConfigSetCommand("messages.ackReaction", ACK_REACTION, "Ack reaction emoji"))
    return cmds


# ============================================================================
# Public API
# ============================================================================

def build_config_commands(request: DeploymentRequest) -> List[ConfigSetCommand]:
    """Ordered config operations for a deployment.

    Raises:
        UnknownProviderError: model or backup model names an unknown provider
    """
    primary = require_provider(request.model)
    agent = get_coding_agent(request.coding_agent)

    cmds = [
        ConfigSetCommand("gateway.auth", {"mode": "token", "token": request.gateway_token}, "Gateway auth token"),
        ConfigSetCommand("gateway.trustedProxies", list(request.trusted_proxies), "Trusted proxies"),
        ConfigSetCommand("gateway.controlUi", {"enabled": True, "allowInsecureAuth": True}, "Control UI"),
    ]
    cmds.extend(_provider_commands(request, primary))
    cmds.extend(_alias_commands(request, agent, primary))
    cmds.append(ConfigSetCommand("agents.defaults.heartbeat", dict(HEARTBEAT), "Heartbeat config"))
    cmds.append(_model_command(request))
    cmds.append(_cli_backend_command(agent, request.coding_agent))
    cmds.append(ConfigSetCommand("acp.defaultAgent", ACP_DEFAULT_AGENT, "ACP default agent"))

    for entry in request.plugins:
        cmds.extend(build_plugin_commands(entry))

    cmds.extend(_identity_commands(request))

    search_key = request.web_search_key
    if search_key:
        cmds.append(ConfigSetCommand(
            "tools.web.search", {"provider": "brave", "apiKey": search_key}, "Brave Search API",
        ))

    logger.info(f"Built {len(cmds)} config commands for model {request.model}")
    return cmds


def base_config(gateway_port: int) -> Dict[str, Any]:
    return {"gateway": {"port": gateway_port, "mode": "local"}}


def set_path(document: Dict[str, Any], dotted_key: str, value: Any):
    """Set a dotted path, creating (or replacing non-object) intermediates."""
    parts = dotted_key.split(".")
    node = document
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = copy.deepcopy(value)


def apply_config_commands(
    commands: Iterable[ConfigSetCommand],
    existing: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Apply commands to a copy of an existing config (or an empty one).

    Applying the same commands twice yields the same document.
    """
    document = copy.deepcopy(existing) if existing else {}
    for command in commands:
        set_path(document, command.key, command.value)
    return document


def synthesize_config(request: DeploymentRequest) -> Dict[str, Any]:
    """Complete openclaw.json for a deployment."""
    return apply_config_commands(build_config_commands(request), base_config(request.gateway_port))


def render_config_commands(commands: Iterable[ConfigSetCommand]) -> List[str]:
    """Shell lines applying the commands with the openclaw CLI."""
    lines = []
    for command in commands:
        if command.comment:
            lines.append(f"# {command.comment}")
        if command.type == MODELS_SET:
            lines.append(f"openclaw models set {single_quote_body(str(command.value))}")
        else:
            payload = json.dumps(command.value, ensure_ascii=False)
            lines.append(f"openclaw config set {shell_quote(command.key)} {single_quote_body(payload)}")
    return lines
