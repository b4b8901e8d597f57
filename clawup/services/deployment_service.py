"""Deployment service - builds requests and runs the render pipeline.

generate script -> interpolate secrets -> check placeholders -> transport envelope
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from clawup.constants import DEFAULT_CODING_AGENT, DEFAULT_MODEL
from clawup.models.requests import DeploymentRequest, IdentityBundle, PluginEntry, ScriptVariant
from clawup.plugins.hooks import resolve_plugin_secrets
from clawup.plugins.manifest import PluginManifest
from clawup.plugins.resolver import lookup_secret_value, resolve_plugin
from clawup.services.config_synthesizer import build_config_commands, synthesize_config
from clawup.services.deps import resolve_deps
from clawup.services.providers import require_provider
from clawup.services.script_assembler import assemble_script, build_profile_env
from clawup.utils.compression import compress_mime, compress_script
from clawup.utils.interpolation import find_unresolved_placeholders, interpolate_script

logger = logging.getLogger(__name__)


@dataclass
class RenderResult:
    variant: ScriptVariant
    config: Dict[str, Any]
    commands: List[Dict[str, Any]]
    script: str  # Interpolated, uncompressed
    envelope: str  # What is handed to the provider: script, bash wrapper, or MIME
    compressed: bool = False
    unresolved_placeholders: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant": self.variant.value,
            "config": self.config,
            "commands": self.commands,
            "script": self.script,
            "envelope": self.envelope,
            "compressed": self.compressed,
            "unresolved_placeholders": self.unresolved_placeholders,
        }


def interpolation_values(request: DeploymentRequest) -> Dict[str, str]:
    """Concrete values for every placeholder the assembler emits."""
    values = {var.name: var.value for var in build_profile_env(request) if var.secret}
    if request.tailscale_auth_key:
        values["TAILSCALE_AUTH_KEY"] = request.tailscale_auth_key
    if request.gateway_token:
        values["GATEWAY_TOKEN"] = request.gateway_token
    return values


def wrap_envelope(script: str, variant: ScriptVariant, compress: bool) -> Tuple[str, bool]:
    """Pick the transport envelope for a variant. Container entrypoints are never compressed."""
    if not compress or variant == ScriptVariant.NIX_DOCKER:
        return script, False
    if variant == ScriptVariant.NIX_VM:
        return compress_mime(script), True
    return compress_script(script), True


def provider_credentials_from_env(
    env: Mapping[str, str],
    models: List[Optional[str]],
    role: Optional[str] = None,
) -> Dict[str, str]:
    """Credentials for the providers of the given models, read from env vars."""
    credentials = {}
    for model in models:
        if not model:
            continue
        spec = require_provider(model)
        value = lookup_secret_value(env, spec.env_var, role)
        if not value and spec.oauth_env_var:
            value = lookup_secret_value(env, spec.oauth_env_var, role)
        if value:
            credentials[spec.key] = value
    return credentials


def plugin_entries_from_env(
    names: List[str],
    env: Mapping[str, str],
    role: Optional[str] = None,
    overrides: Optional[Mapping[str, PluginManifest]] = None,
    defaults: Optional[Mapping[str, Dict[str, Any]]] = None,
    plugin_config: Optional[Mapping[str, Dict[str, Any]]] = None,
) -> List[PluginEntry]:
    """PluginEntry per name with secret values read from env.

    Config precedence: registry default < defaults (identity pluginDefaults) < plugin_config.
    """
    defaults = defaults or {}
    plugin_config = plugin_config or {}
    entries = []
    for name in names:
        manifest = resolve_plugin(name, overrides)
        secrets = {}
        for secret in manifest.secrets.values():
            value = lookup_secret_value(env, secret.env_var, role)
            if value:
                secrets[secret.env_var] = value
        entries.append(PluginEntry(
            name=name,
            manifest=manifest,
            config={**defaults.get(name, {}), **plugin_config.get(name, {})},
            secrets=secrets,
        ))
    return entries


def dep_secrets_from_env(deps: List[str], env: Mapping[str, str], role: Optional[str] = None) -> Dict[str, str]:
    dep_secrets = {}
    for dep in resolve_deps(deps):
        for secret in dep.secrets.values():
            value = lookup_secret_value(env, secret.env_var, role)
            if value:
                dep_secrets[secret.env_var] = value
    return dep_secrets


def build_request_from_identity(
    bundle: IdentityBundle,
    env: Mapping[str, str],
    plugin_config: Optional[Mapping[str, Dict[str, Any]]] = None,
    **overrides: Any,
) -> DeploymentRequest:
    """Turn a loaded identity plus environment secrets into a DeploymentRequest.

    Plugin config precedence: registry default < identity pluginDefaults < plugin_config.

    Args:
        bundle: Loaded identity bundle
        env: Environment to read secrets from (role-prefixed names win)
        plugin_config: Operator config per plugin name
        **overrides: Any DeploymentRequest field, e.g. target or gateway_port
    """
    manifest = bundle.manifest
    role = manifest.role
    model = overrides.pop("model", None) or manifest.model or DEFAULT_MODEL
    backup_model = overrides.pop("backup_model", None) or manifest.backup_model
    coding_agent = overrides.pop("coding_agent", None) or manifest.coding_agent or DEFAULT_CODING_AGENT

    fields: Dict[str, Any] = dict(
        model=model,
        backup_model=backup_model,
        coding_agent=coding_agent,
        provider_api_keys=provider_credentials_from_env(env, [model, backup_model], role),
        gateway_token=env.get("GATEWAY_TOKEN", ""),
        tailscale_auth_key=env.get("TAILSCALE_AUTH_KEY", ""),
        plugins=plugin_entries_from_env(
            manifest.plugins, env, role,
            overrides=bundle.plugin_manifests,
            defaults=manifest.plugin_defaults,
            plugin_config=plugin_config,
        ),
        deps=list(manifest.deps),
        dep_secrets=dep_secrets_from_env(manifest.deps, env, role),
        workspace_files=dict(bundle.files),
        agent_name=manifest.display_name,
        agent_emoji=manifest.emoji,
        clawhub_skills=manifest.clawhub_skills,
    )
    fields.update(overrides)
    return DeploymentRequest(**fields)


async def resolve_request_secrets(
    request: DeploymentRequest,
    env: Mapping[str, str],
) -> Tuple[DeploymentRequest, List[str]]:
    """Run resolve hooks for plugins whose auto-resolvable secrets are still missing.

    Returns:
        (request with resolved values filled in, error messages of failed plugins)
    """
    entries = []
    errors = []
    for entry in request.plugins:
        hooks = entry.manifest.hooks
        pending = [
            key for key in (hooks.resolve if hooks else {})
            if not entry.secret_value(key)
        ]
        if not pending:
            entries.append(entry)
            continue

        result = await resolve_plugin_secrets(entry.manifest, {**env, **entry.secrets})
        if not result.ok:
            errors.append(f"{entry.name}: {result.error}")
            entries.append(entry)
            continue
        # Values the operator supplied win over hook output
        entries.append(entry.model_copy(update={"secrets": {**result.values, **entry.secrets}}))

    return request.model_copy(update={"plugins": entries}), errors


class DeploymentService:
    """Renders configs and bootstrap scripts for deployment requests."""

    def render_config(self, request: DeploymentRequest) -> Dict[str, Any]:
        commands = build_config_commands(request)
        return {
            "config": synthesize_config(request),
            "commands": [c.to_dict() for c in commands],
        }

    def render(self, request: DeploymentRequest, variant: ScriptVariant = ScriptVariant.NIX_VM) -> RenderResult:
        """Full pipeline. Configuration errors propagate before any text is produced."""
        variant = ScriptVariant(variant)
        config = synthesize_config(request)
        commands = [c.to_dict() for c in build_config_commands(request)]

        raw = assemble_script(request, variant)
        script = interpolate_script(raw, interpolation_values(request))

        unresolved = find_unresolved_placeholders(script)
        if unresolved:
            logger.warning(f"Unresolved placeholders left in {variant.value} script: {unresolved}")

        envelope, compressed = wrap_envelope(script, variant, request.compress)
        logger.info(
            f"Rendered {variant.value} script: {len(script)} bytes, envelope {len(envelope)} bytes"
            f"{' (compressed)' if compressed else ''}"
        )
        return RenderResult(
            variant=variant,
            config=config,
            commands=commands,
            script=script,
            envelope=envelope,
            compressed=compressed,
            unresolved_placeholders=unresolved,
        )
