"""Plugin resolution - override > built-in registry > generic fallback."""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from clawup.plugins.manifest import ConfigPath, PluginManifest, PluginSecret
from clawup.plugins.registry import PLUGIN_MANIFEST_REGISTRY

logger = logging.getLogger(__name__)

Validator = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class PluginSecretRef:
    """A plugin secret tagged with its owning plugin and config key."""

    plugin_name: str
    config_key: str
    secret: PluginSecret


@dataclass(frozen=True)
class KnownSecret:
    label: str
    per_agent: bool
    is_secret: bool


def fallback_manifest(name: str) -> PluginManifest:
    """Manifest for an unknown plugin: installable, configured manually."""
    return PluginManifest(
        name=name,
        display_name=name,
        installable=True,
        needs_funnel=False,
        config_path=ConfigPath.PLUGINS_ENTRIES,
    )


def is_builtin(name: str) -> bool:
    return name in PLUGIN_MANIFEST_REGISTRY


def resolve_plugin(
    name: str,
    overrides: Optional[Mapping[str, PluginManifest]] = None,
) -> PluginManifest:
    """Resolve a single plugin by name.

    Args:
        name: Plugin package name
        overrides: Manifests supplied by an identity bundle; an entry here wins outright

    Returns:
        The override, the built-in manifest, or a generic fallback
    """
    if overrides and name in overrides:
        logger.info(f"Plugin '{name}' resolved from identity override")
        return overrides[name]

    builtin = PLUGIN_MANIFEST_REGISTRY.get(name)
    if builtin is not None:
        return builtin

    logger.warning(f"Plugin '{name}' is not in the registry, using generic fallback manifest")
    return fallback_manifest(name)


def resolve_plugins(
    names: Iterable[str],
    overrides: Optional[Mapping[str, PluginManifest]] = None,
) -> List[PluginManifest]:
    """Batch-resolve plugins, preserving input order."""
    return [resolve_plugin(name, overrides) for name in names]


def collect_plugin_secrets(manifests: Iterable[PluginManifest]) -> List[PluginSecretRef]:
    """Flatten every plugin's secrets into one list."""
    return [
        PluginSecretRef(plugin_name=manifest.name, config_key=key, secret=secret)
        for manifest in manifests
        for key, secret in manifest.secrets.items()
    ]


def is_secret_covered(key: str, manifests: Iterable[PluginManifest]) -> bool:
    """Whether some plugin already declares this secret key."""
    return any(key in manifest.secrets for manifest in manifests)


def format_secret_label(key: str) -> str:
    """apiKey -> Api Key, botToken -> Bot Token."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", key)
    return spaced[:1].upper() + spaced[1:]


def build_known_secrets(manifests: Iterable[PluginManifest]) -> Dict[str, KnownSecret]:
    result = {}
    for manifest in manifests:
        for key, secret in manifest.secrets.items():
            result[key] = KnownSecret(
                label=f"{manifest.display_name} {format_secret_label(key)}",
                per_agent=secret.scope == "agent",
                is_secret=secret.is_secret,
            )
    return result


def prefix_validator(prefix: str) -> Validator:
    def validate(value: str) -> Optional[str]:
        if not value.startswith(prefix):
            return f"Must start with {prefix}"
        return None
    return validate


def build_validators(manifests: Iterable[PluginManifest]) -> Dict[str, Validator]:
    """Prefix validators keyed by secret config key."""
    return {
        key: prefix_validator(secret.validator)
        for manifest in manifests
        for key, secret in manifest.secrets.items()
        if secret.validator
    }


def lookup_secret_value(env: Mapping[str, str], env_var: str, role: Optional[str] = None) -> Optional[str]:
    """Role-prefixed variable (e.g. PM_LINEAR_API_KEY) first, then the bare name."""
    if role:
        value = env.get(f"{role.upper()}_{env_var}")
        if value:
            return value
    return env.get(env_var) or None
