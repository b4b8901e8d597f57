"""Plugin manifests, resolution and hook execution.

Imports are lazy so that loading the manifest schema does not pull in the
asyncio hook executor or the YAML identity loader.
"""

__all__ = [
    "PluginManifest",
    "PLUGIN_MANIFEST_REGISTRY",
    "resolve_plugin",
    "resolve_plugins",
    "resolve_plugin_secrets",
    "run_plugin_onboarding",
    "load_identity",
]


def __getattr__(name):
    if name == "PluginManifest":
        from clawup.plugins.manifest import PluginManifest
        return PluginManifest
    if name == "PLUGIN_MANIFEST_REGISTRY":
        from clawup.plugins.registry import PLUGIN_MANIFEST_REGISTRY
        return PLUGIN_MANIFEST_REGISTRY
    if name in ("resolve_plugin", "resolve_plugins"):
        from clawup.plugins import resolver
        return getattr(resolver, name)
    if name == "resolve_plugin_secrets":
        from clawup.plugins.hooks import resolve_plugin_secrets
        return resolve_plugin_secrets
    if name == "run_plugin_onboarding":
        from clawup.plugins.onboarding import run_plugin_onboarding
        return run_plugin_onboarding
    if name == "load_identity":
        from clawup.plugins.identity import load_identity
        return load_identity
    raise AttributeError(f"module 'clawup.plugins' has no attribute {name!r}")
