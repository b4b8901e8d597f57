"""One-time plugin onboarding - input collection and onboard hook orchestration."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from clawup.constants import LIFECYCLE_HOOK_TIMEOUT_MS
from clawup.plugins.hooks import run_onboard_hook
from clawup.plugins.manifest import OnboardInput, PluginManifest
from clawup.plugins.resolver import lookup_secret_value
from clawup.utils.redact import redact_secrets

logger = logging.getLogger(__name__)

InputValidator = Callable[[str], Optional[str]]
# (input key, input spec, validator) -> entered value, or None when the operator cancels
PromptFn = Callable[[str, OnboardInput, InputValidator], Optional[str]]


@dataclass(frozen=True)
class OnboardOutcome:
    plugin: str
    ok: bool
    skipped: bool = False
    instructions: str = ""  # Already redacted
    error: Optional[str] = None


def should_skip_onboard(
    manifest: PluginManifest,
    env: Mapping[str, str],
    role: Optional[str] = None,
) -> bool:
    """runOnce hooks are skipped once every required secret has a value.

    A manifest with no required secrets never counts as configured.
    """
    hook = manifest.hooks.onboard if manifest.hooks else None
    if hook is None or not hook.run_once:
        return False
    required = [s for s in manifest.secrets.values() if s.required]
    return bool(required) and all(lookup_secret_value(env, s.env_var, role) for s in required)


def validate_input(input_key: str, value: str, spec: OnboardInput) -> Optional[str]:
    """Error message for an invalid input value, None when it is acceptable."""
    if not value:
        return f"{input_key} is required"
    if spec.validator and not value.startswith(spec.validator):
        return f'{input_key} must start with "{spec.validator}"'
    return None


async def run_plugin_onboarding(
    manifest: PluginManifest,
    env: Mapping[str, str],
    prompt: Optional[PromptFn] = None,
    role: Optional[str] = None,
    timeout_ms: int = LIFECYCLE_HOOK_TIMEOUT_MS,
) -> OnboardOutcome:
    """Collect inputs and run a plugin's onboard hook.

    Inputs are read from env first (role-prefixed, then bare); anything missing
    is requested through prompt. Follow-up instructions are redacted before
    they are returned.
    """
    hook = manifest.hooks.onboard if manifest.hooks else None
    if hook is None:
        return OnboardOutcome(plugin=manifest.name, ok=True, skipped=True)

    if should_skip_onboard(manifest, env, role):
        logger.info(f"Onboard hook for {manifest.name}: skipped (already configured)")
        return OnboardOutcome(plugin=manifest.name, ok=True, skipped=True)

    logger.info(f"Running onboard hook for {manifest.name}: {hook.description}")

    hook_env: Dict[str, str] = {}
    for secret in manifest.secrets.values():
        value = lookup_secret_value(env, secret.env_var, role)
        if value:
            hook_env[secret.env_var] = value

    for input_key, spec in hook.inputs.items():
        value = lookup_secret_value(env, spec.env_var, role)
        if not value:
            if prompt is None:
                return OnboardOutcome(
                    plugin=manifest.name, ok=False,
                    error=f"{input_key} is required (set {spec.env_var})",
                )
            value = prompt(input_key, spec, lambda v, k=input_key, s=spec: validate_input(k, v, s))
            if value is None:
                return OnboardOutcome(plugin=manifest.name, ok=False, error="Onboard cancelled by user.")
        error = validate_input(input_key, value, spec)
        if error:
            return OnboardOutcome(plugin=manifest.name, ok=False, error=error)
        hook_env[spec.env_var] = value

    result = await run_onboard_hook(hook.script, hook_env, timeout_ms=timeout_ms)
    if not result.ok:
        logger.error(f"Onboard hook for {manifest.name} failed: {result.error}")
        return OnboardOutcome(plugin=manifest.name, ok=False, error=result.error)

    return OnboardOutcome(plugin=manifest.name, ok=True, instructions=redact_secrets(result.instructions))
