"""Subcommand implementations for the clawup CLI.

Status and tables go to stderr so that `clawup render > bootstrap.sh` stays clean.
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.validation import ValidationError as InputError
from prompt_toolkit.validation import Validator
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from clawup.constants import DEFAULT_MODEL
from clawup.dependencies import get_deployment_service
from clawup.errors import ConfigurationError
from clawup.models.requests import DeploymentRequest, ScriptVariant
from clawup.plugins.identity import load_identity
from clawup.plugins.manifest import OnboardInput
from clawup.plugins.onboarding import InputValidator, run_plugin_onboarding
from clawup.plugins.resolver import build_validators, lookup_secret_value, resolve_plugins
from clawup.services.deployment_service import (
    build_request_from_identity,
    dep_secrets_from_env,
    plugin_entries_from_env,
    provider_credentials_from_env,
    resolve_request_secrets,
)

logger = logging.getLogger(__name__)

console = Console(stderr=True)

# argparse dest -> DeploymentRequest field, for flags that only apply when given
_VALUE_FLAGS = {
    "model": "model",
    "backup_model": "backup_model",
    "coding_agent": "coding_agent",
    "target": "target",
    "agent_name": "agent_name",
    "agent_emoji": "agent_emoji",
    "tailscale_hostname": "tailscale_hostname",
    "gateway_port": "gateway_port",
}
_SWITCH_FLAGS = {
    "compress": "compress",
    "enable_funnel": "enable_funnel",
    "foreground": "foreground_mode",
    "skip_tailscale": "skip_tailscale",
    "skip_docker": "skip_docker",
}


def parse_plugin_config(values: List[str]) -> Dict[str, Dict[str, Any]]:
    """Parse repeated ``--plugin-config name='{"json": ...}'`` flags."""
    result: Dict[str, Dict[str, Any]] = {}
    for item in values:
        name, sep, raw = item.partition("=")
        if not sep or not name:
            raise ConfigurationError(f"--plugin-config expects NAME=JSON, got: {item}")
        try:
            config = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"--plugin-config for {name} is not valid JSON: {e}") from e
        if not isinstance(config, dict):
            raise ConfigurationError(f"--plugin-config for {name} must be a JSON object")
        result.setdefault(name, {}).update(config)
    return result


def flag_overrides(args) -> Dict[str, Any]:
    overrides = {}
    for dest, field_name in _VALUE_FLAGS.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[field_name] = value
    for dest, field_name in _SWITCH_FLAGS.items():
        if getattr(args, dest, False):
            overrides[field_name] = True
    return overrides


def build_request(args, env: Mapping[str, str]) -> DeploymentRequest:
    """DeploymentRequest from CLI flags, an optional identity directory, and env secrets."""
    overrides = flag_overrides(args)
    plugin_config = parse_plugin_config(getattr(args, "plugin_config", None) or [])

    if getattr(args, "identity", None):
        if args.plugin or args.dep:
            logger.warning("--plugin/--dep are ignored when --identity is given")
        bundle = load_identity(Path(args.identity), template_values=env)
        return build_request_from_identity(bundle, env, plugin_config, **overrides)

    role = getattr(args, "role", None)
    model = overrides.pop("model", DEFAULT_MODEL)
    backup_model = overrides.pop("backup_model", None)
    deps = list(args.dep or [])
    fields: Dict[str, Any] = dict(
        model=model,
        backup_model=backup_model,
        provider_api_keys=provider_credentials_from_env(env, [model, backup_model], role),
        gateway_token=env.get("GATEWAY_TOKEN", ""),
        tailscale_auth_key=env.get("TAILSCALE_AUTH_KEY", ""),
        plugins=plugin_entries_from_env(list(args.plugin or []), env, role, plugin_config=plugin_config),
        deps=deps,
        dep_secrets=dep_secrets_from_env(deps, env, role),
        brave_api_key=lookup_secret_value(env, "BRAVE_API_KEY", role),
    )
    fields.update(overrides)
    return DeploymentRequest(**fields)


def mask_value(value: str) -> str:
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-2:]}"


def _write_output(text: str, output: Optional[str]):
    if output:
        Path(output).write_text(text, encoding="utf-8")
        console.print(f"[green]Wrote {len(text)} bytes to {output}[/green]")
    else:
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")


def _resolve(request: DeploymentRequest, env: Mapping[str, str]) -> DeploymentRequest:
    """Run resolve hooks; any failure aborts before output is produced."""
    request, errors = asyncio.run(resolve_request_secrets(request, env))
    if errors:
        for error in errors:
            console.print(f"[red]Secret resolution failed:[/red] {escape(error)}")
        sys.exit(1)
    return request


def cmd_render(args):
    """Render openclaw.json or a full bootstrap script."""
    env = dict(os.environ)
    request = build_request(args, env)
    if args.resolve:
        request = _resolve(request, env)

    service = get_deployment_service()
    if args.config_only:
        rendered = service.render_config(request)
        _write_output(json.dumps(rendered["config"], indent=2, ensure_ascii=False), args.output)
        return

    result = service.render(request, ScriptVariant(args.variant))
    if result.unresolved_placeholders:
        console.print(
            "[yellow]Warning:[/yellow] no value for "
            + ", ".join(f"${{{name}}}" for name in result.unresolved_placeholders)
        )
    _write_output(result.envelope, args.output)


def cmd_resolve(args):
    """Show which plugin secrets are present, resolving auto-resolvable ones."""
    env = dict(os.environ)
    request = _resolve(build_request(args, env), env)

    table = Table(title="Plugin secrets")
    table.add_column("Plugin", style="cyan")
    table.add_column("Key")
    table.add_column("Env var")
    table.add_column("Value")

    missing = 0
    invalid = 0
    for entry in request.plugins:
        validators = build_validators([entry.manifest])
        for key, secret in entry.manifest.secrets.items():
            value = entry.secret_value(key)
            if value is None:
                shown = "[red]missing[/red]" if secret.required else "[dim]not set[/dim]"
                missing += int(secret.required)
            else:
                shown = escape(mask_value(value) if secret.is_secret else value)
                error = validators[key](value) if key in validators else None
                if error:
                    shown = f"{shown} [red]({escape(error)})[/red]"
                    invalid += 1
            table.add_row(entry.name, key, secret.env_var, shown)

    console.print(table)
    if missing:
        console.print(f"[red]{missing} required secret(s) missing[/red]")
    if invalid:
        console.print(f"[red]{invalid} secret(s) with an invalid prefix[/red]")
    if missing or invalid:
        sys.exit(1)


class _PromptValidator(Validator):
    def __init__(self, check: InputValidator):
        self.check = check

    def validate(self, document):
        error = self.check(document.text)
        if error:
            raise InputError(message=error, cursor_position=len(document.text))


def make_prompt(session: PromptSession):
    """Onboard prompt backed by a prompt_toolkit session. Ctrl-C / Ctrl-D cancel."""

    def prompt(input_key: str, spec: OnboardInput, validator: InputValidator) -> Optional[str]:
        if spec.instructions:
            console.print(Panel(escape(spec.instructions), title=input_key, border_style="blue"))
        try:
            return session.prompt(
                HTML(f"<b>{spec.prompt}</b> "),
                is_password=True,
                validator=_PromptValidator(validator),
            )
        except (KeyboardInterrupt, EOFError):
            return None

    return prompt


def cmd_onboard(args):
    """Run one-time onboard hooks for the given plugins."""
    env = dict(os.environ)
    overrides = {}
    role = args.role
    names = list(args.plugin or [])
    if args.identity:
        bundle = load_identity(Path(args.identity), template_values=env)
        names = names or bundle.manifest.plugins
        overrides = bundle.plugin_manifests
        role = role or bundle.manifest.role

    if not names:
        console.print("[yellow]No plugins to onboard.[/yellow]")
        return

    prompt = make_prompt(PromptSession())
    failures = 0
    for manifest in resolve_plugins(names, overrides):
        if not (manifest.hooks and manifest.hooks.onboard):
            continue
        outcome = asyncio.run(run_plugin_onboarding(manifest, env, prompt=prompt, role=role))
        if outcome.skipped:
            console.print(f"[dim]{manifest.display_name}: already configured, skipped[/dim]")
        elif outcome.ok:
            console.print(f"[green]{manifest.display_name}: onboarded[/green]")
            if outcome.instructions:
                console.print(Panel(escape(outcome.instructions), title=f"{manifest.display_name} follow-up"))
        else:
            failures += 1
            console.print(f"[red]{manifest.display_name}: {escape(outcome.error or '')}[/red]")

    if failures:
        sys.exit(1)
