#!/usr/bin/env python3
"""Registry inspection tool for plugins, deps and coding agents."""

import argparse
import json
import sys

from clawup.plugins.registry import PLUGIN_MANIFEST_REGISTRY
from clawup.plugins.resolver import build_known_secrets, collect_plugin_secrets
from clawup.services.coding_agents import CODING_AGENT_REGISTRY
from clawup.services.deps import DEP_REGISTRY, collect_dep_secrets
from clawup.services.providers import MODEL_PROVIDERS


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def cmd_list(args):
    """List built-in plugins, deps, coding agents and providers."""
    print(f"{'Plugin':<20} {'Name':<24} {'Config path':<16} {'Install':<8} {'Funnel':<8} {'Secrets'}")
    print("-" * 100)
    for manifest in PLUGIN_MANIFEST_REGISTRY.values():
        print(
            f"{manifest.name:<20} {manifest.display_name:<24} {manifest.config_path.value:<16} "
            f"{_yes_no(manifest.installable):<8} {_yes_no(manifest.needs_funnel):<8} {len(manifest.secrets)}"
        )

    print()
    print(f"{'Dep':<20} {'Name':<24} {'Secrets'}")
    print("-" * 100)
    for dep in DEP_REGISTRY.values():
        print(f"{dep.name:<20} {dep.display_name:<24} {', '.join(s.env_var for s in dep.secrets.values())}")

    print()
    print(f"{'Coding agent':<20} {'Name':<24} {'Command'}")
    print("-" * 100)
    for agent in CODING_AGENT_REGISTRY.values():
        print(f"{agent.key:<20} {agent.display_name:<24} {agent.cli_backend.command}")

    print()
    print(f"{'Provider':<20} {'Name':<24} {'Env var':<24} {'Models'}")
    print("-" * 100)
    for provider in MODEL_PROVIDERS.values():
        models = ", ".join(m.value for m in provider.models) or "-"
        print(f"{provider.key:<20} {provider.name:<24} {provider.env_var:<24} {models}")


def cmd_info(args):
    """Show detailed information for a plugin, dep or coding agent."""
    name = args.name

    manifest = PLUGIN_MANIFEST_REGISTRY.get(name)
    if manifest:
        print(f"Plugin: {manifest.name}")
        print(f"  Name:        {manifest.display_name}")
        print(f"  Installable: {manifest.installable}")
        print(f"  Config path: {manifest.config_path.value}")
        print(f"  Funnel:      {manifest.needs_funnel}")
        if manifest.internal_keys:
            print(f"  Internal:    {', '.join(manifest.internal_keys)}")
        if manifest.default_config:
            print(f"  Defaults:    {json.dumps(manifest.default_config, indent=4)}")
        if manifest.webhook_setup:
            print(f"  Webhook:     {manifest.webhook_setup.url_path}")
        if manifest.hooks:
            hooks = [
                label for label, present in (
                    ("resolve", bool(manifest.hooks.resolve)),
                    ("postProvision", bool(manifest.hooks.post_provision)),
                    ("preStart", bool(manifest.hooks.pre_start)),
                    ("onboard", manifest.hooks.onboard is not None),
                ) if present
            ]
            print(f"  Hooks:       {', '.join(hooks)}")
        for key, secret in manifest.secrets.items():
            flags = [secret.scope]
            if secret.required:
                flags.append("required")
            if secret.auto_resolvable:
                flags.append("auto")
            if secret.validator:
                flags.append(f"prefix {secret.validator}")
            print(f"  Secret:      {key} ({secret.env_var}) [{', '.join(flags)}]")
        return

    dep = DEP_REGISTRY.get(name)
    if dep:
        print(f"Dep: {dep.name}")
        print(f"  Name:        {dep.display_name}")
        print(f"  Installs:    {'yes' if dep.install_script else 'baked into image'}")
        for suffix, secret in dep.secrets.items():
            print(f"  Secret:      {suffix} ({secret.env_var}, {secret.scope})")
            print(f"  Check:       {secret.check_command}")
        return

    agent = CODING_AGENT_REGISTRY.get(name)
    if agent:
        print(f"Coding agent: {agent.key}")
        print(f"  Name:        {agent.display_name}")
        print(f"  Backend:     {json.dumps(agent.cli_backend.to_config(), indent=4)}")
        print(f"  OpenAI API:  {agent.openai_compatible}")
        return

    print(f"'{name}' is not a known plugin, dep or coding agent.")
    sys.exit(1)


def cmd_secrets(args):
    """List every secret the selected plugins and deps need."""
    plugin_names = args.plugin or list(PLUGIN_MANIFEST_REGISTRY)
    unknown = [n for n in plugin_names if n not in PLUGIN_MANIFEST_REGISTRY]
    if unknown:
        print(f"Unknown plugin(s): {', '.join(unknown)}")
        sys.exit(1)
    dep_names = args.dep or list(DEP_REGISTRY)
    unknown = [n for n in dep_names if n not in DEP_REGISTRY]
    if unknown:
        print(f"Unknown dep(s): {', '.join(unknown)}")
        sys.exit(1)

    manifests = [PLUGIN_MANIFEST_REGISTRY[n] for n in plugin_names]
    known = build_known_secrets(manifests)

    print(f"{'Env var':<28} {'Label':<36} {'Scope':<8} {'Secret':<8} {'Source'}")
    print("-" * 100)
    for ref in collect_plugin_secrets(manifests):
        info = known[ref.config_key]
        scope = "agent" if info.per_agent else "global"
        print(
            f"{ref.secret.env_var:<28} {info.label:<36} {scope:<8} "
            f"{_yes_no(info.is_secret):<8} {ref.plugin_name}"
        )
    for req in collect_dep_secrets(DEP_REGISTRY[n] for n in dep_names):
        print(f"{req.env_var:<28} {req.config_key_suffix:<36} {req.scope:<8} {'Yes':<8} dep")


def main(argv=None):
    parser = argparse.ArgumentParser(description="clawup registry inspector")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    subparsers.add_parser("list", help="List registry entries")

    # info
    info_parser = subparsers.add_parser("info", help="Show plugin, dep or coding agent details")
    info_parser.add_argument("name", help="Plugin, dep or coding agent name")

    # secrets
    secrets_parser = subparsers.add_parser("secrets", help="List required secrets")
    secrets_parser.add_argument("-p", "--plugin", action="append", help="Limit to plugin (repeatable)")
    secrets_parser.add_argument("-d", "--dep", action="append", help="Limit to dep (repeatable)")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "secrets": cmd_secrets,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
