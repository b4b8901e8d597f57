#!/usr/bin/env python
"""
clawup - render OpenClaw agent configs and bootstrap scripts

Usage:
    python -m cli.main render --identity ./agents/juno --variant nix-vm > user-data.sh
    python -m cli.main render --plugin slack --dep gh --config-only
    python -m cli.main resolve --identity ./agents/juno
    python -m cli.main onboard --plugin openclaw-linear
"""

import argparse
import logging
import sys

from dotenv import load_dotenv

# Load environment variables FIRST (before importing project modules)
load_dotenv('.env')

from pydantic import ValidationError
from rich.markup import escape

from clawup import __version__
from clawup.constants import LOG_DIR
from clawup.errors import ConfigurationError
from clawup.models.requests import ScriptVariant
from cli.commands import cmd_onboard, cmd_render, cmd_resolve, console


def setup_logging():
    """INFO and above to the log file; only WARNING and above on the console."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    file_handler = logging.FileHandler(LOG_DIR / "clawup.log", encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    # Console output is the script itself, keep log noise off it
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)


def _add_source_args(parser: argparse.ArgumentParser):
    parser.add_argument('-i', '--identity', help='Identity directory containing identity.yaml')
    parser.add_argument(
        '-p', '--plugin', action='append', metavar='NAME',
        help='Plugin to deploy (repeatable, ignored with --identity)'
    )
    parser.add_argument(
        '-d', '--dep', action='append', metavar='NAME',
        help='System dep to install (repeatable, ignored with --identity)'
    )
    parser.add_argument(
        '--plugin-config', action='append', metavar='NAME=JSON',
        help='Operator config for a plugin, e.g. slack=\'{"dm": {"policy": "allow"}}\''
    )
    parser.add_argument('--role', help='Secret env prefix, e.g. PM reads PM_SLACK_BOT_TOKEN first')
    parser.add_argument('--model', help='Primary model, <provider>/<modelId>')
    parser.add_argument('--backup-model', help='Fallback model')
    parser.add_argument('--coding-agent', help='Coding agent CLI (claude-code, codex)')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='clawup',
        description='OpenClaw agent config synthesis and bootstrap script rendering',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'clawup {__version__}')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # render
    render_parser = subparsers.add_parser('render', help='Render openclaw.json or a bootstrap script')
    _add_source_args(render_parser)
    render_parser.add_argument(
        '-v', '--variant',
        choices=[v.value for v in ScriptVariant],
        default=ScriptVariant.NIX_VM.value,
        help='Script shape (default: nix-vm)'
    )
    render_parser.add_argument('--target', choices=['aws', 'hetzner', 'local'])
    render_parser.add_argument('--agent-name')
    render_parser.add_argument('--agent-emoji')
    render_parser.add_argument('--tailscale-hostname')
    render_parser.add_argument('--gateway-port', type=int)
    render_parser.add_argument('--compress', action='store_true', help='Wrap in a gzip envelope')
    render_parser.add_argument('--enable-funnel', action='store_true', help='Expose the gateway via Tailscale Funnel')
    render_parser.add_argument('--foreground', action='store_true', help='Run the gateway in the foreground')
    render_parser.add_argument('--skip-tailscale', action='store_true')
    render_parser.add_argument('--skip-docker', action='store_true')
    render_parser.add_argument('--resolve', action='store_true', help='Run secret resolve hooks first')
    render_parser.add_argument('--config-only', action='store_true', help='Print openclaw.json only')
    render_parser.add_argument('-o', '--output', help='Write to a file instead of stdout')
    render_parser.set_defaults(func=cmd_render)

    # resolve
    resolve_parser = subparsers.add_parser('resolve', help='Resolve and list plugin secrets')
    _add_source_args(resolve_parser)
    resolve_parser.set_defaults(func=cmd_resolve)

    # onboard
    onboard_parser = subparsers.add_parser('onboard', help='Run one-time plugin onboarding')
    onboard_parser.add_argument('-i', '--identity', help='Identity directory containing identity.yaml')
    onboard_parser.add_argument('-p', '--plugin', action='append', metavar='NAME', help='Plugin to onboard')
    onboard_parser.add_argument('--role', help='Secret env prefix')
    onboard_parser.set_defaults(func=cmd_onboard)

    return parser


def main(argv=None):
    """Entry point for the clawup console script."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging()
    try:
        args.func(args)
    except (ConfigurationError, ValidationError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\033[33minterrupted\033[0m")
        sys.exit(0)


if __name__ == '__main__':
    main()
