"""Script assembler - renders bootstrap scripts from an ordered list of typed steps.

Every variant builds a list of Step records and renders it with the same
serializer. The hook ordering contract (postProvision before the config write,
preStart after it) is checked once on that list, not per variant.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from clawup.constants import (
    DEVICE_APPROVAL_DELAY,
    GIT_EMAIL_DOMAIN,
    OPENCLAW_HOME,
    OPENROUTER_BASE_URL,
    UBUNTU_HOME,
)
from clawup.errors import ScriptOrderError
from clawup.models.requests import DeploymentRequest, ScriptVariant
from clawup.services.coding_agents import get_coding_agent
from clawup.services.config_synthesizer import (
    build_config_commands,
    needs_openrouter_alias,
    render_config_commands,
    synthesize_config,
)
from clawup.services.providers import provider_env, require_provider
from clawup.utils.shell import heredoc, shell_quote, single_quote_body
from clawup.utils.workspace import encode_workspace_files

logger = logging.getLogger(__name__)

CONFIG_WRITE_MARKER = "# Write openclaw config"


class StepKind(str, Enum):
    PREAMBLE = "preamble"
    SYSTEM = "system"
    RUNTIME = "runtime"
    ENVIRONMENT = "environment"
    NETWORK = "network"
    DEPS = "deps"
    GIT_IDENTITY = "git_identity"
    CODING_AGENT = "coding_agent"
    SERVICE_SETUP = "service_setup"
    ONBOARD = "onboard"
    POST_PROVISION = "post_provision"
    WORKSPACE = "workspace"
    PLUGIN_INSTALL = "plugin_install"
    CONFIG_WRITE = "config_write"
    CLAWHUB = "clawhub"
    PRE_START = "pre_start"
    POST_SETUP = "post_setup"
    PROXY = "proxy"
    SELF_CHECK = "self_check"
    SERVICE = "service"
    DEVICE_APPROVAL = "device_approval"
    FOOTER = "footer"


@dataclass(frozen=True)
class Step:
    kind: StepKind
    body: str
    plugin: Optional[str] = None  # Owning plugin for hook steps


@dataclass(frozen=True)
class ProfileVar:
    """One line of the agent user's profile environment."""

    name: str
    value: str
    secret: bool  # Rendered as a ${NAME} placeholder and filled in by interpolation
    guarded: bool = False  # Only exported when non-empty

    def render(self) -> str:
        if not self.secret:
            return f"export {self.name}={shell_quote(self.value)}"
        if self.guarded:
            return f'[ -n "${{{self.name}:-}}" ] && export {self.name}="${{{self.name}:-}}"'
        return f'export {self.name}="${{{self.name}}}"'


# ============================================================================
# Targets
# ============================================================================

_NVM_PRELUDE = (
    f"export HOME={UBUNTU_HOME}\n"
    'export NVM_DIR="$HOME/.nvm"\n'
    '[ -s "$NVM_DIR/nvm.sh" ] && . "$NVM_DIR/nvm.sh"\n'
)


@dataclass(frozen=True)
class _Target:
    """Where user-level commands run and how they are wrapped."""

    user: str
    home: str
    sudo: bool
    nvm: bool

    def script(self, body: str) -> str:
        """Wrap a (possibly multi-line) script to run as the agent user."""
        if self.nvm:
            body = _NVM_PRELUDE + body
        if not self.sudo:
            return f"bash -c {single_quote_body(body)}"
        return f"sudo -H -u {self.user} bash -lc {single_quote_body(body)}"

    def command(self, cmd: str) -> str:
        """Wrap a single command to run as the agent user."""
        if self.nvm:
            return self.script(cmd)
        if not self.sudo:
            return cmd
        return f"sudo -H -u {self.user} {cmd}"

    @property
    def workspace_dir(self) -> str:
        return f"{self.home}/.openclaw/workspace"

    @property
    def owner(self) -> str:
        return f"{self.user}:{self.user}"


_FULL = _Target(user="ubuntu", home=UBUNTU_HOME, sudo=True, nvm=True)
_NIX_VM = _Target(user="openclaw", home=OPENCLAW_HOME, sudo=True, nvm=False)
_NIX_DOCKER = _Target(user="openclaw", home=OPENCLAW_HOME, sudo=False, nvm=False)


# ============================================================================
# Shared builders
# ============================================================================

def build_profile_env(request: DeploymentRequest) -> List[ProfileVar]:
    """Environment exported for the agent user, in write order.

    Later entries replace earlier ones with the same name.
    """
    env: Dict[str, ProfileVar] = {}
    credentials = request.provider_api_keys

    primary = require_provider(request.model)
    for name, value in provider_env(primary, credentials).items():
        env[name] = ProfileVar(name, value, secret=True)
    if request.backup_model:
        backup = require_provider(request.backup_model)
        if backup.key != primary.key:
            for name, value in provider_env(backup, credentials).items():
                env[name] = ProfileVar(name, value, secret=True)

    agent = get_coding_agent(request.coding_agent)
    if needs_openrouter_alias(agent, primary.key) and credentials.get("openrouter"):
        env["OPENAI_API_KEY"] = ProfileVar("OPENAI_API_KEY", credentials["openrouter"], secret=True)
        env["OPENAI_BASE_URL"] = ProfileVar("OPENAI_BASE_URL", OPENROUTER_BASE_URL, secret=False)

    for entry in request.plugins:
        for env_var in entry.manifest.secret_env_vars().values():
            value = entry.secrets.get(env_var)
            if value:
                env[env_var] = ProfileVar(env_var, value, secret=True, guarded=True)

    for dep in request.resolved_deps:
        for secret in dep.secrets.values():
            value = request.dep_secrets.get(secret.env_var)
            if value:
                env[secret.env_var] = ProfileVar(secret.env_var, value, secret=True, guarded=True)

    for name, value in request.env_vars.items():
        env[name] = ProfileVar(name, value, secret=False)
    if request.agent_name:
        env["AGENT_NAME"] = ProfileVar("AGENT_NAME", request.agent_name, secret=False)
    if request.agent_emoji:
        env["AGENT_EMOJI"] = ProfileVar("AGENT_EMOJI", request.agent_emoji, secret=False)

    return list(env.values())


def build_onboard_command(request: DeploymentRequest) -> str:
    """`openclaw onboard` for the primary provider, credential shell-quoted inline."""
    spec = require_provider(request.model)
    credential = request.provider_api_keys.get(spec.key, "")
    return " ".join([
        "openclaw onboard --non-interactive",
        "--mode local",
        spec.onboard_flags(credential),
        f"--gateway-port {request.gateway_port}",
        "--gateway-bind loopback",
        "--skip-skills",
    ])


def git_identity(agent_name: str) -> Dict[str, str]:
    local_part = "".join(ch for ch in agent_name.lower() if ch.isascii() and ch.isalnum())
    return {"name": agent_name, "email": f"{local_part}@{GIT_EMAIL_DOMAIN}"}


def _git_identity_step(request: DeploymentRequest, target: _Target) -> Optional[Step]:
    if not request.agent_name:
        return None
    identity = git_identity(request.agent_name)
    body = "\n".join([
        "# Configure git identity for coding agent commits",
        target.command(f"git config --global user.name {shell_quote(identity['name'])}"),
        target.command(f"git config --global user.email {shell_quote(identity['email'])}"),
        f"echo {shell_quote('Configured git identity: ' + identity['name'])}",
    ])
    return Step(StepKind.GIT_IDENTITY, body)


def _deps_step(request: DeploymentRequest, target: _Target, install: bool) -> Optional[Step]:
    lines = []
    for dep in request.resolved_deps:
        if install and dep.install_script:
            lines.append(f"# Install: {dep.name}")
            lines.append(dep.install_script)
        if dep.post_install_script:
            lines.append(f"# Post-install: {dep.name}")
            lines.append(target.script(dep.post_install_script))
    if not lines:
        return None
    return Step(StepKind.DEPS, "\n".join(lines))


def _coding_agent_step(request: DeploymentRequest, target: _Target) -> Optional[Step]:
    agent = get_coding_agent(request.coding_agent)
    if agent is None:
        return None
    body = "\n".join([
        f"# Install coding agent: {agent.display_name}",
        f'echo "Installing {agent.display_name}..."',
        f'{target.script(agent.install_script)} || echo "WARNING: {agent.display_name} installation failed."',
        "",
        f"# Configure {agent.display_name} default model",
        target.script(agent.configure_script_for(request.model)),
    ])
    return Step(StepKind.CODING_AGENT, body)


def _hook_steps(request: DeploymentRequest, target: _Target, kind: StepKind) -> List[Step]:
    label = "postProvision" if kind == StepKind.POST_PROVISION else "preStart"
    steps = []
    for entry in request.plugins:
        hooks = entry.manifest.hooks
        script = None
        if hooks:
            script = hooks.post_provision if kind == StepKind.POST_PROVISION else hooks.pre_start
        if not script:
            continue
        body = "\n".join([
            f"# {label} hook: {entry.name}",
            f'echo "Running {label} hook for {entry.name}..."',
            target.script(script),
            f'echo "{label} hook for {entry.name} complete"',
        ])
        steps.append(Step(kind, body, plugin=entry.name))
    return steps


def _workspace_step(request: DeploymentRequest, target: _Target, chown: bool) -> Optional[Step]:
    if not request.workspace_files:
        return None
    lines = [
        "# Inject workspace files",
        'echo "Injecting workspace files..."',
        f"mkdir -p {target.workspace_dir}",
    ]
    for encoded in encode_workspace_files(request.workspace_files):
        full_path = f"{target.workspace_dir}/{encoded.path}"
        lines.append(f"mkdir -p {shell_quote(full_path.rsplit('/', 1)[0])}")
        lines.append(f'echo "{encoded.gzip_base64}" | base64 -d | gunzip > {shell_quote(full_path)}')
    if chown:
        lines.append(f"chown -R {target.owner} {target.workspace_dir}")
    lines.append('echo "Workspace files injected successfully"')
    return Step(StepKind.WORKSPACE, "\n".join(lines))


def _plugin_install_step(request: DeploymentRequest, target: _Target) -> Optional[Step]:
    names = [e.name for e in request.plugins if e.manifest.installable]
    if not names:
        return None
    lines = ["# Install OpenClaw plugins", 'echo "Installing plugins..."']
    for name in names:
        lines.append(
            f'{target.command(f"openclaw plugins install {name}")} '
            f'|| echo "WARNING: {name} plugin install failed."'
        )
    lines.append('echo "Plugin installation complete"')
    return Step(StepKind.PLUGIN_INSTALL, "\n".join(lines))


def _clawhub_step(request: DeploymentRequest, target: _Target) -> Optional[Step]:
    if not request.clawhub_skills:
        return None
    lines = ["# Install public skills from clawhub", 'echo "Installing clawhub skills..."']
    for slug in request.clawhub_skills:
        lines.append(
            f"{target.command(f'clawhub install {shell_quote(slug)}')} "
            f'|| echo "WARNING: clawhub skill {slug} install failed."'
        )
    lines.append('echo "Clawhub skills installation complete"')
    return Step(StepKind.CLAWHUB, "\n".join(lines))


def _post_setup_step(request: DeploymentRequest) -> Optional[Step]:
    if not request.post_setup_commands:
        return None
    return Step(StepKind.POST_SETUP, "\n".join(["# Post-setup commands", *request.post_setup_commands]))


def _json_config_step(request: DeploymentRequest, target: _Target, chown: bool) -> Step:
    config_dir = f"{target.home}/.openclaw"
    config_file = f"{config_dir}/openclaw.json"
    payload = json.dumps(synthesize_config(request), indent=2, ensure_ascii=False)
    lines = [
        CONFIG_WRITE_MARKER,
        'echo "Writing openclaw.json..."',
        f"mkdir -p {config_dir}",
        heredoc(f"cat > {config_file}", payload, "OPENCLAW_CONFIG"),
    ]
    if chown:
        lines.append(f"chown -R {target.owner} {config_dir}")
    lines.append('echo "Created openclaw.json"')
    return Step(StepKind.CONFIG_WRITE, "\n".join(lines))


def _proxy_body(port: int, funnel: bool) -> str:
    if funnel:
        return "\n".join([
            "# Enable Tailscale Funnel for webhook endpoints (public HTTPS)",
            'echo "Enabling Tailscale Funnel..."',
            f"if tailscale funnel --bg {port}; then",
            '  echo "Tailscale Funnel enabled, webhook endpoints are publicly reachable"',
            "else",
            '  echo "WARNING: tailscale funnel failed, falling back to tailscale serve (webhooks will not work)"',
            f'  tailscale serve --bg {port} || echo "WARNING: tailscale serve also failed."',
            "fi",
        ])
    return "\n".join([
        "# Enable Tailscale HTTPS proxy (serve mode)",
        'echo "Enabling Tailscale HTTPS proxy..."',
        f'tailscale serve --bg {port} || echo "WARNING: tailscale serve failed. Enable HTTPS in the Tailscale admin console."',
    ])


def _tailscale_up(request: DeploymentRequest) -> str:
    hostname = f" --hostname={request.tailscale_hostname}" if request.tailscale_hostname else ""
    return (
        f'tailscale up --authkey="${{TAILSCALE_AUTH_KEY}}" --ssh{hostname} '
        "|| echo \"WARNING: Tailscale setup failed. Run 'sudo tailscale up' manually.\""
    )


def _device_approval_step(approve_command: str) -> Step:
    body = "\n".join([
        "# Wait for the gateway's pending pairing request, then approve it",
        f"sleep {DEVICE_APPROVAL_DELAY}",
        f"if {approve_command} 2>/dev/null; then",
        '  echo "Auto-approved gateway device pairing"',
        "else",
        '  echo "WARNING: Device pairing approval failed (may already be paired)"',
        "fi",
    ])
    return Step(StepKind.DEVICE_APPROVAL, body)


def _approve_command(target: _Target) -> str:
    return target.command('openclaw devices approve --latest --token "${GATEWAY_TOKEN}"')


def _preamble(title: str, full: bool = False) -> Step:
    lines = ["#!/bin/bash", "set -e", ""]
    if full:
        lines += ["export DEBIAN_FRONTEND=noninteractive", ""]
    lines += [
        "# ============================================",
        f"# {title}",
        "# Generated by clawup",
        "# ============================================",
        "",
        f'echo "Starting {title}..."',
    ]
    return Step(StepKind.PREAMBLE, "\n".join(lines))


def _footer(title: str) -> Step:
    return Step(StepKind.FOOTER, "\n".join([
        'echo "============================================"',
        f'echo "{title} setup complete!"',
        'echo "============================================"',
    ]))


def _foreground_gateway(target: _Target) -> Step:
    return Step(StepKind.SERVICE, "\n".join([
        "# Start OpenClaw gateway in foreground (keeps the container alive)",
        'echo "Starting OpenClaw gateway..."',
        f"{target.command('openclaw gateway')} &",
        "GW_PID=$!",
    ]))


def _compact(steps: List[Optional[Step]]) -> List[Step]:
    return [s for s in steps if s is not None]


# ============================================================================
# Variants
# ============================================================================

def _profile_step(request: DeploymentRequest, target: _Target, chown: bool) -> Step:
    exports = "\n".join(var.render() for var in build_profile_env(request))
    profile = f"{target.home}/.profile"
    lines = [
        "# Write agent environment to .profile",
        heredoc(f"cat >> {profile}", exports, "PROFILE_ENV"),
    ]
    if chown:
        lines.append(f"chown {target.owner} {profile}")
    return Step(StepKind.ENVIRONMENT, "\n".join(lines))


def assemble_full(request: DeploymentRequest) -> List[Step]:
    """Plain Ubuntu host: installs packages, runtime and openclaw, then applies config."""
    target = _FULL
    system = [
        "# System updates",
        'echo "Updating system packages..."',
        "apt-get update",
        "apt-get upgrade -y",
        "apt-get install -y unzip",
    ]
    if not request.skip_docker:
        system += [
            "",
            "# Install Docker",
            'echo "Installing Docker..."',
            "curl -fsSL https://get.docker.com | sh",
            "systemctl enable docker",
            "systemctl start docker",
        ]
    if request.create_user:
        groups = "" if request.skip_docker else " -G docker"
        system += ["", "# Create ubuntu user", f"useradd -m -s /bin/bash{groups} ubuntu || true"]
    elif not request.skip_docker:
        system.append("usermod -aG docker ubuntu")

    runtime = "\n".join([
        f"# Install NVM, Node.js {request.node_version} and openclaw for the ubuntu user",
        f'echo "Installing Node.js {request.node_version} via NVM..."',
        heredoc("sudo -H -u ubuntu bash", "\n".join([
            "set -e",
            "cd ~",
            f"curl -o- https://raw.githubusercontent.com/nvm-sh/nvm/v{request.nvm_version}/install.sh | bash",
            'export NVM_DIR="$HOME/.nvm"',
            '[ -s "$NVM_DIR/nvm.sh" ] && . "$NVM_DIR/nvm.sh"',
            f"nvm install {request.node_version}",
            f"nvm use {request.node_version}",
            f"nvm alias default {request.node_version}",
            f"npm install -g openclaw@{request.openclaw_version}",
        ]), "UBUNTU_SCRIPT"),
    ])

    network = None
    if not request.skip_tailscale:
        network = Step(StepKind.NETWORK, "\n".join([
            "# Install and connect Tailscale",
            'echo "Installing Tailscale..."',
            "curl -fsSL https://tailscale.com/install.sh | sh",
            _tailscale_up(request),
        ]))

    service_setup = None
    if not request.foreground_mode:
        service_setup = Step(StepKind.SERVICE_SETUP, "\n".join([
            "# Enable systemd linger so user services run at boot",
            "loginctl enable-linger ubuntu",
            "systemctl start user@1000.service",
        ]))

    onboard = Step(StepKind.ONBOARD, "\n".join([
        "# Run OpenClaw onboarding",
        'echo "Running OpenClaw onboarding..."',
        f'{target.script(build_onboard_command(request))} || echo "WARNING: OpenClaw onboarding failed."',
    ]))

    apply_lines = ["set -e", _NVM_PRELUDE.rstrip("\n"), *render_config_commands(build_config_commands(request))]
    config_write = Step(StepKind.CONFIG_WRITE, "\n".join([
        CONFIG_WRITE_MARKER,
        'echo "Applying openclaw config..."',
        heredoc("sudo -H -u ubuntu bash -l", "\n".join(apply_lines), "OPENCLAW_CONFIG_SET"),
        'echo "openclaw config applied"',
    ]))

    proxy = None
    if not request.skip_tailscale:
        proxy = Step(StepKind.PROXY, _proxy_body(request.gateway_port, request.funnel_enabled))

    self_check = Step(StepKind.SELF_CHECK, "\n".join([
        "# Run openclaw doctor to fix any missing config",
        'echo "Running openclaw doctor..."',
        f'{target.script("openclaw doctor --fix --non-interactive")} || echo "WARNING: openclaw doctor failed"',
    ]))

    if request.foreground_mode:
        service = _foreground_gateway(target)
    else:
        service = Step(StepKind.SERVICE, "\n".join([
            "# Install and start the OpenClaw daemon",
            'echo "Installing OpenClaw daemon..."',
            f'sudo -H -u ubuntu XDG_RUNTIME_DIR=/run/user/1000 bash -c {single_quote_body(_NVM_PRELUDE + "openclaw daemon install")} '
            '|| echo "WARNING: Daemon install failed. Run openclaw daemon install manually."',
        ]))

    steps = _compact([
        _preamble("OpenClaw Agent Provisioning", full=True),
        Step(StepKind.SYSTEM, "\n".join(system)),
        Step(StepKind.RUNTIME, runtime),
        _profile_step(request, target, chown=True),
        network,
        _deps_step(request, target, install=True),
        _git_identity_step(request, target),
        _coding_agent_step(request, target),
        service_setup,
        onboard,
        *_hook_steps(request, target, StepKind.POST_PROVISION),
        _workspace_step(request, target, chown=True),
        _plugin_install_step(request, target),
        config_write,
        _clawhub_step(request, target),
        *_hook_steps(request, target, StepKind.PRE_START),
        _post_setup_step(request),
        proxy,
        self_check,
        service,
        _device_approval_step(_approve_command(target)),
        _footer("OpenClaw agent"),
    ])
    if request.foreground_mode:
        steps.append(Step(StepKind.FOOTER, "wait $GW_PID"))
    return steps


def assemble_nix_vm(request: DeploymentRequest) -> List[Step]:
    """Pre-built NixOS VM: runtime is baked in; still does Tailscale and systemd."""
    target = _NIX_VM
    network = Step(StepKind.NETWORK, "\n".join([
        "# Connect Tailscale",
        'echo "Starting Tailscale..."',
        _tailscale_up(request),
        _proxy_body(request.gateway_port, request.funnel_enabled),
    ]))
    service = Step(StepKind.SERVICE, "\n".join([
        "# Restart openclaw-gateway via systemd",
        'echo "Restarting openclaw-gateway service..."',
        "systemctl restart openclaw-gateway",
        'echo "openclaw-gateway service restarted"',
    ]))
    return _compact([
        _preamble("OpenClaw NixOS agent configuration"),
        _profile_step(request, target, chown=True),
        _git_identity_step(request, target),
        _deps_step(request, target, install=False),
        _coding_agent_step(request, target),
        *_hook_steps(request, target, StepKind.POST_PROVISION),
        _workspace_step(request, target, chown=True),
        _json_config_step(request, target, chown=True),
        _plugin_install_step(request, target),
        _clawhub_step(request, target),
        *_hook_steps(request, target, StepKind.PRE_START),
        _post_setup_step(request),
        network,
        service,
        _footer("OpenClaw NixOS agent"),
        _device_approval_step(_approve_command(target)),
    ])


def assemble_nix_docker(request: DeploymentRequest) -> List[Step]:
    """Pre-built container: runtime-only configuration, gateway runs in the foreground."""
    target = _NIX_DOCKER
    exports = "\n".join(var.render() for var in build_profile_env(request))
    return _compact([
        _preamble("OpenClaw Nix agent configuration"),
        Step(StepKind.ENVIRONMENT, f"# Export agent environment\n{exports}") if exports else None,
        _git_identity_step(request, target),
        _deps_step(request, target, install=False),
        _coding_agent_step(request, target),
        *_hook_steps(request, target, StepKind.POST_PROVISION),
        _workspace_step(request, target, chown=False),
        _json_config_step(request, target, chown=False),
        _plugin_install_step(request, target),
        _clawhub_step(request, target),
        *_hook_steps(request, target, StepKind.PRE_START),
        _post_setup_step(request),
        _footer("OpenClaw Nix agent"),
        _foreground_gateway(target),
        _device_approval_step(_approve_command(target)),
        Step(StepKind.FOOTER, "wait $GW_PID"),
    ])


_ASSEMBLERS = {
    ScriptVariant.FULL: assemble_full,
    ScriptVariant.NIX_VM: assemble_nix_vm,
    ScriptVariant.NIX_DOCKER: assemble_nix_docker,
}


# ============================================================================
# Public API
# ============================================================================

def check_step_order(steps: List[Step]):
    """Enforce postProvision < config write < preStart.

    Raises:
        ScriptOrderError: no single config write, or a hook on the wrong side of it
    """
    writes = [i for i, s in enumerate(steps) if s.kind == StepKind.CONFIG_WRITE]
    if len(writes) != 1:
        raise ScriptOrderError(f"expected exactly one config write step, found {len(writes)}")
    write_index = writes[0]
    for i, step in enumerate(steps):
        if step.kind == StepKind.POST_PROVISION and i > write_index:
            raise ScriptOrderError(f"postProvision hook for {step.plugin} runs after the config write")
        if step.kind == StepKind.PRE_START and i < write_index:
            raise ScriptOrderError(f"preStart hook for {step.plugin} runs before the config write")


def render_steps(steps: List[Step]) -> str:
    return "\n\n".join(step.body for step in steps if step.body) + "\n"


def build_steps(request: DeploymentRequest, variant: ScriptVariant) -> List[Step]:
    steps = _ASSEMBLERS[ScriptVariant(variant)](request)
    check_step_order(steps)
    return steps


def assemble_script(request: DeploymentRequest, variant: ScriptVariant = ScriptVariant.NIX_VM) -> str:
    """Bootstrap script text with ${VAR} placeholders still in place.

    Raises:
        ConfigurationError: unknown provider, bad workspace path, or ordering violation
    """
    script = render_steps(build_steps(request, variant))
    logger.info(f"Assembled {ScriptVariant(variant).value} script ({len(script)} bytes)")
    return script
