"""Coding agent registry - how each coding CLI is installed, configured and wired as a backend."""

import logging
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from clawup.services.providers import strip_provider

logger = logging.getLogger(__name__)

# CLI backend fields holding one of these values are left out of openclaw.json
OMIT_SENTINELS = ("", "never")


@dataclass(frozen=True)
class AgentSecret:
    env_var: str
    scope: str  # "agent" | "global"


@dataclass(frozen=True)
class CliBackend:
    """openclaw cliBackends entry for a coding agent."""
    command: str
    args: Tuple[str, ...]
    output: str
    model_arg: str
    session_arg: str
    session_mode: str
    system_prompt_arg: str
    system_prompt_when: str
    image_arg: Optional[str] = None
    image_mode: Optional[str] = None

    _CONFIG_KEYS = {
        "command": "command",
        "args": "args",
        "output": "output",
        "model_arg": "modelArg",
        "session_arg": "sessionArg",
        "session_mode": "sessionMode",
        "system_prompt_arg": "systemPromptArg",
        "system_prompt_when": "systemPromptWhen",
        "image_arg": "imageArg",
        "image_mode": "imageMode",
    }

    def to_config(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, dropping unset and sentinel fields."""
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or (isinstance(value, str) and value in OMIT_SENTINELS):
                continue
            result[self._CONFIG_KEYS[f.name]] = list(value) if isinstance(value, tuple) else value
        return result


@dataclass(frozen=True)
class CodingAgentSpec:
    key: str
    display_name: str
    install_script: str  # Runs as the unprivileged agent user
    configure_model_script: str  # ${MODEL} is replaced with the provider-less model id
    cli_backend: CliBackend
    secrets: Mapping[str, AgentSecret] = field(default_factory=dict)
    openai_compatible: bool = False  # Speaks the OpenAI API, so OpenRouter can be aliased in

    def configure_script_for(self, model: str) -> str:
        return self.configure_model_script.replace("${MODEL}", strip_provider(model))


_CLAUDE_CODE_INSTALL = """\
curl -fsSL https://claude.ai/install.sh | bash

# Add .local/bin to PATH in .bashrc if not already there
if ! grep -q '.local/bin' ~/.bashrc 2>/dev/null; then
  echo 'export PATH="$HOME/.local/bin:$PATH"' >> ~/.bashrc
fi

BINARY_PATH="$HOME/.local/bin/claude"
if [ -x "$BINARY_PATH" ] || command -v claude &>/dev/null; then
  echo "Claude Code installed successfully"
else
  echo "WARNING: Claude Code installation may have failed"
fi"""

_CLAUDE_CODE_CONFIGURE = """\
mkdir -p ~/.claude
echo '{"model":"${MODEL}","fastMode":true}' > ~/.claude/settings.json
echo "Claude Code default model set to ${MODEL} (fast mode)\""""

_CODEX_INSTALL = """\
npm install -g @openai/codex
if command -v codex &>/dev/null; then
  echo "Codex CLI installed successfully"
else
  echo "WARNING: Codex CLI not found after install"
fi"""

_CODEX_CONFIGURE = """\
mkdir -p ~/.codex
cat > ~/.codex/config.toml << 'CODEX_CONFIG'
model = "${MODEL}"
CODEX_CONFIG
echo "Codex default model set to ${MODEL}\""""


CODING_AGENT_REGISTRY: Mapping[str, CodingAgentSpec] = MappingProxyType({
    "claude-code": CodingAgentSpec(
        key="claude-code",
        display_name="Claude Code",
        install_script=_CLAUDE_CODE_INSTALL,
        configure_model_script=_CLAUDE_CODE_CONFIGURE,
        cli_backend=CliBackend(
            command="claude",
            args=("-p", "--output-format", "stream-json", "--verbose"),
            output="jsonl",
            model_arg="--model",
            session_arg="--resume",
            session_mode="always",
            system_prompt_arg="--append-system-prompt",
            system_prompt_when="always",
        ),
    ),
    "codex": CodingAgentSpec(
        key="codex",
        display_name="Codex (OpenAI)",
        install_script=_CODEX_INSTALL,
        configure_model_script=_CODEX_CONFIGURE,
        cli_backend=CliBackend(
            command="codex",
            args=("exec", "--full-auto", "--json", "--skip-git-repo-check"),
            output="jsonl",
            model_arg="--model",
            session_arg="",
            session_mode="never",
            system_prompt_arg="",
            system_prompt_when="never",
        ),
        secrets=MappingProxyType({
            "OpenaiApiKey": AgentSecret(env_var="OPENAI_API_KEY", scope="agent"),
        }),
        openai_compatible=True,
    ),
})


def get_coding_agent(name: str) -> Optional[CodingAgentSpec]:
    """Registry lookup; unknown agents are tolerated by callers, so this never raises."""
    spec = CODING_AGENT_REGISTRY.get(name)
    if spec is None:
        logger.warning(f"Unknown coding agent '{name}', no CLI backend will be configured")
    return spec
