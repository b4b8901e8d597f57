"""Global constants for clawup provisioning."""

import os
from pathlib import Path

# Directory paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent

_log_dir_env = os.getenv("CLAWUP_LOG_DIR", "")
LOG_DIR = Path(_log_dir_env) if _log_dir_env else PROJECT_ROOT / "logs"

# Gateway defaults
DEFAULT_GATEWAY_PORT = 18789
DEFAULT_TRUSTED_PROXIES = ("127.0.0.1",)

# Model / coding agent defaults
DEFAULT_MODEL = "anthropic/claude-opus-4-6"
DEFAULT_CODING_AGENT = "claude-code"

# Anthropic subscription tokens start with this prefix; console keys do not
ANTHROPIC_OAUTH_PREFIX = "sk-ant-oat"
ANTHROPIC_OAUTH_ENV_VAR = "CLAUDE_CODE_OAUTH_TOKEN"

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# Runtime versions installed by the full image variant
DEFAULT_NODE_VERSION = 22
DEFAULT_NVM_VERSION = "0.40.1"
DEFAULT_OPENCLAW_VERSION = "latest"

# Hook timeouts (milliseconds)
RESOLVE_HOOK_TIMEOUT_MS = int(os.getenv("CLAWUP_HOOK_RESOLVE_TIMEOUT_MS", "30000"))
LIFECYCLE_HOOK_TIMEOUT_MS = int(os.getenv("CLAWUP_HOOK_LIFECYCLE_TIMEOUT_MS", "120000"))

# Placeholders that are resolved on the target machine, never at generation time
RUNTIME_VARIABLES = frozenset({"HOME", "MODEL", "BINARY_PATH", "GITHUB_TOKEN"})

# Home directories per image flavour
UBUNTU_HOME = "/home/ubuntu"
OPENCLAW_HOME = "/home/openclaw"

GIT_EMAIL_DOMAIN = "clawup.sh"
ACK_REACTION = "eyes"
HEARTBEAT = {"every": "1m", "session": "main"}
ACP_DEFAULT_AGENT = "default"
CLI_BACKEND_KEY = "claude-cli"

# Seconds to wait for the gateway's pairing request before auto-approving it
DEVICE_APPROVAL_DELAY = 3
