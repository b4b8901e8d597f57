"""Dep registry - system tools an agent needs that are not openclaw plugins."""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, List, Mapping

from clawup.errors import UnknownDepError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepSecret:
    env_var: str
    scope: str  # "agent" | "global"
    check_command: str  # Exit 0 on the agent host means the secret is configured


@dataclass(frozen=True)
class DepSpec:
    name: str
    display_name: str
    install_script: str  # Empty when the tool is baked into the base image
    post_install_script: str  # May reference ${ENV_VAR} placeholders
    secrets: Mapping[str, DepSecret] = field(default_factory=dict)


@dataclass(frozen=True)
class DepSecretRequirement:
    env_var: str
    scope: str
    config_key_suffix: str


_GH_POST_INSTALL = """\
if echo "${GITHUB_TOKEN}" | gh auth login --with-token 2>&1; then
  gh auth setup-git
  echo "GitHub CLI authenticated successfully"
else
  echo "WARNING: GitHub CLI authentication failed"
  echo "   You can authenticate manually later with: gh auth login"
fi"""

_BRAVE_CHECK = (
    "python3 -c \"import json,sys;"
    "c=json.load(open('/home/openclaw/.openclaw/openclaw.json'));"
    "sys.exit(0 if c.get('tools',{}).get('web',{}).get('search',{}).get('apiKey') else 1)\""
)

DEP_REGISTRY: Mapping[str, DepSpec] = MappingProxyType({
    "gh": DepSpec(
        name="gh",
        display_name="GitHub CLI",
        install_script="",
        post_install_script=_GH_POST_INSTALL,
        secrets=MappingProxyType({
            "GithubToken": DepSecret(
                env_var="GITHUB_TOKEN",
                scope="agent",
                check_command="gh auth status 2>&1 | grep -qi 'logged in'",
            ),
        }),
    ),
    # Config only: the key lands in tools.web.search via the config synthesizer
    "brave-search": DepSpec(
        name="brave-search",
        display_name="Brave Search",
        install_script="",
        post_install_script="",
        secrets=MappingProxyType({
            "BraveApiKey": DepSecret(
                env_var="BRAVE_API_KEY",
                scope="global",
                check_command=_BRAVE_CHECK,
            ),
        }),
    ),
})


def resolve_deps(names: Iterable[str]) -> List[DepSpec]:
    """Resolve dep names in order. Unknown names are a hard error."""
    resolved = []
    for name in names:
        spec = DEP_REGISTRY.get(name)
        if spec is None:
            raise UnknownDepError(name, DEP_REGISTRY.keys())
        resolved.append(spec)
    logger.info(f"Resolved deps: {[d.name for d in resolved]}")
    return resolved


def collect_dep_secrets(deps: Iterable[DepSpec]) -> List[DepSecretRequirement]:
    """Flatten dep secrets, first declaration of each env var wins."""
    seen = set()
    result = []
    for dep in deps:
        for suffix, secret in dep.secrets.items():
            if secret.env_var in seen:
                continue
            seen.add(secret.env_var)
            result.append(DepSecretRequirement(
                env_var=secret.env_var,
                scope=secret.scope,
                config_key_suffix=suffix,
            ))
    return result
