"""Request models for deployment rendering."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clawup.constants import (
    DEFAULT_CODING_AGENT,
    DEFAULT_GATEWAY_PORT,
    DEFAULT_MODEL,
    DEFAULT_NODE_VERSION,
    DEFAULT_NVM_VERSION,
    DEFAULT_OPENCLAW_VERSION,
    DEFAULT_TRUSTED_PROXIES,
)
from clawup.plugins.manifest import ManifestModel, PluginManifest
from clawup.plugins.resolver import resolve_plugin
from clawup.services.deps import DepSpec, resolve_deps
from clawup.utils.workspace import validate_workspace_path


class ScriptVariant(str, Enum):
    """Bootstrap script target shapes."""

    FULL = "full"  # Plain Ubuntu: installs everything itself
    NIX_VM = "nix-vm"  # Pre-built NixOS VM image
    NIX_DOCKER = "nix-docker"  # Pre-built container image


class PluginEntry(BaseModel):
    """A plugin as deployed: manifest plus concrete config and resolved secret values."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Plugin package name")
    manifest: Optional[PluginManifest] = Field(None, description="Resolved from the registry when omitted")
    config: Dict[str, Any] = Field(default_factory=dict, description="Non-secret plugin config")
    secrets: Dict[str, str] = Field(default_factory=dict, repr=False, description="envVar -> resolved value")
    enabled: bool = True

    @model_validator(mode='before')
    @classmethod
    def fill_manifest(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("manifest") is None and data.get("name"):
            data = {**data, "manifest": resolve_plugin(data["name"])}
        return data

    @model_validator(mode='after')
    def manifest_matches_name(self):
        if self.manifest.name != self.name:
            raise ValueError(f'manifest name "{self.manifest.name}" does not match plugin "{self.name}"')
        return self

    def secret_value(self, config_key: str) -> Optional[str]:
        """Resolved value for a manifest secret, None when absent or empty."""
        secret = self.manifest.secrets.get(config_key)
        if secret is None:
            return None
        return self.secrets.get(secret.env_var) or None


class DeploymentRequest(BaseModel):
    """Everything needed to synthesize one agent's config and bootstrap script."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "model": "anthropic/claude-opus-4-6",
                    "provider_api_keys": {"anthropic": "sk-ant-api03-XXXX"},
                    "gateway_token": "gw-token",
                    "plugins": [{"name": "slack", "config": {"dm": {"policy": "allow"}}}],
                    "agent_name": "Juno",
                }
            ]
        },
    )

    # Model / coding agent
    model: str = Field(DEFAULT_MODEL, description="<provider>/<modelId>")
    backup_model: Optional[str] = Field(None, description="Fallback model, may use another provider")
    coding_agent: str = Field(DEFAULT_CODING_AGENT, description="Coding agent CLI key")
    provider_api_keys: Dict[str, str] = Field(
        default_factory=dict, repr=False, description="provider key -> credential"
    )

    # Gateway
    gateway_token: str = Field("", repr=False)
    gateway_port: int = Field(DEFAULT_GATEWAY_PORT, gt=0, lt=65536)
    trusted_proxies: List[str] = Field(default_factory=lambda: list(DEFAULT_TRUSTED_PROXIES))

    # Plugins / deps / workspace
    plugins: List[PluginEntry] = Field(default_factory=list)
    deps: List[str] = Field(default_factory=list)
    dep_secrets: Dict[str, str] = Field(default_factory=dict, repr=False, description="envVar -> value")
    workspace_files: Dict[str, str] = Field(default_factory=dict, description="relative path -> content")
    env_vars: Dict[str, str] = Field(default_factory=dict, description="Additional plain env vars")
    clawhub_skills: List[str] = Field(default_factory=list)
    post_setup_commands: List[str] = Field(default_factory=list)

    # Identity
    agent_name: Optional[str] = None
    agent_emoji: Optional[str] = None
    brave_api_key: Optional[str] = Field(None, repr=False)

    # Target / toggles
    target: str = Field("local", pattern="^(aws|hetzner|local)$")
    tailscale_hostname: Optional[str] = None
    tailscale_auth_key: str = Field("", repr=False)
    skip_tailscale: bool = False
    skip_docker: bool = False
    foreground_mode: bool = Field(False, description="Exec the gateway instead of installing a daemon")
    create_user: bool = True
    compress: bool = False
    enable_funnel: bool = False

    # Runtime versions (full variant only)
    node_version: int = DEFAULT_NODE_VERSION
    nvm_version: str = DEFAULT_NVM_VERSION
    openclaw_version: str = DEFAULT_OPENCLAW_VERSION

    @field_validator('model', 'coding_agent')
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('value cannot be empty')
        return v.strip()

    @field_validator('backup_model', 'agent_name', 'agent_emoji', 'brave_api_key', 'tailscale_hostname')
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @field_validator('workspace_files')
    @classmethod
    def workspace_paths_safe(cls, v: Dict[str, str]) -> Dict[str, str]:
        for path in v:
            validate_workspace_path(path)
        return v

    @field_validator('deps')
    @classmethod
    def deps_known(cls, v: List[str]) -> List[str]:
        resolve_deps(v)
        return v

    @property
    def resolved_deps(self) -> List[DepSpec]:
        return resolve_deps(self.deps)

    @property
    def manifests(self) -> List[PluginManifest]:
        return [entry.manifest for entry in self.plugins]

    @property
    def web_search_key(self) -> Optional[str]:
        """Explicit key wins; otherwise the brave-search dep secret."""
        return self.brave_api_key or self.dep_secrets.get("BRAVE_API_KEY") or None

    @property
    def funnel_enabled(self) -> bool:
        return self.enable_funnel or any(m.needs_funnel for m in self.manifests)


class RenderRequest(BaseModel):
    """HTTP render body: a deployment plus the target variant."""

    deployment: DeploymentRequest
    variant: ScriptVariant = ScriptVariant.NIX_VM


class IdentityManifest(ManifestModel):
    """identity.yaml - who an agent is and what it ships with."""

    name: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    emoji: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    volume_size: int = Field(..., gt=0, description="Disk size in GB")
    instance_type: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    plugins: List[str] = Field(default_factory=list)
    deps: List[str] = Field(default_factory=list)
    plugin_defaults: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    template_vars: List[str] = Field(default_factory=list)
    model: Optional[str] = None
    backup_model: Optional[str] = None
    coding_agent: Optional[str] = None
    required_secrets: List[str] = Field(default_factory=list)

    @property
    def clawhub_skills(self) -> List[str]:
        """Skill slugs to install from clawhub (entries written as clawhub:<slug>)."""
        return [s.split(":", 1)[1] for s in self.skills if s.startswith("clawhub:")]


class IdentityBundle(BaseModel):
    """A loaded identity: manifest, workspace files, and plugin manifest overrides."""

    model_config = ConfigDict(frozen=True)

    manifest: IdentityManifest
    files: Dict[str, str] = Field(default_factory=dict)
    plugin_manifests: Dict[str, PluginManifest] = Field(default_factory=dict)
