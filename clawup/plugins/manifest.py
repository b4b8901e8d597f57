"""Plugin manifest model - secret, config and hook metadata for an openclaw plugin."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ManifestModel(BaseModel):
    """Manifests are authored in camelCase YAML/JSON and never mutated after loading."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ConfigPath(str, Enum):
    """Where a plugin's config lives in openclaw.json."""

    PLUGINS_ENTRIES = "plugins.entries"
    CHANNELS = "channels"


class SecretInstructions(ManifestModel):
    title: str
    steps: List[str] = Field(default_factory=list)


class PluginSecret(ManifestModel):
    """A single secret that a plugin requires."""

    env_var: str = Field(..., description="Environment variable name, e.g. LINEAR_API_KEY")
    scope: str = Field(..., pattern="^(agent|global)$", description="Per-agent or shared")
    is_secret: bool = Field(..., description="False for non-sensitive values such as UUIDs")
    required: bool = True
    auto_resolvable: bool = Field(default=False, description="Can be resolved by a hook at setup time")
    validator: Optional[str] = Field(default=None, description="Required value prefix, e.g. xoxb-")
    instructions: Optional[SecretInstructions] = None


class ConfigTransform(ManifestModel):
    """Flattens a nested config object into sibling keys."""

    source_key: str
    target_keys: Dict[str, str] = Field(..., description="nested field -> target top-level key")
    remove_source: bool = True


class WebhookSetup(ManifestModel):
    url_path: str = Field(..., description="Path appended to the agent base URL, e.g. /hooks/linear")
    secret_key: str = Field(..., description="Secret used for webhook signature verification")
    instructions: List[str] = Field(default_factory=list)
    config_json_path: str = Field(..., description="Where openclaw.json stores the signing secret")


class OnboardInput(ManifestModel):
    env_var: str
    prompt: str
    instructions: Optional[str] = None
    validator: Optional[str] = None


class OnboardHook(ManifestModel):
    """One-time interactive setup run by the operator's machine."""

    description: str
    inputs: Dict[str, OnboardInput] = Field(default_factory=dict)
    script: str
    run_once: bool = Field(default=False, description="Skip once required secrets are present")

    @field_validator("script")
    @classmethod
    def script_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("onboard hook script cannot be empty")
        return v


class PluginHooks(ManifestModel):
    resolve: Dict[str, str] = Field(default_factory=dict, description="secret key -> script printing its value")
    post_provision: Optional[str] = None
    pre_start: Optional[str] = None
    onboard: Optional[OnboardHook] = None

    @field_validator("resolve")
    @classmethod
    def resolve_scripts_not_empty(cls, v: Dict[str, str]) -> Dict[str, str]:
        for key, script in v.items():
            if not script or not script.strip():
                raise ValueError(f'resolve hook for "{key}" cannot be empty')
        return v

    @field_validator("post_provision", "pre_start")
    @classmethod
    def lifecycle_script_not_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("lifecycle hook script cannot be empty")
        return v


class PluginManifest(ManifestModel):
    """Everything clawup knows about a plugin."""

    name: str = Field(..., min_length=1, description="Plugin package name, e.g. openclaw-linear")
    display_name: str
    installable: bool = Field(..., description="Run `openclaw plugins install` during provisioning")
    needs_funnel: bool = Field(default=False, description="Needs public HTTPS for webhooks")
    config_path: ConfigPath = ConfigPath.PLUGINS_ENTRIES
    secrets: Dict[str, PluginSecret] = Field(default_factory=dict)
    internal_keys: List[str] = Field(default_factory=list, description="Never written to openclaw.json")
    default_config: Optional[Dict[str, Any]] = None
    config_transforms: List[ConfigTransform] = Field(default_factory=list)
    webhook_setup: Optional[WebhookSetup] = None
    hooks: Optional[PluginHooks] = None

    @model_validator(mode="after")
    def validate_secret_references(self):
        """Webhook and resolve hook keys must point at declared secrets."""
        if self.webhook_setup and self.webhook_setup.secret_key not in self.secrets:
            raise ValueError(
                f'webhookSetup.secretKey "{self.webhook_setup.secret_key}" does not exist in secrets'
            )
        if self.hooks:
            for key in self.hooks.resolve:
                secret = self.secrets.get(key)
                if secret is None:
                    raise ValueError(f'hooks.resolve key "{key}" does not exist in secrets')
                if not secret.auto_resolvable:
                    raise ValueError(f'hooks.resolve key "{key}" references a secret that is not autoResolvable')
        return self

    @property
    def is_channel(self) -> bool:
        return self.config_path == ConfigPath.CHANNELS

    def secret_env_vars(self) -> Dict[str, str]:
        """{configKey: envVar} for every declared secret."""
        return {key: secret.env_var for key, secret in self.secrets.items()}
