"""Model provider registry - credential shapes and onboarding conventions."""

import logging
import shlex
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from clawup.constants import ANTHROPIC_OAUTH_ENV_VAR, ANTHROPIC_OAUTH_PREFIX
from clawup.errors import UnknownProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelOption:
    value: str
    label: str


@dataclass(frozen=True)
class ModelProviderSpec:
    """Configuration for a single model provider."""
    key: str
    name: str
    env_var: str  # Environment variable holding the API key
    key_prefix: str  # Expected credential prefix, "" when the provider has none
    onboard_flags_template: str  # "{key}" is replaced with the shell-quoted credential
    models: Tuple[ModelOption, ...] = field(default_factory=tuple)
    oauth_prefix: Optional[str] = None  # Only anthropic distinguishes subscription tokens
    oauth_env_var: Optional[str] = None

    def is_oauth_token(self, credential: str) -> bool:
        return bool(self.oauth_prefix) and credential.startswith(self.oauth_prefix)

    def credential_env_var(self, credential: str) -> str:
        """Env var a credential belongs under.

        OAuth tokens and console keys are mutually exclusive destinations.
        """
        if self.is_oauth_token(credential):
            return self.oauth_env_var
        return self.env_var

    def onboard_flags(self, credential: str) -> str:
        return self.onboard_flags_template.format(key=shlex.quote(credential))


# Predefined providers - NO SECRETS, only metadata
MODEL_PROVIDERS: Mapping[str, ModelProviderSpec] = MappingProxyType({
    "anthropic": ModelProviderSpec(
        key="anthropic",
        name="Anthropic",
        env_var="ANTHROPIC_API_KEY",
        key_prefix="sk-ant-",
        onboard_flags_template="--anthropic-api-key {key}",
        models=(
            ModelOption("anthropic/claude-opus-4-6", "Claude Opus 4.6 (Recommended)"),
            ModelOption("anthropic/claude-sonnet-4-5", "Claude Sonnet 4.5"),
            ModelOption("anthropic/claude-haiku-4-5", "Claude Haiku 4.5"),
        ),
        oauth_prefix=ANTHROPIC_OAUTH_PREFIX,
        oauth_env_var=ANTHROPIC_OAUTH_ENV_VAR,
    ),
    "openai": ModelProviderSpec(
        key="openai",
        name="OpenAI",
        env_var="OPENAI_API_KEY",
        key_prefix="sk-",
        onboard_flags_template="--openai-api-key {key}",
        models=(
            ModelOption("openai/gpt-4o", "GPT-4o"),
            ModelOption("openai/o3", "o3"),
            ModelOption("openai/o4-mini", "o4-mini"),
        ),
    ),
    "google": ModelProviderSpec(
        key="google",
        name="Google Gemini",
        env_var="GOOGLE_API_KEY",
        key_prefix="",
        onboard_flags_template="--auth-choice gemini-api-key --gemini-api-key {key}",
        models=(
            ModelOption("google/gemini-2.5-pro", "Gemini 2.5 Pro"),
            ModelOption("google/gemini-2.5-flash", "Gemini 2.5 Flash"),
        ),
    ),
    "openrouter": ModelProviderSpec(
        key="openrouter",
        name="OpenRouter",
        env_var="OPENROUTER_API_KEY",
        key_prefix="sk-or-",
        onboard_flags_template="--auth-choice apiKey --token-provider openrouter --token {key}",
    ),
})


def get_provider_for_model(model: str) -> str:
    """Provider key of a model string: text before the first "/", or the whole string."""
    provider_key, _, _ = model.partition("/")
    return provider_key


def strip_provider(model: str) -> str:
    """Drop the provider prefix, e.g. anthropic/claude-opus-4-6 -> claude-opus-4-6."""
    _, sep, model_id = model.partition("/")
    return model_id if sep else model


def require_provider(model: str) -> ModelProviderSpec:
    """Look up the provider for a model string, failing fast on unknown prefixes."""
    provider_key = get_provider_for_model(model)
    spec = MODEL_PROVIDERS.get(provider_key)
    if spec is None:
        raise UnknownProviderError(provider_key, model, MODEL_PROVIDERS.keys())
    return spec


def provider_env(
    spec: ModelProviderSpec,
    credentials: Mapping[str, str],
) -> Dict[str, str]:
    """Env var placement for one provider's credential, {} when none is available."""
    credential = credentials.get(spec.key)
    if not credential:
        return {}
    return {spec.credential_env_var(credential): credential}
