"""Configuration errors raised before any provisioning side effect."""

from typing import Iterable


class ConfigurationError(ValueError):
    """Fatal input error. Raised during synthesis, never caught by the core."""


class UnknownProviderError(ConfigurationError):
    """Model string names a provider that is not in the registry."""

    def __init__(self, provider_key: str, model: str, supported: Iterable[str]):
        self.provider_key = provider_key
        self.model = model
        self.supported = list(supported)
        super().__init__(
            f'Unknown model provider "{provider_key}" from model "{model}". '
            f"Supported: {', '.join(self.supported)}"
        )


class UnknownDepError(ConfigurationError):
    """Dep name has no registry entry."""

    def __init__(self, name: str, known: Iterable[str]):
        self.name = name
        super().__init__(f'Unknown dep "{name}". Known deps: {", ".join(known)}')


class WorkspacePathError(ConfigurationError):
    """Workspace file path escapes the workspace directory."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f'Invalid workspace file path: "{path}". '
            'Paths must be relative and cannot contain "..".'
        )


class ManifestError(ConfigurationError):
    """Identity bundle or plugin manifest could not be loaded."""


class ScriptOrderError(ConfigurationError):
    """Assembled steps violate the hook ordering contract."""
