"""Registry inspection endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from clawup.plugins.registry import PLUGIN_MANIFEST_REGISTRY
from clawup.plugins.resolver import is_builtin, resolve_plugin
from clawup.services.coding_agents import CODING_AGENT_REGISTRY
from clawup.services.deps import DEP_REGISTRY
from clawup.services.providers import MODEL_PROVIDERS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/registry", tags=["registry"])


@router.get("/providers")
async def list_providers():
    return {
        "providers": [
            {
                "key": spec.key,
                "name": spec.name,
                "env_var": spec.env_var,
                "key_prefix": spec.key_prefix,
                "models": [{"value": m.value, "label": m.label} for m in spec.models],
            }
            for spec in MODEL_PROVIDERS.values()
        ]
    }


@router.get("/coding-agents")
async def list_coding_agents():
    return {
        "coding_agents": [
            {
                "key": spec.key,
                "display_name": spec.display_name,
                "cli_backend": spec.cli_backend.to_config(),
                "secrets": {k: s.env_var for k, s in spec.secrets.items()},
            }
            for spec in CODING_AGENT_REGISTRY.values()
        ]
    }


@router.get("/deps")
async def list_deps():
    return {
        "deps": [
            {
                "name": dep.name,
                "display_name": dep.display_name,
                "secrets": {k: {"env_var": s.env_var, "scope": s.scope} for k, s in dep.secrets.items()},
            }
            for dep in DEP_REGISTRY.values()
        ]
    }


@router.get("/plugins")
async def list_plugins():
    """List built-in plugin manifests."""
    return {"plugins": [m.model_dump(mode="json", by_alias=True) for m in PLUGIN_MANIFEST_REGISTRY.values()]}


@router.get("/plugins/{name}")
async def get_plugin(name: str):
    """Resolved manifest; unknown names get the generic fallback."""
    manifest = resolve_plugin(name)
    return {"builtin": is_builtin(name), "manifest": manifest.model_dump(mode="json", by_alias=True)}


@router.get("/coding-agents/{key}")
async def get_coding_agent(key: str):
    spec = CODING_AGENT_REGISTRY.get(key)
    if spec is None:
        raise HTTPException(status_code=404, detail=f"Coding agent '{key}' not found")
    return {
        "key": spec.key,
        "display_name": spec.display_name,
        "install_script": spec.install_script,
        "configure_model_script": spec.configure_model_script,
        "cli_backend": spec.cli_backend.to_config(),
    }


@router.get("/deps/{name}")
async def get_dep(name: str):
    dep = DEP_REGISTRY.get(name)
    if dep is None:
        raise HTTPException(status_code=404, detail=f"Dep '{name}' not found")
    return {
        "name": dep.name,
        "display_name": dep.display_name,
        "install_script": dep.install_script,
        "post_install_script": dep.post_install_script,
        "secrets": {k: {"env_var": s.env_var, "scope": s.scope} for k, s in dep.secrets.items()},
    }
