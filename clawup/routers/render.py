"""Render endpoints - synthesized config and bootstrap scripts."""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from clawup.dependencies import get_deployment_service
from clawup.errors import ConfigurationError
from clawup.models.requests import DeploymentRequest, RenderRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/render", tags=["render"])


@router.post("")
async def render_script(body: RenderRequest):
    """Render config, command list and bootstrap script for one agent."""
    service = get_deployment_service()
    try:
        result = service.render(body.deployment, body.variant)
    except (ConfigurationError, ValidationError) as e:
        logger.warning(f"Render rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.post("/config")
async def render_config(body: DeploymentRequest):
    """Render only openclaw.json and its equivalent config set commands."""
    service = get_deployment_service()
    try:
        return service.render_config(body)
    except (ConfigurationError, ValidationError) as e:
        logger.warning(f"Config render rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
