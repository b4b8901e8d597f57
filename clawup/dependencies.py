"""Shared service instances for the HTTP routers and the CLI."""

import logging

from clawup.services.deployment_service import DeploymentService

logger = logging.getLogger(__name__)

_deployment_service = None


def get_deployment_service() -> DeploymentService:
    """Process-wide DeploymentService, created on first use."""
    global _deployment_service
    if _deployment_service is None:
        _deployment_service = DeploymentService()
        logger.info("DeploymentService ready")
    return _deployment_service


def reset_services():
    """Drop cached services so tests start from a clean slate."""
    global _deployment_service
    _deployment_service = None
