"""API routers package."""

from .registry import router as registry_router
from .render import router as render_router

__all__ = ["registry_router", "render_router"]
