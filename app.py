"""FastAPI application for the clawup render service."""

import logging
import os
from dotenv import load_dotenv

# Secrets and LOG_LEVEL may come from a local .env
load_dotenv('.env')

# Logging is configured before project modules create their loggers
log_level = os.getenv('LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=getattr(logging, log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from fastapi import FastAPI
from clawup import __version__
from clawup.routers import registry_router, render_router

app = FastAPI(
    title="clawup",
    description="Config synthesis and bootstrap script rendering for OpenClaw agents",
    version=__version__
)

app.include_router(render_router)  # /api/render endpoints
app.include_router(registry_router)  # /api/registry endpoints


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok", "version": __version__}


@app.on_event("startup")
async def startup_event():
    """Application startup event."""
    from clawup.dependencies import get_deployment_service

    logger.info(f"Starting clawup render service v{__version__}")
    get_deployment_service()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event."""
    logger.info("Shutting down clawup render service")


if __name__ == "__main__":
    import uvicorn
    host = os.getenv("CLAWUP_HOST", "127.0.0.1")
    port = int(os.getenv("CLAWUP_PORT", "8787"))
    uvicorn.run("app:app", host=host, port=port)
