"""
Keyword Foundry API

FastAPI application exposing the keyword research endpoints.

Run locally:
    uvicorn api.app:app --reload
"""

import logging
import os
import sys
from datetime import datetime

from dotenv import load_dotenv
from fastapi import FastAPI

from foundry import __version__
from foundry.database.session import check_db_connection
from foundry.services import get_services

from api.research import router as research_router

load_dotenv()

# Configure logging to stdout (hosting platforms treat stderr as errors)
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

app = FastAPI(
    title="Keyword Foundry Gateway",
    description="SEO keyword research backed by DataForSEO",
    version=__version__,
)

app.include_router(research_router)


# ============================================================================
# LIFECYCLE
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Build services (and tables) on startup."""
    logger.info("Initializing services...")
    services = get_services()
    if check_db_connection(services.engine):
        logger.info("Database connection verified")
    else:
        logger.warning("Database connection check failed - usage logging and caching will degrade")


@app.on_event("shutdown")
async def shutdown_event():
    await get_services().close()


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/health")
async def health():
    services = get_services()
    return {
        "status": "healthy",
        "version": __version__,
        "dataforseo_configured": services.client.has_credentials,
        "cache": services.result_cache.health_check(),
        "usage_log": services.usage_logger.get_stats(),
        "timestamp": datetime.utcnow().isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.app:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
