"""
safeddl Coordinator - Main Application Entry Point

FastAPI application that owns execution records for the index agents:
atomic claims, status transitions, audit trail, rollback records and the
operator kill switch.
"""

from contextlib import asynccontextmanager
from typing import Any, cast

import logging
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from safeddl.config import settings
from safeddl.api.dependencies import require_api_key
from safeddl.connectors import postgres_pool

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT,
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(settings.LOG_FILE)
        if settings.LOG_FILE
        else logging.NullHandler(),
    ],
)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("aiomysql").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager - opens and closes the coordinator store pool.
    """
    logger.info("safeddl coordinator starting up...")
    logger.info(
        "Environment: %s", "Development" if settings.APP_DEBUG else "Production"
    )

    if settings.COORDINATOR_CONNECT_ON_STARTUP:
        try:
            logger.info("Initializing coordinator store pool...")
            await postgres_pool.get_default_pool().initialize()
            logger.info("Coordinator store pool initialized")
        except Exception as e:
            logger.error("Failed to initialize coordinator store pool: %s", e)
            logger.warning("Application starting without a store connection")
    else:
        logger.info(
            "Not connecting to the coordinator store on startup "
            "(set COORDINATOR_CONNECT_ON_STARTUP=true to initialize at boot)"
        )

    yield

    logger.info("safeddl coordinator shutting down...")
    try:
        await postgres_pool.close_default_pool()
        logger.info("Coordinator store pool closed")
    except Exception as e:
        logger.error("Error closing coordinator store pool: %s", e)


app = FastAPI(
    title="safeddl Coordinator",
    description="Claim coordination, audit trail and kill switch for verified online index changes",
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

if settings.APP_DEBUG:
    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        dict: Service health status and coordinator store reachability
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "service": "safeddl-coordinator",
        "version": APP_VERSION,
        "environment": "development" if settings.APP_DEBUG else "production",
        "checks": {},
    }

    try:
        pool = postgres_pool.get_default_pool()
        stats = await pool.get_pool_stats()
        is_healthy = await pool.is_healthy()
        health_status["checks"]["store"] = {
            "status": "healthy" if is_healthy else "unhealthy",
            "pool": stats,
        }
        if not is_healthy:
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["checks"]["store"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "degraded"

    return health_status


# ============================================================================
# API Routes
# ============================================================================

from safeddl.api.routes import audit  # noqa: E402
from safeddl.api.routes import executions  # noqa: E402
from safeddl.api.routes import kill_switch  # noqa: E402

_api_dependencies = [Depends(require_api_key)]

app.include_router(
    executions.router, prefix="/api", tags=["executions"], dependencies=_api_dependencies
)
app.include_router(
    kill_switch.router, prefix="/api", tags=["kill_switch"], dependencies=_api_dependencies
)
app.include_router(
    audit.router, prefix="/api", tags=["audit"], dependencies=_api_dependencies
)
