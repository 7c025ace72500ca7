"""FastAPI application for the Claim Scrubber."""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claimscrub import __version__
from claimscrub.api import validation_router
from claimscrub.core.config import settings
from claimscrub.core.database import close_db, init_db

logger = logging.getLogger(__name__)


def prewarm_validation_service() -> dict[str, Any]:
    """Build the validation service at startup so the first request is not cold.

    Returns:
        Service stats, or an error marker if wiring failed.
    """
    start_time = time.perf_counter()
    try:
        from claimscrub.services.claim_validator import get_claim_validation_service

        stats = get_claim_validation_service().get_stats()
    except Exception as e:
        logger.warning(f"Failed to prewarm claim validation service: {e}")
        stats = {"error": str(e)}

    return {
        "prewarm_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
        "validation_service": stats,
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    - Startup: create tables in debug mode, prewarm the validation service
    - Shutdown: close database connections
    """
    if settings.debug and not settings.reference_fixture_path:
        await init_db()

    prewarm_stats = prewarm_validation_service()
    logger.info(f"Validation service ready in {prewarm_stats['prewarm_time_ms']}ms")
    app.state.prewarm_stats = prewarm_stats

    yield

    await close_db()


app = FastAPI(
    title="Claim Scrubber",
    description="API for validating healthcare claims against coding and payer rules and scoring denial risk.",
    version=__version__,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # dashboard dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(validation_router)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, Any]:
    """Health check endpoint (liveness probe)."""
    return {
        "status": "healthy",
        "service": "claim-scrubber",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, Any]:
    """Readiness check endpoint.

    Reports whether the validation service was wired at startup.
    """
    prewarm_stats = getattr(app.state, "prewarm_stats", {})
    service_stats = prewarm_stats.get("validation_service", {})
    return {
        "status": "degraded" if "error" in service_stats else "ready",
        "service": "claim-scrubber",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "validation_service": service_stats,
        "prewarm_time_ms": prewarm_stats.get("prewarm_time_ms", 0),
    }


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint with API info."""
    return {
        "service": "Claim Scrubber API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    uvicorn.run(
        "claimscrub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
