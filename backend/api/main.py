"""
FreightOps API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request

from core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()

SHORT_ROUTE_MAP = {
    "/shipments": "/api/v1/shipments",
    "/compliance-check": "/api/v1/compliance-check",
    "/metrics": "/api/v1/metrics",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("freightops.startup", version=settings.app_version, env=settings.app_env)
    yield
    logger.info("freightops.shutdown")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Freight shipment lifecycle: compliance, ETA risk, and operations metrics",
    lifespan=lifespan,
)


@app.middleware("http")
async def short_route_alias_middleware(request: Request, call_next):
    """
    Unversioned aliases used by the dashboard and ingestion workflows:
      - /shipments/* -> /api/v1/shipments/*
      - /compliance-check/* -> /api/v1/compliance-check/*
      - /metrics -> /api/v1/metrics
    """
    original_path = request.scope.get("path", "")
    rewritten_to: str | None = None

    for short_prefix, canonical_prefix in SHORT_ROUTE_MAP.items():
        if original_path == short_prefix or original_path.startswith(f"{short_prefix}/"):
            suffix = original_path[len(short_prefix) :]
            request.scope["path"] = f"{canonical_prefix}{suffix}"
            rewritten_to = request.scope["path"]
            break

    response = await call_next(request)
    if rewritten_to:
        response.headers["Link"] = f'<{rewritten_to}>; rel="canonical"'
    return response


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import compliance, debug, metrics, shipments

app.include_router(shipments.router)
app.include_router(compliance.router)
app.include_router(metrics.router)
if settings.debug:
    app.include_router(debug.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
