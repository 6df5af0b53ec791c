# =============================================================================
# app/routers/health.py - Health Check Endpoints
# =============================================================================
# Provides health check endpoints for monitoring and load balancers.
# =============================================================================

import asyncio
from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from app.config import settings
from lib.supabase_client import ITEMS_TABLE, SupabaseClient

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: str
    environment: str
    version: str


class ChecksResponse(BaseModel):
    """Individual service checks."""
    database: str
    storage: str


class ReadinessResponse(BaseModel):
    """
    Readiness check response.

    "degraded" still serves traffic: without storage, generated images are
    returned inline.
    """
    status: str
    checks: ChecksResponse
    timestamp: str


class LivenessResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_database() -> str:
    try:
        client = SupabaseClient.get_client()
        client.table(ITEMS_TABLE).select("id").limit(1).execute()
        return "healthy"
    except Exception as e:
        return f"unhealthy: {str(e)[:50]}"


def _check_storage() -> str:
    if not settings.storage_configured:
        return "not configured"
    try:
        client = SupabaseClient.get_client()
        client.storage.get_bucket(settings.STORAGE_BUCKET)
        return "healthy"
    except Exception as e:
        return f"unhealthy: {str(e)[:50]}"


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns basic health status for load balancers and monitoring.
    """
    return HealthResponse(
        status="healthy",
        timestamp=_now(),
        environment=settings.ENVIRONMENT,
        version="1.0.0",
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check():
    """
    Readiness check endpoint.

    Checks database and storage connectivity.
    """
    database, storage = await asyncio.gather(
        asyncio.to_thread(_check_database),
        asyncio.to_thread(_check_storage),
    )
    checks = ChecksResponse(database=database, storage=storage)
    all_healthy = checks.database == "healthy" and checks.storage == "healthy"

    return ReadinessResponse(
        status="ready" if all_healthy else "degraded",
        checks=checks,
        timestamp=_now(),
    )


@router.get("/health/live", response_model=LivenessResponse)
async def liveness_check():
    """
    Liveness check endpoint.

    Returns whether the service process is alive.
    Used by Kubernetes/Docker for restart decisions.
    """
    return LivenessResponse(
        status="alive",
        timestamp=_now(),
    )
