# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the Inventory Studio API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.dependencies import get_orchestrator
from app.exceptions import (
    StudioException,
    application_error_handler,
    studio_exception_handler,
)
from app.routers import health, studio, uploads
from app.websocket import routes as websocket_routes
from lib.utils import ApplicationError

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: log configuration, warn when storage will degrade to inline
    - Shutdown: close the image fetcher's connection pool
    """
    logger.info(f"Starting Inventory Studio API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    if not settings.storage_configured:
        logger.warning("Object storage not configured; generated images will be returned inline")

    yield

    logger.info("Shutting down Inventory Studio API")
    if get_orchestrator.cache_info().currsize:
        await get_orchestrator().fetcher.aclose()


# Create FastAPI application
app = FastAPI(
    title="Inventory Studio API",
    description="""
## AI Studio for Inventory Items

Upload item photos, turn them into catalogue shots and draft marketplace
listings, all under hard time budgets with partial results instead of errors.

### How It Works

1. **Upload Photos** - Start a batch; photos upload concurrently
2. **Watch Progress** - Follow the batch over WebSocket (or poll it)
3. **Hand Off** - Release committed photo URLs once every upload settled
4. **Generate** - Catalogue photos and listing copy for an item
5. **Apply** - Save the results you keep onto the item

### Partial Results

Every generation returns `{success, result, partial, duration_ms}`.
Images the budget could not cover are reported as `not_attempted`, and
listing copy falls back from web-researched to quick mode when needed.
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Uploads",
            "description": "Concurrent photo upload batches",
        },
        {
            "name": "Studio",
            "description": "AI catalogue photos and listing copy",
        },
        {
            "name": "WebSocket",
            "description": "Real-time upload batch updates",
        },
        {
            "name": "Health",
            "description": "API health and readiness checks",
        },
    ],
)


# =============================================================================
# Middleware
# =============================================================================

# CORS middleware - allows cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(StudioException)
async def handle_studio_exception(request: Request, exc: StudioException):
    """Handle HTTP-level studio exceptions."""
    return await studio_exception_handler(request, exc)


@app.exception_handler(ApplicationError)
async def handle_application_error(request: Request, exc: ApplicationError):
    """Handle pipeline errors (auth, validation, uploads in flight, ...)."""
    return await application_error_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Health check endpoints
app.include_router(
    health.router,
    prefix="/api/v1",
    tags=["Health"]
)

# Photo upload batches
app.include_router(
    uploads.router,
    prefix="/api/v1/uploads",
    tags=["Uploads"]
)

# AI studio generation and apply
app.include_router(
    studio.router,
    prefix="/api/v1/studio",
    tags=["Studio"]
)

# WebSocket endpoints (Real-time updates)
app.include_router(
    websocket_routes.router,
    tags=["WebSocket"]
)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "Inventory Studio API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
