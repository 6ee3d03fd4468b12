"""
LandlordComply - FastAPI Application
Security deposit compliance for landlords.

Run with:
    uvicorn landlordcomply.main:app --reload
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from landlordcomply.core.config import get_settings
from landlordcomply.core.database import close_db, get_db_session, init_db
from landlordcomply.core.errors import setup_exception_handlers
from landlordcomply.routers import (
    cases,
    checklist,
    dashboard,
    deductions,
    documents,
    feedback,
    health,
    jurisdictions,
    properties,
    start,
)
from landlordcomply.services.seed import seed_jurisdictions


# =============================================================================
# Logging Setup
# =============================================================================

def setup_logging():
    """Configure logging from settings."""
    from landlordcomply.core.logging_config import setup_logging as configure_logging
    settings = get_settings()
    configure_logging(
        level=settings.log_level.upper(),
        json_format=settings.log_json_format,
        log_file=Path(settings.log_file) if settings.log_file else None,
    )


# =============================================================================
# Lifespan (Startup/Shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger = logging.getLogger(__name__)

    logger.info("Starting %s v%s (%s)", settings.app_name, settings.app_version, settings.app_stage)
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    await init_db()

    if settings.seed_jurisdictions_on_startup:
        async with get_db_session() as db:
            await seed_jurisdictions(db)

    yield

    logger.info("Shutting down")
    await close_db()


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Application factory.
    Creates and configures the FastAPI application.
    """
    settings = get_settings()
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
        docs_url="/api/docs" if settings.enable_docs else None,
        redoc_url="/api/redoc" if settings.enable_docs else None,
        openapi_url="/api/openapi.json" if settings.enable_docs else None,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    request_logger = logging.getLogger("landlordcomply.requests")

    # Request ID + timing middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"
        request_logger.info(
            "%s %s -> %d (%.1f ms) [%s]",
            request.method, request.url.path, response.status_code, elapsed_ms, request_id,
        )
        return response

    setup_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(jurisdictions.router)
    app.include_router(properties.router)
    app.include_router(cases.router)
    app.include_router(deductions.router)
    app.include_router(checklist.router)
    app.include_router(documents.router)
    app.include_router(dashboard.router)
    app.include_router(start.router)
    app.include_router(feedback.router)

    return app


app = create_app()


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "landlordcomply.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
