"""
Lesson URL ingestion service.

FastAPI application serving the ingestion endpoints. Long-running jobs are
handed to the Celery worker (lesson_ingest.workers.celery_app); both share
the orchestrator in lesson_ingest.services.ingestion.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from lesson_ingest.core.config import settings
from lesson_ingest.core.env_validation import validate_or_exit
from lesson_ingest.core.logging import get_logger, setup_logging
from lesson_ingest.db.session import init_db, close_db, check_db_health

# Setup logging
setup_logging()
logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events.
    Handles startup and shutdown tasks.
    """
    # Startup
    logger.info(
        "starting_application",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        version=VERSION,
    )

    validate_or_exit()

    # Initialize database connection pool
    await init_db()

    # Shared connection pool for the scrape and embeddings APIs
    app.state.http_client = httpx.AsyncClient()

    yield

    # Shutdown
    logger.info("shutting_down_application")

    await app.state.http_client.aclose()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Scrape, clean, chunk and embed resource URLs attached to lessons",
    version=VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


# ================================
# Service Endpoints
# ================================

@app.get("/health", tags=["health"])
async def health_check() -> JSONResponse:
    """
    Readiness of the ingestion service.

    The status code follows the database only. Missing upstream API keys
    are reported but do not fail the check, since polling and listing
    still work without them.
    """
    db_healthy = await check_db_health()

    return JSONResponse(
        status_code=200 if db_healthy else 503,
        content={
            "status": "healthy" if db_healthy else "unhealthy",
            "service": "lesson-url-ingestion",
            "environment": settings.APP_ENV,
            "version": VERSION,
            "database": "connected" if db_healthy else "disconnected",
            "scrape_api": "configured" if settings.FIRECRAWL_API_KEY else "missing_key",
            "embedding_api": "configured" if settings.OPENAI_API_KEY else "missing_key",
            "embedding_model": settings.EMBEDDING_MODEL,
        }
    )


@app.get("/", tags=["root"])
async def root() -> JSONResponse:
    """Describe the service and its ingestion endpoints."""
    prefix = settings.API_V1_PREFIX
    return JSONResponse(
        content={
            "message": (
                f"{settings.APP_NAME} scrapes lesson resource URLs, splits them into "
                "chunks and stores their embeddings"
            ),
            "version": VERSION,
            "endpoints": {
                "ingest": f"{prefix}/lesson-urls/scrape",
                "enqueue": f"{prefix}/lesson-urls/enqueue",
                "status": f"{prefix}/lesson-urls/{{lesson_url_id}}",
                "lesson_urls": f"{prefix}/lessons/{{lesson_id}}/urls",
                "batch": f"{prefix}/lessons/{{lesson_id}}/urls/process",
            },
            "docs": "/docs" if settings.DEBUG else None,
        }
    )


# Include API routers
from lesson_ingest.api import api_router  # noqa: E402
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled errors.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lesson_ingest.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
