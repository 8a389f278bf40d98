"""
API routes initialization.

This module aggregates all API routers and provides a single router
to include in the main application.
"""

from fastapi import APIRouter

from lesson_ingest.api.routes import lesson_urls

# Create main API router
api_router = APIRouter()

# Include lesson URL ingestion routes
api_router.include_router(lesson_urls.router)
