"""
Service dependencies for API routes.

The shared httpx.AsyncClient is created in the application lifespan and
kept on app.state; the scrape and embedding clients reuse its connection
pool for every request.
"""

from typing import Annotated

import httpx
from fastapi import Depends, Request

from lesson_ingest.db.deps import Store
from lesson_ingest.services.ingestion import (
    IngestionOrchestrator,
    LessonUrlBatchProcessor,
    create_orchestrator,
)


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Return the application-wide HTTP client."""
    return request.app.state.http_client


def get_orchestrator(
    store: Store,
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)]
) -> IngestionOrchestrator:
    """Provide an orchestrator wired to the request's store and shared HTTP client."""
    return create_orchestrator(http_client=http_client, store=store)


Orchestrator = Annotated[IngestionOrchestrator, Depends(get_orchestrator)]


def get_batch_processor(store: Store, orchestrator: Orchestrator) -> LessonUrlBatchProcessor:
    return LessonUrlBatchProcessor(store, orchestrator)


BatchProcessor = Annotated[LessonUrlBatchProcessor, Depends(get_batch_processor)]
