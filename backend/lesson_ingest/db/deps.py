"""
Database Dependencies for FastAPI Routes

Routes never open sessions themselves. They receive the IngestionStore,
which opens one session per operation from the application session factory.

Usage in Routes:
----------------
@router.get("/lesson-urls/{lesson_url_id}")
async def get_lesson_url(lesson_url_id: int, store: Store):
    return await store.get_job(lesson_url_id)

In tests, override get_ingestion_store with an in-memory store:

    app.dependency_overrides[get_ingestion_store] = lambda: fake_store
"""

from typing import Annotated

from fastapi import Depends

from lesson_ingest.db.session import AsyncSessionLocal
from lesson_ingest.services.ingestion.store import IngestionStore


def get_ingestion_store() -> IngestionStore:
    """Provide the store bound to the application session factory."""
    return IngestionStore(session_factory=AsyncSessionLocal)


# Reusable annotation: `store: Store` instead of `store = Depends(...)`
Store = Annotated[IngestionStore, Depends(get_ingestion_store)]


__all__ = [
    "get_ingestion_store",
    "Store",
]
