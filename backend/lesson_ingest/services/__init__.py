"""Business logic services."""

from lesson_ingest.services.ingestion import (
    IngestionOrchestrator,
    IngestionOutcome,
    IngestionStore,
    LessonUrlBatchProcessor,
    create_orchestrator,
)
from lesson_ingest.services.scraper import ScrapeClient, ScrapeError, ScrapeResult

__all__ = [
    "IngestionOrchestrator",
    "IngestionOutcome",
    "IngestionStore",
    "LessonUrlBatchProcessor",
    "create_orchestrator",
    "ScrapeClient",
    "ScrapeError",
    "ScrapeResult",
]
