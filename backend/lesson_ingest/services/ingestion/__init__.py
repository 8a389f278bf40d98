"""Lesson URL ingestion: persistence, pipeline orchestration and batches."""

from lesson_ingest.services.ingestion.batch import BatchOutcome, LessonUrlBatchProcessor
from lesson_ingest.services.ingestion.orchestrator import (
    IngestionOrchestrator,
    IngestionOutcome,
    create_orchestrator,
)
from lesson_ingest.services.ingestion.store import (
    IngestionStore,
    JobNotFoundError,
    PersistenceError,
)

__all__ = [
    "BatchOutcome",
    "IngestionOrchestrator",
    "IngestionOutcome",
    "IngestionStore",
    "JobNotFoundError",
    "LessonUrlBatchProcessor",
    "PersistenceError",
    "create_orchestrator",
]
