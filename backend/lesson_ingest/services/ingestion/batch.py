"""
Lesson URL Batch Processing

Submits several URLs for one lesson in a single call:

1. Register every URL: reuse the existing job for (lesson_id, url) or
   create a pending one (with the optional title given by the user)
2. Run the orchestrator for each registered job, one after another
3. Summarize

URLs are processed sequentially so one lesson never holds more than one
scrape and EMBEDDING_BATCH_SIZE embedding calls open at a time.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from lesson_ingest.core.logging import get_logger
from lesson_ingest.models.lesson_url import IngestionStatus
from lesson_ingest.services.ingestion.orchestrator import IngestionOrchestrator, IngestionOutcome
from lesson_ingest.services.ingestion.store import IngestionStore, PersistenceError

logger = get_logger(__name__)


class BatchSummary(BaseModel):
    total_urls: int = 0
    successful: int = 0
    failed: int = 0
    total_chunks: int = 0


class BatchUrlResult(BaseModel):
    url: str
    lesson_url_id: Optional[int] = None
    success: bool
    chunks_created: int = 0
    title: Optional[str] = None


class BatchUrlError(BaseModel):
    url: str
    lesson_url_id: Optional[int] = None
    error: str
    user_message: Optional[str] = None


class BatchOutcome(BaseModel):
    """Summary plus per-URL results and errors for one batch."""

    lesson_id: str
    summary: BatchSummary = Field(default_factory=BatchSummary)
    results: list[BatchUrlResult] = Field(default_factory=list)
    errors: list[BatchUrlError] = Field(default_factory=list)


class LessonUrlBatchProcessor:
    """
    Registers and ingests a list of URLs for a lesson.

    Usage:
    ------
    processor = LessonUrlBatchProcessor(store, orchestrator)
    outcome = await processor.process("lesson-7", [
        {"url": "https://example.com/volcanoes", "title": "Volcanoes"},
        {"url": "https://example.com/earthquakes"},
    ])
    """

    def __init__(self, store: IngestionStore, orchestrator: IngestionOrchestrator):
        self.store = store
        self.orchestrator = orchestrator

    async def process(self, lesson_id: str, urls: list[dict[str, Any]]) -> BatchOutcome:
        """
        Register then ingest every URL of the batch.

        Args:
            lesson_id: Owning lesson
            urls: Items of the form {"url": str, "title": Optional[str]}

        Returns:
            BatchOutcome with summary, results and errors
        """
        outcome = BatchOutcome(lesson_id=lesson_id)
        outcome.summary.total_urls = len(urls)

        logger.info("batch_started", lesson_id=lesson_id, url_count=len(urls))

        registered: list[tuple[str, int]] = []
        seen: set[str] = set()

        for item in urls:
            url = (item.get("url") or "").strip()
            if not url:
                outcome.errors.append(BatchUrlError(url="", error="Missing URL"))
                outcome.summary.failed += 1
                continue
            if url in seen:
                logger.info("batch_duplicate_url_skipped", lesson_id=lesson_id, url=url)
                outcome.summary.total_urls -= 1
                continue
            seen.add(url)

            try:
                job_id = await self._register(lesson_id, url, item.get("title"))
            except PersistenceError as e:
                logger.error("batch_registration_failed", lesson_id=lesson_id, url=url, error=str(e))
                outcome.errors.append(BatchUrlError(url=url, error=str(e)))
                outcome.summary.failed += 1
                continue

            registered.append((url, job_id))

        for url, job_id in registered:
            result = await self.orchestrator.ingest(url, lesson_id, job_id=job_id)
            self._record(outcome, url, result)

        logger.info(
            "batch_completed",
            lesson_id=lesson_id,
            **outcome.summary.model_dump(),
        )
        return outcome

    async def _register(self, lesson_id: str, url: str, title: Optional[str]) -> int:
        """Return the id of the job for (lesson_id, url), creating it if needed."""
        existing = await self.store.find_job(lesson_id, url)
        if existing is not None:
            return existing.id

        job = await self.store.create_job(
            lesson_id,
            url,
            status=IngestionStatus.PENDING,
            progress=0,
            title=title.strip() if title and title.strip() else None,
        )
        return job.id

    @staticmethod
    def _record(outcome: BatchOutcome, url: str, result: IngestionOutcome) -> None:
        outcome.results.append(BatchUrlResult(
            url=url,
            lesson_url_id=result.lesson_url_id,
            success=result.success,
            chunks_created=result.chunks_created,
            title=result.title,
        ))

        if result.success:
            outcome.summary.successful += 1
            outcome.summary.total_chunks += result.chunks_created
        else:
            outcome.summary.failed += 1
            outcome.errors.append(BatchUrlError(
                url=url,
                lesson_url_id=result.lesson_url_id,
                error=result.error or "Unknown error",
                user_message=result.user_message,
            ))
