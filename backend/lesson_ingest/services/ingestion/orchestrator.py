"""
Ingestion Orchestrator

Runs one lesson URL through the whole pipeline and keeps its job row
current so clients can poll progress.

Pipeline & Progress:
--------------------
10   job acquired (created, or claimed for a retry)
20   scrape requested
40   raw + cleaned content and title stored
60   content chunked
61-90 chunks embedded and stored, batch by batch
100  completed

Failure Policy:
---------------
- A job another run is processing is refused without any write
- Scrape failure ends the job: failed, progress 0, user-facing message
- Embedding or storage failure of a single chunk drops that chunk only;
  surviving chunks keep their chunker positions
- The completion write is retried FINALIZE_ATTEMPTS times
- Anything unexpected after the job exists marks it failed with a generic
  message

Every run that acquires a job leaves it completed or failed.
"""

import asyncio
import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel

from lesson_ingest.core.config import settings
from lesson_ingest.core.logging import get_logger
from lesson_ingest.models.lesson_url import IngestionStatus
from lesson_ingest.services.ingestion.store import (
    IngestionStore,
    JobInProgressError,
    JobNotFoundError,
    PersistenceError,
)
from lesson_ingest.services.processors.chunker import SectionChunker
from lesson_ingest.services.processors.embedder import EmbeddingClient, EmbeddingError
from lesson_ingest.services.processors.sanitizer import sanitize
from lesson_ingest.services.scraper import ScrapeClient, ScrapeError, ScrapeErrorKind

logger = get_logger(__name__)


PROGRESS_ACQUIRED = 10
PROGRESS_SCRAPING = 20
PROGRESS_CONTENT_STORED = 40
PROGRESS_CHUNKED = 60
PROGRESS_EMBEDDING_SPAN = 30
PROGRESS_EMBEDDING_CAP = 90
PROGRESS_COMPLETED = 100

MAX_TITLE_LENGTH = 255

# User-facing messages
MESSAGE_TIMEOUT = "The website took too long to respond. Please try again later."
MESSAGE_BLOCKED = "This website cannot be scraped. Please try a different URL."
MESSAGE_NETWORK = "Network error occurred. Please check your connection."
MESSAGE_GENERIC = "Failed to process URL. Please try again."
MESSAGE_NOT_FOUND = "This resource no longer exists. Please add the URL again."
MESSAGE_IN_PROGRESS = "This URL is already being processed. Please wait for it to finish."


def user_message_for(error: Exception) -> str:
    """Map a pipeline error to the message shown to the user."""
    if not isinstance(error, ScrapeError):
        return MESSAGE_GENERIC

    if error.kind == ScrapeErrorKind.TIMEOUT:
        return MESSAGE_TIMEOUT
    if error.kind == ScrapeErrorKind.NETWORK:
        return MESSAGE_NETWORK
    if error.kind == ScrapeErrorKind.HTTP_ERROR:
        if error.status_code == 403:
            return MESSAGE_BLOCKED
        return (
            f"The website could not be scraped (HTTP {error.status_code}). "
            "Please try a different URL."
        )
    if "protection" in error.detail.lower():
        return MESSAGE_BLOCKED
    return MESSAGE_GENERIC


def embedding_progress(processed: int, total: int) -> int:
    """Progress after `processed` of `total` chunks went through embedding."""
    if total <= 0:
        return PROGRESS_EMBEDDING_CAP
    value = PROGRESS_CHUNKED + math.floor(processed / total * PROGRESS_EMBEDDING_SPAN)
    return min(value, PROGRESS_EMBEDDING_CAP)


# ========================================
# Outcome
# ========================================


class IngestionOutcome(BaseModel):
    """Result of one ingest() call."""

    success: bool
    lesson_url_id: Optional[int] = None
    chunks_created: int = 0
    title: Optional[str] = None
    error: Optional[str] = None
    user_message: Optional[str] = None
    processing_time_ms: int = 0
    in_progress: bool = False  # Another run owns the job; nothing was written

    def as_response(self) -> dict[str, Any]:
        """Body returned to API callers."""
        if self.success:
            return {
                "success": True,
                "lesson_url_id": self.lesson_url_id,
                "chunks_created": self.chunks_created,
                "title": self.title,
                "processing_time_ms": self.processing_time_ms,
            }

        body: dict[str, Any] = {
            "success": False,
            "error": self.error,
            "user_message": self.user_message,
            "processing_time_ms": self.processing_time_ms,
        }
        if self.lesson_url_id is not None:
            body["lesson_url_id"] = self.lesson_url_id
        return body


class _Run:
    """Per-call state: the job id and the last progress value written."""

    def __init__(self, url: str, lesson_id: str):
        self.url = url
        self.lesson_id = lesson_id
        self.job_id: Optional[int] = None
        self.progress = 0
        self.title: Optional[str] = None
        self.started = time.monotonic()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


# ========================================
# Orchestrator
# ========================================


class IngestionOrchestrator:
    """
    Drives a lesson URL from submission to completed/failed.

    Collaborators are injected so the pipeline can run against fakes in
    tests. One orchestrator may run several jobs concurrently; all state of
    a job lives in the call, not on the instance.

    Usage:
    ------
    orchestrator = IngestionOrchestrator(store, scraper, embedder)
    outcome = await orchestrator.ingest("https://example.com/volcanoes", "lesson-7")
    """

    def __init__(
        self,
        store: IngestionStore,
        scraper: ScrapeClient,
        embedder: EmbeddingClient,
        sanitizer: Callable[[str], str] = sanitize,
        chunker: Optional[SectionChunker] = None,
        batch_size: Optional[int] = None,
        finalize_attempts: Optional[int] = None,
        finalize_retry_delay: Optional[float] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Job and chunk persistence
            scraper: Page scraper
            embedder: Embedding client
            sanitizer: Text cleaning function
            chunker: Section chunker (default: configured from settings)
            batch_size: Concurrent embedding calls per batch (default from settings)
            finalize_attempts: Attempts for the completion write (default from settings)
            finalize_retry_delay: Seconds between completion attempts (default from settings)
        """
        self.store = store
        self.scraper = scraper
        self.embedder = embedder
        self.sanitizer = sanitizer
        self.chunker = chunker or SectionChunker()
        self.batch_size = batch_size if batch_size is not None else settings.EMBEDDING_BATCH_SIZE
        self.finalize_attempts = finalize_attempts or settings.FINALIZE_ATTEMPTS
        self.finalize_retry_delay = (
            finalize_retry_delay
            if finalize_retry_delay is not None
            else settings.FINALIZE_RETRY_DELAY_SECONDS
        )

        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    async def ingest(
        self,
        url: str,
        lesson_id: str,
        job_id: Optional[int] = None
    ) -> IngestionOutcome:
        """
        Scrape, clean, chunk, embed and store one URL.

        Args:
            url: Page to ingest
            lesson_id: Owning lesson
            job_id: Existing job to (re)run; when omitted the job for
                (lesson_id, url) is reused or a new one is created

        Returns:
            IngestionOutcome; failures are reported here, not raised
        """
        run = _Run(url.strip(), lesson_id)
        logger.info("ingestion_started", url=run.url, lesson_id=lesson_id, job_id=job_id)

        try:
            await self._acquire(run, job_id)
        except JobInProgressError as e:
            logger.warning("ingestion_job_busy", job_id=e.job_id, url=run.url)
            outcome = self._failure(run, str(e), MESSAGE_IN_PROGRESS)
            outcome.lesson_url_id = e.job_id
            outcome.in_progress = True
            return outcome
        except JobNotFoundError as e:
            logger.warning("ingestion_job_missing", job_id=job_id)
            return self._failure(run, str(e), MESSAGE_NOT_FOUND)
        except PersistenceError as e:
            logger.error("ingestion_setup_failed", url=run.url, job_id=run.job_id, error=str(e))
            if run.job_id is not None:
                await self._mark_failed(run, MESSAGE_GENERIC)
            return self._failure(run, str(e), MESSAGE_GENERIC)

        try:
            return await self._process(run)
        except ScrapeError as e:
            message = user_message_for(e)
            await self._mark_failed(run, message)
            return self._failure(run, e.detail, message)
        except Exception as e:
            logger.exception(
                "ingestion_unexpected_error",
                job_id=run.job_id,
                url=run.url,
                error_type=type(e).__name__,
            )
            await self._mark_failed(run, MESSAGE_GENERIC)
            return self._failure(run, str(e) or type(e).__name__, MESSAGE_GENERIC)

    # ========================================
    # Steps
    # ========================================

    async def _acquire(self, run: _Run, job_id: Optional[int]) -> None:
        """
        Create the job, or claim an existing one for a new attempt.

        A claimed job keeps its stored url and lesson; the submitted values
        only locate it.

        Raises:
            JobInProgressError: If another run owns the job (nothing written)
        """
        if job_id is None:
            existing = await self.store.find_job(run.lesson_id, run.url)
            if existing is None:
                job = await self.store.create_job(
                    run.lesson_id,
                    run.url,
                    status=IngestionStatus.PROCESSING,
                    progress=PROGRESS_ACQUIRED,
                )
                run.job_id = job.id
                run.progress = PROGRESS_ACQUIRED
                return
            job_id = existing.id

        job = await self.store.claim_job(job_id, progress=PROGRESS_ACQUIRED)
        run.job_id = job.id
        run.progress = PROGRESS_ACQUIRED
        if job.url != run.url:
            logger.warning("ingestion_url_mismatch", job_id=job.id, submitted=run.url, stored=job.url)
        run.url = job.url
        run.lesson_id = job.lesson_id

        removed = await self.store.delete_chunks(job.id)
        logger.info("ingestion_job_reset", job_id=job.id, stale_chunks_removed=removed)

    async def _process(self, run: _Run) -> IngestionOutcome:
        await self._advance(run, PROGRESS_SCRAPING)
        scraped = await self.scraper.scrape(run.url)

        run.title = scraped.title[:MAX_TITLE_LENGTH]
        cleaned = self.sanitizer(scraped.markdown)
        await self._advance(
            run,
            PROGRESS_CONTENT_STORED,
            title=run.title,
            scraped_content=scraped.markdown,
            cleaned_content=cleaned,
            page_metadata=scraped.metadata,
        )

        chunks = self.chunker.chunk(cleaned)
        await self._advance(run, PROGRESS_CHUNKED)

        logger.info(
            "content_chunked",
            job_id=run.job_id,
            raw_length=len(scraped.markdown),
            cleaned_length=len(cleaned),
            chunk_count=len(chunks),
        )

        stored = await self._embed_chunks(run, chunks) if chunks else 0
        return await self._finalize(run, stored, len(chunks))

    async def _embed_chunks(self, run: _Run, chunks: list[str]) -> int:
        """Embed and store chunks batch by batch; return how many were stored."""
        total = len(chunks)
        stored = 0

        for start in range(0, total, self.batch_size):
            batch = chunks[start:start + self.batch_size]
            results = await asyncio.gather(*(
                self._store_chunk(run, text, start + offset, total)
                for offset, text in enumerate(batch)
            ))
            stored += sum(1 for ok in results if ok)

            processed = min(start + self.batch_size, total)
            try:
                await self._advance(run, embedding_progress(processed, total))
            except PersistenceError as e:
                logger.warning("progress_update_failed", job_id=run.job_id, error=str(e))

        return stored

    async def _store_chunk(self, run: _Run, text: str, index: int, total: int) -> bool:
        """Embed and persist one chunk. Failures drop the chunk."""
        try:
            embedding = await self.embedder.embed(text)
        except EmbeddingError as e:
            logger.warning(
                "chunk_embedding_failed",
                job_id=run.job_id,
                chunk_index=index,
                kind=str(e.kind),
                status_code=e.status_code,
                error=str(e),
            )
            return False

        metadata = {
            "source_url": run.url,
            "title": run.title,
            "chunk_position": f"{index + 1} of {total}",
        }
        try:
            await self.store.add_chunk(run.job_id, text, index, embedding, metadata)
        except PersistenceError as e:
            logger.warning(
                "chunk_store_failed",
                job_id=run.job_id,
                chunk_index=index,
                error=str(e),
            )
            return False

        return True

    async def _finalize(self, run: _Run, stored: int, total: int) -> IngestionOutcome:
        """Mark the job completed, retrying the write a few times."""
        last_error: Optional[PersistenceError] = None

        for attempt in range(1, self.finalize_attempts + 1):
            try:
                await self.store.update_job(
                    run.job_id,
                    processing_status=IngestionStatus.COMPLETED,
                    processing_progress=PROGRESS_COMPLETED,
                    chunk_count=stored,
                    error_message=None,
                    processed_at=datetime.now(timezone.utc),
                )
                break
            except PersistenceError as e:
                last_error = e
                logger.warning(
                    "finalize_attempt_failed",
                    job_id=run.job_id,
                    attempt=attempt,
                    max_attempts=self.finalize_attempts,
                    error=str(e),
                )
                if attempt < self.finalize_attempts:
                    await asyncio.sleep(self.finalize_retry_delay)
        else:
            logger.critical(
                "finalize_failed",
                job_id=run.job_id,
                chunks_stored=stored,
                error=str(last_error),
            )
            await self._mark_failed(run, MESSAGE_GENERIC)
            return self._failure(run, f"Could not finalize job: {last_error}", MESSAGE_GENERIC)

        run.progress = PROGRESS_COMPLETED
        logger.info(
            "ingestion_completed",
            job_id=run.job_id,
            url=run.url,
            chunks_created=stored,
            chunks_dropped=total - stored,
            processing_time_ms=run.elapsed_ms,
        )
        return IngestionOutcome(
            success=True,
            lesson_url_id=run.job_id,
            chunks_created=stored,
            title=run.title,
            processing_time_ms=run.elapsed_ms,
        )

    # ========================================
    # Helpers
    # ========================================

    async def _advance(self, run: _Run, progress: int, **fields: Any) -> None:
        """Write progress (never lower than already written) with optional fields."""
        progress = max(progress, run.progress)
        await self.store.update_job(run.job_id, processing_progress=progress, **fields)
        run.progress = progress

    async def _mark_failed(self, run: _Run, message: str) -> None:
        """Best-effort failed write; a database error here is only logged."""
        if run.job_id is None:
            return
        try:
            await self.store.update_job(
                run.job_id,
                processing_status=IngestionStatus.FAILED,
                processing_progress=0,
                error_message=message,
            )
        except PersistenceError as e:
            logger.error("mark_failed_write_failed", job_id=run.job_id, error=str(e))

    def _failure(self, run: _Run, error: str, message: str) -> IngestionOutcome:
        logger.warning(
            "ingestion_failed",
            job_id=run.job_id,
            url=run.url,
            error=error,
            user_message=message,
        )
        return IngestionOutcome(
            success=False,
            lesson_url_id=run.job_id,
            error=error,
            user_message=message,
            processing_time_ms=run.elapsed_ms,
        )


def create_orchestrator(
    http_client: Optional[httpx.AsyncClient] = None,
    store: Optional[IngestionStore] = None
) -> IngestionOrchestrator:
    """Build an orchestrator wired to the configured APIs and database."""
    return IngestionOrchestrator(
        store=store or IngestionStore(),
        scraper=ScrapeClient(http_client=http_client),
        embedder=EmbeddingClient(http_client=http_client),
    )
