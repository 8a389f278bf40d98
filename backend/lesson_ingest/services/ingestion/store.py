"""
Ingestion Store

Persistence for lesson URL jobs and their chunks.

Every operation runs in its own short-lived session and transaction taken
from the session factory. The orchestrator writes chunks of one batch
concurrently, so a session is never shared between calls.

Database errors are re-raised as PersistenceError so callers can decide
per step what a failed write means without depending on SQLAlchemy.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lesson_ingest.core.config import settings
from lesson_ingest.core.logging import get_logger
from lesson_ingest.db.session import AsyncSessionLocal
from lesson_ingest.models.lesson_url import IngestionStatus, LessonUrl, UrlChunk

logger = get_logger(__name__)


# Columns update_job() is allowed to touch
UPDATABLE_FIELDS = frozenset({
    "title",
    "processing_status",
    "processing_progress",
    "error_message",
    "chunk_count",
    "processed_at",
    "scraped_content",
    "cleaned_content",
    "page_metadata",
})


# ========================================
# Custom Exceptions
# ========================================


class PersistenceError(Exception):
    """Raised when a job or chunk could not be read or written."""
    pass


class JobNotFoundError(PersistenceError):
    """Raised when a job id does not exist."""

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"LessonUrl {job_id} not found")


class JobInProgressError(Exception):
    """Raised when another run still owns the job."""

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"LessonUrl {job_id} is already being processed")


# ========================================
# Ingestion Store
# ========================================


class IngestionStore:
    """
    Async repository for LessonUrl and UrlChunk rows.

    Usage:
    ------
    store = IngestionStore()
    job = await store.create_job("lesson-42", "https://example.com/cells")
    await store.update_job(job.id, processing_progress=20)
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    # ========================================
    # Jobs
    # ========================================

    async def create_job(
        self,
        lesson_id: str,
        url: str,
        status: IngestionStatus = IngestionStatus.PENDING,
        progress: int = 0,
        title: Optional[str] = None
    ) -> LessonUrl:
        """
        Insert a new job row.

        Raises:
            PersistenceError: If the insert fails (including a duplicate
                (lesson_id, url) pair)
        """
        try:
            async with self.session_factory() as session:
                job = LessonUrl(
                    lesson_id=lesson_id,
                    url=url,
                    title=title,
                    processing_status=status,
                    processing_progress=progress,
                    chunk_count=0,
                )
                session.add(job)
                await session.commit()
                await session.refresh(job)
        except SQLAlchemyError as e:
            logger.error("job_create_failed", lesson_id=lesson_id, url=url, error=str(e))
            raise PersistenceError(f"Failed to create job for {url}: {e}") from e

        logger.info("job_created", job_id=job.id, lesson_id=lesson_id, status=str(status))
        return job

    async def get_job(self, job_id: int) -> LessonUrl:
        """
        Load a job by id.

        Raises:
            JobNotFoundError: If no row has this id
            PersistenceError: On database failure
        """
        try:
            async with self.session_factory() as session:
                job = await session.get(LessonUrl, job_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load job {job_id}: {e}") from e

        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def find_job(self, lesson_id: str, url: str) -> Optional[LessonUrl]:
        """Return the job for (lesson_id, url) if one exists."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(LessonUrl).where(
                        LessonUrl.lesson_id == lesson_id,
                        LessonUrl.url == url,
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to look up job for {url}: {e}") from e

    async def update_job(self, job_id: int, **fields: Any) -> LessonUrl:
        """
        Update columns of a job and return the refreshed row.

        Args:
            job_id: Job to update
            **fields: Column values; only UPDATABLE_FIELDS are accepted

        Raises:
            ValueError: If an unknown field is passed
            JobNotFoundError: If the job does not exist
            PersistenceError: On database failure
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        try:
            async with self.session_factory() as session:
                job = await session.get(LessonUrl, job_id)
                if job is None:
                    raise JobNotFoundError(job_id)

                for name, value in fields.items():
                    setattr(job, name, value)

                await session.commit()
                await session.refresh(job)
        except SQLAlchemyError as e:
            logger.error(
                "job_update_failed",
                job_id=job_id,
                fields=sorted(fields),
                error=str(e),
            )
            raise PersistenceError(f"Failed to update job {job_id}: {e}") from e

        return job

    async def claim_job(self, job_id: int, progress: int = 0) -> LessonUrl:
        """
        Start a new run on an existing job.

        The row is switched to PROCESSING with a cleared error and chunk
        count by a single conditional UPDATE, so two runs can never both
        claim it. A PROCESSING row older than STALE_PROCESSING_SECONDS is
        claimable again.

        Raises:
            JobNotFoundError: If the job does not exist
            JobInProgressError: If another run owns the job
            PersistenceError: On database failure
        """
        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=settings.STALE_PROCESSING_SECONDS)

        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(LessonUrl)
                    .where(
                        LessonUrl.id == job_id,
                        or_(
                            LessonUrl.processing_status != IngestionStatus.PROCESSING,
                            LessonUrl.updated_at < cutoff,
                        ),
                    )
                    .values(
                        processing_status=IngestionStatus.PROCESSING,
                        processing_progress=progress,
                        error_message=None,
                        chunk_count=0,
                        processed_at=None,
                        updated_at=now,
                    )
                    .returning(LessonUrl)
                    .execution_options(synchronize_session=False)
                )
                job = result.scalar_one_or_none()
                await session.commit()

                if job is None:
                    if await session.get(LessonUrl, job_id) is None:
                        raise JobNotFoundError(job_id)
                    raise JobInProgressError(job_id)
        except SQLAlchemyError as e:
            logger.error("job_claim_failed", job_id=job_id, error=str(e))
            raise PersistenceError(f"Failed to claim job {job_id}: {e}") from e

        logger.info("job_claimed", job_id=job_id)
        return job

    async def list_jobs(self, lesson_id: str) -> list[LessonUrl]:
        """Return all jobs of a lesson, oldest first."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(LessonUrl)
                    .where(LessonUrl.lesson_id == lesson_id)
                    .order_by(LessonUrl.created_at, LessonUrl.id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list jobs for lesson {lesson_id}: {e}") from e

    # ========================================
    # Chunks
    # ========================================

    async def add_chunk(
        self,
        job_id: int,
        content: str,
        index: int,
        embedding: list[float],
        metadata: Optional[dict[str, Any]] = None
    ) -> UrlChunk:
        """
        Insert one embedded chunk.

        Raises:
            PersistenceError: If the insert fails
        """
        try:
            async with self.session_factory() as session:
                chunk = UrlChunk(
                    lesson_url_id=job_id,
                    chunk_index=index,
                    content=content,
                    embedding=embedding,
                    chunk_metadata=metadata,
                )
                session.add(chunk)
                await session.commit()
                await session.refresh(chunk)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to store chunk {index} of job {job_id}: {e}"
            ) from e

        return chunk

    async def delete_chunks(self, job_id: int) -> int:
        """Delete all chunks of a job and return how many were removed."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(UrlChunk).where(UrlChunk.lesson_url_id == job_id)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to delete chunks of job {job_id}: {e}") from e

        removed = result.rowcount or 0
        if removed:
            logger.info("job_chunks_deleted", job_id=job_id, removed=removed)
        return removed

