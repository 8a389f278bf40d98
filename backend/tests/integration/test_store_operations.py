"""
Integration tests for IngestionStore against PostgreSQL + pgvector.

Every test runs inside an outer transaction that is rolled back afterwards;
the store's own commits only release savepoints. Tests are skipped when
the database at TEST_DATABASE_URL (default: DATABASE_URL) is unreachable.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import text, update
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from lesson_ingest.core.config import settings
from lesson_ingest.db.base import Base
from lesson_ingest.models.lesson_url import IngestionStatus, LessonUrl
from lesson_ingest.services.ingestion.store import (
    IngestionStore,
    JobInProgressError,
    JobNotFoundError,
    PersistenceError,
)

pytestmark = pytest.mark.integration

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", settings.DATABASE_URL)

LESSON = "lesson-db"
URL = "https://example.com/rivers"


def vector(value: float = 0.1) -> list[float]:
    return [value] * settings.EMBEDDING_DIMENSION


# ================================
# Fixtures
# ================================

@pytest_asyncio.fixture
async def store() -> AsyncGenerator[IngestionStore, None]:
    """IngestionStore bound to a connection whose transaction is rolled back."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)
    try:
        async with engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL with pgvector not available: {e}")

    connection = await engine.connect()
    transaction = await connection.begin()

    session_factory = async_sessionmaker(
        bind=connection,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )

    yield IngestionStore(session_factory=session_factory)

    await transaction.rollback()
    await connection.close()
    await engine.dispose()


async def age_job(store: IngestionStore, job_id: int, seconds: int) -> None:
    """Move a job's updated_at into the past."""
    async with store.session_factory() as session:
        await session.execute(
            update(LessonUrl)
            .where(LessonUrl.id == job_id)
            .values(updated_at=datetime.now(timezone.utc) - timedelta(seconds=seconds))
        )
        await session.commit()


# ================================
# Job Tests
# ================================

@pytest.mark.asyncio
class TestJobs:
    """Job rows."""

    async def test_create_get_and_find(self, store):
        job = await store.create_job(LESSON, URL, title="Rivers")

        loaded = await store.get_job(job.id)
        found = await store.find_job(LESSON, URL)

        assert loaded.id == found.id == job.id
        assert loaded.processing_status == IngestionStatus.PENDING
        assert loaded.processing_progress == 0
        assert loaded.chunk_count == 0
        assert loaded.title == "Rivers"

    async def test_missing_job(self, store):
        with pytest.raises(JobNotFoundError):
            await store.get_job(987654)
        assert await store.find_job(LESSON, "https://example.com/nowhere") is None

    async def test_duplicate_lesson_url_rejected(self, store):
        await store.create_job(LESSON, URL)

        with pytest.raises(PersistenceError) as exc_info:
            await store.create_job(LESSON, URL)

        assert not isinstance(exc_info.value, JobNotFoundError)

    async def test_update_job(self, store):
        job = await store.create_job(LESSON, URL)

        updated = await store.update_job(
            job.id,
            processing_status=IngestionStatus.FAILED,
            error_message="Network error occurred. Please check your connection.",
            page_metadata={"title": "Rivers", "language": "en"},
        )

        assert updated.processing_status == IngestionStatus.FAILED
        reloaded = await store.get_job(job.id)
        assert reloaded.error_message == "Network error occurred. Please check your connection."
        assert reloaded.page_metadata == {"title": "Rivers", "language": "en"}

    async def test_update_missing_job(self, store):
        with pytest.raises(JobNotFoundError):
            await store.update_job(987654, processing_progress=20)

    async def test_update_unknown_field(self, store):
        job = await store.create_job(LESSON, URL)
        with pytest.raises(ValueError):
            await store.update_job(job.id, url="https://example.com/other")

    async def test_progress_outside_range_rejected(self, store):
        job = await store.create_job(LESSON, URL)
        with pytest.raises(PersistenceError):
            await store.update_job(job.id, processing_progress=101)

    async def test_list_jobs_oldest_first(self, store):
        first = await store.create_job(LESSON, "https://example.com/a")
        second = await store.create_job(LESSON, "https://example.com/b")
        await store.create_job("other-lesson", "https://example.com/c")

        jobs = await store.list_jobs(LESSON)

        assert [job.id for job in jobs] == [first.id, second.id]


# ================================
# Claim Tests
# ================================

@pytest.mark.asyncio
class TestClaim:
    """claim_job starts a new run only when no other run owns the job."""

    async def test_claim_resets_job(self, store):
        job = await store.create_job(LESSON, URL)
        await store.update_job(
            job.id,
            processing_status=IngestionStatus.COMPLETED,
            processing_progress=100,
            chunk_count=4,
            processed_at=datetime.now(timezone.utc),
        )

        claimed = await store.claim_job(job.id, progress=10)

        assert claimed.id == job.id
        assert claimed.url == URL
        assert claimed.processing_status == IngestionStatus.PROCESSING
        assert claimed.processing_progress == 10
        assert claimed.chunk_count == 0
        assert claimed.processed_at is None

    async def test_running_job_not_claimed(self, store):
        job = await store.create_job(LESSON, URL, status=IngestionStatus.PROCESSING, progress=70)

        with pytest.raises(JobInProgressError):
            await store.claim_job(job.id, progress=10)

        assert (await store.get_job(job.id)).processing_progress == 70

    async def test_stale_running_job_claimed(self, store):
        job = await store.create_job(LESSON, URL, status=IngestionStatus.PROCESSING, progress=70)
        await age_job(store, job.id, settings.STALE_PROCESSING_SECONDS + 60)

        claimed = await store.claim_job(job.id, progress=10)

        assert claimed.processing_progress == 10

    async def test_claim_missing_job(self, store):
        with pytest.raises(JobNotFoundError):
            await store.claim_job(987654)


# ================================
# Chunk Tests
# ================================

@pytest.mark.asyncio
class TestChunks:
    """Chunk rows."""

    async def test_add_and_delete_chunks(self, store):
        job = await store.create_job(LESSON, URL)
        for index in range(3):
            await store.add_chunk(
                job.id,
                f"chunk {index}",
                index,
                vector(),
                {"source_url": URL, "title": "Rivers", "chunk_position": f"{index + 1} of 3"},
            )

        assert await store.delete_chunks(job.id) == 3
        assert await store.delete_chunks(job.id) == 0

    async def test_duplicate_chunk_index_rejected(self, store):
        job = await store.create_job(LESSON, URL)
        await store.add_chunk(job.id, "first", 0, vector())

        with pytest.raises(PersistenceError):
            await store.add_chunk(job.id, "again", 0, vector(0.2))
