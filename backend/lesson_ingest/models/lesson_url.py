"""
Lesson URL Models

Models Included:
----------------
1. LessonUrl - One ingestion job per submitted URL (the record clients poll)
2. UrlChunk - Sentence-aligned text chunks with embeddings for RAG
3. IngestionStatus (Enum) - Job lifecycle status

Database Tables:
----------------
- lesson_urls: Submitted resource URLs with processing state and scraped content
- url_chunks: Embedded chunks belonging to a lesson URL

Relationships:
--------------
- LessonUrl (1) ←→ (Many) UrlChunk
"""

import enum
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from pgvector.sqlalchemy import Vector

from lesson_ingest.core.config import settings
from lesson_ingest.db.base import BaseModel, String255, String2048


# ================================
# Enums
# ================================

class IngestionStatus(str, enum.Enum):
    """
    Lifecycle of a lesson URL ingestion job.

    Status Flow:
    ------------
    PENDING → PROCESSING → COMPLETED (success path)
                   ↓
                FAILED (terminal; a retry is a new run on the same record)

    The orchestrator is the only writer of status and progress for a job.
    A job is never left PROCESSING once the orchestrator returns.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (IngestionStatus.COMPLETED, IngestionStatus.FAILED)


# ================================
# LessonUrl Model (Ingestion Job)
# ================================

class LessonUrl(BaseModel):
    """
    A user-submitted resource URL and its ingestion state.

    Table: lesson_urls
    ------------------
    Created on first submission and reused when the same URL is retried.
    Clients poll processing_status / processing_progress / error_message /
    chunk_count / title to render progress.

    Content Storage:
    ----------------
    Both the raw scraped markdown and its sanitized form are stored. Only
    the cleaned content is chunked; the raw content is kept for audit and
    for re-chunking without another scrape.
    """

    __tablename__ = "lesson_urls"

    lesson_id: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        index=True,
        comment="Owning lesson identifier"
    )

    url: Mapped[str] = mapped_column(
        String2048,
        nullable=False,
        comment="Source URL (trimmed, immutable after creation)"
    )

    title: Mapped[str | None] = mapped_column(
        String255,
        nullable=True,
        comment="Page title extracted by the scraper"
    )

    # ================================
    # Processing State
    # ================================

    processing_status: Mapped[IngestionStatus] = mapped_column(
        Enum(
            IngestionStatus,
            name="ingestion_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=IngestionStatus.PENDING,
        index=True,
        comment="pending, processing, completed, failed"
    )

    processing_progress: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Progress percentage 0-100"
    )

    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="User-facing failure message (set only when failed)"
    )

    chunk_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of chunks persisted on completion"
    )

    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When processing completed (UTC)"
    )

    # ================================
    # Scraped Content
    # ================================

    scraped_content: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Raw markdown returned by the scraper"
    )

    cleaned_content: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Sanitized content that was chunked"
    )

    page_metadata: Mapped[dict | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="Page metadata returned by the scraper"
    )

    # ================================
    # Relationships
    # ================================

    chunks: Mapped[list["UrlChunk"]] = relationship(
        "UrlChunk",
        back_populates="lesson_url",
        cascade="all, delete-orphan",
        lazy="noload",
        order_by="UrlChunk.chunk_index"
    )

    __table_args__ = (
        UniqueConstraint(
            'lesson_id',
            'url',
            name='uq_lesson_urls_lesson_id_url'
        ),
        CheckConstraint(
            'processing_progress BETWEEN 0 AND 100',
            name='processing_progress_range'
        ),
    )

    def __repr__(self) -> str:
        status = self.processing_status.value if self.processing_status else None
        return (
            f"LessonUrl(id={self.id}, lesson_id='{self.lesson_id}', "
            f"status={status}, progress={self.processing_progress})"
        )

    @property
    def is_terminal(self) -> bool:
        """Check if the job has reached completed or failed."""
        return self.processing_status is not None and self.processing_status.is_terminal

    def is_claimed(self, now: Optional[datetime] = None) -> bool:
        """
        Check if a run currently owns this job.

        A PROCESSING job whose row has not been written for
        STALE_PROCESSING_SECONDS belongs to a worker that died, so it is no
        longer considered claimed.
        """
        if self.processing_status != IngestionStatus.PROCESSING:
            return False
        if self.updated_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - self.updated_at < timedelta(seconds=settings.STALE_PROCESSING_SECONDS)


# ================================
# UrlChunk Model
# ================================

class UrlChunk(BaseModel):
    """
    An embedded chunk of a lesson URL's cleaned content.

    Table: url_chunks
    -----------------
    chunk_index is the chunk's position in chunker output. When a chunk is
    dropped because its embedding failed, its index is simply absent; the
    surviving rows keep their original positions.

    Chunk Metadata (JSONB):
    -----------------------
    {
        "source_url": "https://example.com/photosynthesis",
        "title": "Photosynthesis for Kids",
        "chunk_position": "3 of 7"
    }

    Rows are immutable once written and are never stored without an
    embedding.
    """

    __tablename__ = "url_chunks"

    lesson_url_id: Mapped[int] = mapped_column(
        ForeignKey("lesson_urls.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Foreign key to lesson_urls table"
    )

    chunk_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Position of this chunk in chunker output (0-indexed)"
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Chunk text"
    )

    embedding = mapped_column(
        Vector(settings.EMBEDDING_DIMENSION),
        nullable=False,
        comment="Embedding vector for semantic search"
    )

    chunk_metadata: Mapped[dict | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="source_url, title and human-readable chunk position"
    )

    lesson_url: Mapped["LessonUrl"] = relationship(
        "LessonUrl",
        back_populates="chunks",
        lazy="noload"
    )

    __table_args__ = (
        UniqueConstraint(
            'lesson_url_id',
            'chunk_index',
            name='uq_url_chunks_lesson_url_id_chunk_index'
        ),
    )

    def __repr__(self) -> str:
        preview = self.content[:50] + "..." if self.content else ""
        return (
            f"UrlChunk(id={self.id}, lesson_url_id={self.lesson_url_id}, "
            f"index={self.chunk_index}, text='{preview}')"
        )
