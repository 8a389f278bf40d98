"""
Pydantic schemas for lesson URL ingestion endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from lesson_ingest.models.lesson_url import IngestionStatus


# ========================================
# Request Schemas
# ========================================


class LessonUrlSubmitRequest(BaseModel):
    """Request schema for scraping (inline) or enqueueing a lesson URL."""

    url: str = Field(
        ...,
        description="Resource URL to ingest",
        min_length=1,
        max_length=2048,
        examples=["https://example.com/photosynthesis-for-kids"]
    )

    lesson_id: str = Field(
        ...,
        description="Lesson the resource belongs to",
        min_length=1,
        max_length=255,
        examples=["lesson-42"]
    )

    lesson_url_id: Optional[int] = Field(
        None,
        description="Existing job to re-run (retry)",
        ge=1
    )

    @field_validator('url', 'lesson_id')
    @classmethod
    def strip_value(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be empty")
        return v

    @field_validator('url')
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v


class LessonUrlBatchItem(BaseModel):
    """One URL of a batch submission."""

    url: str = Field(..., min_length=1, max_length=2048)
    title: Optional[str] = Field(None, max_length=255)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v


class LessonUrlBatchRequest(BaseModel):
    """Request schema for processing several URLs of one lesson."""

    urls: List[LessonUrlBatchItem] = Field(
        ...,
        description="URLs to register and ingest",
        min_length=1,
        max_length=50
    )


# ========================================
# Response Schemas
# ========================================


class LessonUrlResponse(BaseModel):
    """Polling view of an ingestion job."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    lesson_id: str
    url: str
    status: IngestionStatus = Field(..., validation_alias=AliasChoices("status", "processing_status"))
    progress: int = Field(..., validation_alias=AliasChoices("progress", "processing_progress"))
    error_message: Optional[str] = None
    chunk_count: int = 0
    title: Optional[str] = None
    processed_at: Optional[datetime] = None


class LessonUrlEnqueueResponse(BaseModel):
    """Response schema for an enqueued job."""

    lesson_url_id: int
    status: IngestionStatus
    task_id: Optional[str] = None


class ScrapeSuccessResponse(BaseModel):
    success: bool = True
    lesson_url_id: int
    chunks_created: int
    title: Optional[str] = None
    processing_time_ms: int


class ScrapeFailureResponse(BaseModel):
    success: bool = False
    lesson_url_id: Optional[int] = None
    error: Optional[str] = None
    user_message: str
    processing_time_ms: int
