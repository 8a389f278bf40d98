"""
Pydantic schemas for request/response validation.
"""

from lesson_ingest.schemas.lesson_url import (
    LessonUrlBatchItem,
    LessonUrlBatchRequest,
    LessonUrlEnqueueResponse,
    LessonUrlResponse,
    LessonUrlSubmitRequest,
    ScrapeFailureResponse,
    ScrapeSuccessResponse,
)

__all__ = [
    "LessonUrlBatchItem",
    "LessonUrlBatchRequest",
    "LessonUrlEnqueueResponse",
    "LessonUrlResponse",
    "LessonUrlSubmitRequest",
    "ScrapeFailureResponse",
    "ScrapeSuccessResponse",
]
