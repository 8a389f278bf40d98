"""
Database Models

Import models from this module to ensure they're registered with SQLAlchemy:

    from lesson_ingest.models import LessonUrl, UrlChunk

This ensures that Alembic can detect all models for migrations.
"""

from lesson_ingest.models.lesson_url import IngestionStatus, LessonUrl, UrlChunk

__all__ = [
    "LessonUrl",
    "UrlChunk",
    "IngestionStatus",
]
