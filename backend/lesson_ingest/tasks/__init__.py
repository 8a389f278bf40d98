"""
Celery tasks for background processing.
"""

from lesson_ingest.tasks.ingestion_tasks import process_lesson_url

__all__ = [
    "process_lesson_url",
]
