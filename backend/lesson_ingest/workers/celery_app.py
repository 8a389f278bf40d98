"""
Celery application instance and configuration.
"""

from celery import Celery
from lesson_ingest.core.config import settings

# Create Celery application
celery_app = Celery(
    "lesson_ingest",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["lesson_ingest.tasks.ingestion_tasks"],
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=5 * 60,  # 5 minutes
    task_acks_late=True,
    worker_prefetch_multiplier=1,  # one ingestion job per worker process at a time
    result_expires=3600,  # 1 hour
)

# Task routing
celery_app.conf.task_routes = {
    'ingestion.*': {'queue': 'ingestion'},
}
