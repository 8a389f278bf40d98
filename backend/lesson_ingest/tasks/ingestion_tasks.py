"""
Celery tasks for lesson URL ingestion.

The API creates (or resets) a pending job and enqueues
process_lesson_url; the worker then runs the same orchestrator the inline
endpoint uses. Failures are recorded on the job row, so the task never
retries on its own: a user retry re-enqueues the same job id.
"""

import asyncio
import concurrent.futures

import httpx
from celery import Task

from lesson_ingest.core.logging import get_logger
from lesson_ingest.db.session import engine
from lesson_ingest.services.ingestion import create_orchestrator
from lesson_ingest.workers.celery_app import celery_app

logger = get_logger(__name__)


# ========================================
# Async Helper
# ========================================

def run_async(coro):
    """
    Run an async coroutine from a synchronous Celery task.

    - Celery worker (no running loop): asyncio.run()
    - Tests (pytest-asyncio loop already running): asyncio.run() in a
      worker thread to avoid "loop already running"
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


async def ingest_lesson_url(lesson_url_id: int, url: str, lesson_id: str) -> dict:
    """Run the orchestrator for an enqueued job and return its response body."""
    async with httpx.AsyncClient() as http_client:
        orchestrator = create_orchestrator(http_client=http_client)
        try:
            outcome = await orchestrator.ingest(url, lesson_id, job_id=lesson_url_id)
        finally:
            # Pooled asyncpg connections are bound to this task's event loop
            await engine.dispose()

    return outcome.as_response()


# ========================================
# Base Task Class
# ========================================

class IngestionTask(Task):
    """Base task class that logs crashes the orchestrator could not report."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(
            "ingestion_task_crashed",
            task_id=task_id,
            task_args=args,
            error=str(exc),
            error_type=type(exc).__name__,
        )


# ========================================
# Main Tasks
# ========================================

@celery_app.task(
    base=IngestionTask,
    name='ingestion.process_lesson_url',
    bind=True,
    max_retries=0
)
def process_lesson_url(self, lesson_url_id: int, url: str, lesson_id: str) -> dict:
    """
    Ingest an enqueued lesson URL.

    Args:
        lesson_url_id: Database ID of the pending LessonUrl
        url: Source URL
        lesson_id: Owning lesson

    Returns:
        Dictionary with the ingestion result:
        {
            'success': bool,
            'lesson_url_id': int,
            'chunks_created': int,        # on success
            'title': str,                 # on success
            'error': str,                 # on failure
            'user_message': str,          # on failure
            'processing_time_ms': int
        }
    """
    logger.info(
        "ingestion_task_started",
        task_id=self.request.id,
        lesson_url_id=lesson_url_id,
        url=url,
    )

    result = run_async(ingest_lesson_url(lesson_url_id, url, lesson_id))

    logger.info(
        "ingestion_task_finished",
        task_id=self.request.id,
        lesson_url_id=lesson_url_id,
        success=result.get('success'),
    )
    return result
