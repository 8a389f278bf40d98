"""
Lesson URL ingestion API endpoints.

Users attach resource URLs to a lesson. A URL can be ingested inline
(the request waits for the whole pipeline) or enqueued for the Celery
worker; either way the job row is the source of truth clients poll.
"""

from typing import List

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from lesson_ingest.api.deps import BatchProcessor, Orchestrator
from lesson_ingest.core.logging import get_logger
from lesson_ingest.db.deps import Store
from lesson_ingest.models.lesson_url import IngestionStatus, LessonUrl
from lesson_ingest.schemas.lesson_url import (
    LessonUrlBatchRequest,
    LessonUrlEnqueueResponse,
    LessonUrlResponse,
    LessonUrlSubmitRequest,
    ScrapeFailureResponse,
    ScrapeSuccessResponse,
)
from lesson_ingest.services.ingestion import BatchOutcome, JobNotFoundError, PersistenceError
from lesson_ingest.tasks.ingestion_tasks import process_lesson_url

logger = get_logger(__name__)

router = APIRouter(tags=["Lesson URLs"])


# ========================================
# Helper Functions
# ========================================


async def _prepare_pending_job(store, request: LessonUrlSubmitRequest) -> LessonUrl:
    """
    Create the job for an enqueue request, or reset an existing one.

    Raises:
        HTTPException: 404 for an unknown lesson_url_id, 409 while the job
            is still processing
    """
    if request.lesson_url_id is not None:
        try:
            job = await store.get_job(request.lesson_url_id)
        except JobNotFoundError:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Lesson URL {request.lesson_url_id} not found"
            )
    else:
        job = await store.find_job(request.lesson_id, request.url)

    if job is None:
        return await store.create_job(
            request.lesson_id,
            request.url,
            status=IngestionStatus.PENDING,
            progress=0,
        )

    if job.is_claimed():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This URL is already being processed"
        )

    return await store.update_job(
        job.id,
        processing_status=IngestionStatus.PENDING,
        processing_progress=0,
        error_message=None,
    )


# ========================================
# Ingestion Endpoints
# ========================================


@router.post(
    "/lesson-urls/scrape",
    responses={
        200: {"model": ScrapeSuccessResponse},
        400: {"model": ScrapeFailureResponse},
        409: {"model": ScrapeFailureResponse},
    },
    summary="Ingest a lesson URL and wait for the result",
)
async def scrape_lesson_url(
    request: LessonUrlSubmitRequest,
    orchestrator: Orchestrator
) -> JSONResponse:
    """
    Run the full pipeline inline.

    Returns 200 with the created chunk count, 409 when another run is
    still processing the same job, or 400 with a user-facing message when
    the job failed.
    """
    outcome = await orchestrator.ingest(
        request.url,
        request.lesson_id,
        job_id=request.lesson_url_id,
    )

    if outcome.success:
        status_code = status.HTTP_200_OK
    elif outcome.in_progress:
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    return JSONResponse(status_code=status_code, content=outcome.as_response())


@router.post(
    "/lesson-urls/enqueue",
    response_model=LessonUrlEnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a lesson URL for background ingestion",
)
async def enqueue_lesson_url(
    request: LessonUrlSubmitRequest,
    store: Store
) -> LessonUrlEnqueueResponse:
    try:
        job = await _prepare_pending_job(store, request)
    except PersistenceError as e:
        logger.error("enqueue_failed", url=request.url, lesson_id=request.lesson_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save lesson URL"
        )

    task = process_lesson_url.delay(job.id, job.url, job.lesson_id)

    logger.info("lesson_url_enqueued", lesson_url_id=job.id, task_id=task.id)

    return LessonUrlEnqueueResponse(
        lesson_url_id=job.id,
        status=job.processing_status,
        task_id=task.id,
    )


# ========================================
# Polling Endpoints
# ========================================


@router.get(
    "/lesson-urls/{lesson_url_id}",
    response_model=LessonUrlResponse,
    summary="Get ingestion status of a lesson URL",
)
async def get_lesson_url(lesson_url_id: int, store: Store) -> LessonUrlResponse:
    try:
        job = await store.get_job(lesson_url_id)
    except JobNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Lesson URL {lesson_url_id} not found"
        )

    return LessonUrlResponse.model_validate(job)


@router.get(
    "/lessons/{lesson_id}/urls",
    response_model=List[LessonUrlResponse],
    summary="List lesson URLs with their ingestion status",
)
async def list_lesson_urls(lesson_id: str, store: Store) -> List[LessonUrlResponse]:
    jobs = await store.list_jobs(lesson_id)
    return [LessonUrlResponse.model_validate(job) for job in jobs]


@router.post(
    "/lessons/{lesson_id}/urls/process",
    response_model=BatchOutcome,
    summary="Register and ingest several URLs for a lesson",
)
async def process_lesson_urls(
    lesson_id: str,
    request: LessonUrlBatchRequest,
    processor: BatchProcessor
) -> BatchOutcome:
    """
    Register every URL (reusing existing ones) and ingest them sequentially.

    Individual URL failures are reported in the response body; the request
    itself succeeds.
    """
    return await processor.process(
        lesson_id,
        [item.model_dump() for item in request.urls],
    )
