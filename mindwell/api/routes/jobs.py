"""
Processing job endpoints.

Submission accepts multipart audio and returns immediately with a job id;
clients then poll ``GET /jobs/{job_id}`` until the job is terminal.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, Header, Response, UploadFile

from mindwell.api.deps import current_user_id, get_pipeline
from mindwell.core.models import ErrorResponse, JobStatus, JobStatusResponse, JobSubmitResponse
from mindwell.services.pipeline import ProcessingPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post(
    "",
    status_code=202,
    response_model=JobSubmitResponse,
    responses={
        200: {"description": "Duplicate submission; the original job is returned", "model": JobSubmitResponse},
        400: {"description": "Empty audio", "model": ErrorResponse},
        413: {"description": "Audio too large", "model": ErrorResponse},
        415: {"description": "Unsupported container", "model": ErrorResponse},
        422: {"description": "Recording too short or malformed form", "model": ErrorResponse},
    },
)
async def submit_job(
    response: Response,
    audio: UploadFile = File(..., description="Recorded journal audio"),
    container: str | None = Form(None, description="Declared MIME type of the audio"),
    duration_seconds: float = Form(..., alias="durationSeconds", ge=0),
    mood_hint: str | None = Form(None, alias="moodHint", max_length=32),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=128),
    user_id: int = Depends(current_user_id),
    pipeline: ProcessingPipeline = Depends(get_pipeline),
) -> JobSubmitResponse:
    """Queue a recording for processing.

    Returns 202 for a new job. Resubmitting with the same ``Idempotency-Key``
    returns 200 and the job created the first time.
    """
    if audio.size is not None:
        pipeline.check_size(audio.size)
    data = await audio.read()
    job, created = await pipeline.submit(
        user_id=user_id,
        audio=data,
        filename=audio.filename,
        container=container or audio.content_type,
        duration_seconds=duration_seconds,
        mood_hint=mood_hint,
        correlation_token=idempotency_key,
    )
    if not created:
        response.status_code = 200
    return JobSubmitResponse(job_id=job.id, status=JobStatus(job.status), duplicate=not created)


@router.get(
    "/{job_id}",
    response_model=JobStatusResponse,
    responses={404: {"description": "Unknown or expired job", "model": ErrorResponse}},
)
async def get_job(
    job_id: str,
    user_id: int = Depends(current_user_id),
    pipeline: ProcessingPipeline = Depends(get_pipeline),
) -> JobStatusResponse:
    return await pipeline.get_status(job_id, user_id)


@router.delete(
    "/{job_id}",
    response_model=JobStatusResponse,
    responses={404: {"description": "Unknown or expired job", "model": ErrorResponse}},
)
async def cancel_job(
    job_id: str,
    user_id: int = Depends(current_user_id),
    pipeline: ProcessingPipeline = Depends(get_pipeline),
) -> JobStatusResponse:
    """Cancel an in-flight job. Terminal jobs are returned unchanged."""
    return await pipeline.cancel(job_id, user_id)
