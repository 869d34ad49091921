"""
Router for extraction endpoints.

Handles:
- Accepting a PDF upload and starting a background extraction job
- Polling a job's status and result
"""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile, status
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from ..models import (
    ExtractAcceptedResponse,
    ExtractRejectedResponse,
    JobCompletedResponse,
    JobErrorResponse,
    JobNotFoundResponse,
    JobPendingResponse,
    JobStatus,
)
from ..services.ai import AIService, get_ai_service
from ..services.jobs import JobNotFoundError, JobRegistry, get_job_registry
from ..services.pdf_service import PDFService, get_pdf_service
from ..services.pipeline import run_extraction_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["extract"])


def _is_pdf_upload(file: UploadFile | None) -> bool:
    if file is None:
        return False
    return (file.content_type or "").lower().endswith("pdf")


@router.post(
    "/extract",
    response_model=ExtractAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ExtractRejectedResponse}},
)
async def extract(
    background_tasks: BackgroundTasks,
    file: Annotated[UploadFile | None, File(description="Billing PDF to extract")] = None,
    registry: JobRegistry = Depends(get_job_registry),
    pdf_service: PDFService = Depends(get_pdf_service),
    ai_service: AIService = Depends(get_ai_service),
    settings: Settings = Depends(get_settings),
):
    """
    Start extracting billing rows from a PDF.

    Returns a job id immediately; the work runs in the background.
    Poll GET /status/{jobId} for the result.
    """
    if not _is_pdf_upload(file):
        logger.warning(
            "Invalid file upload: content_type=%s",
            file.content_type if file is not None else None,
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ExtractRejectedResponse(error="Please upload a PDF").model_dump(),
        )

    try:
        file_bytes = await file.read()
    finally:
        await file.close()

    job_id = registry.create()
    registry.schedule_eviction(job_id, settings.job_retention_seconds)
    logger.info("Job %s - Received %s (%d bytes)", job_id, file.filename, len(file_bytes))

    background_tasks.add_task(
        run_extraction_job,
        job_id,
        file_bytes,
        registry,
        pdf_service,
        ai_service,
        strategy=settings.extraction_strategy,
        row_y_tolerance=settings.row_y_tolerance,
        column_x_tolerance=settings.column_x_tolerance,
    )

    return ExtractAcceptedResponse(
        jobId=job_id,
        message=f"Processing started. Poll /status/{job_id}",
    )


@router.get(
    "/status/{job_id}",
    response_model=JobPendingResponse | JobCompletedResponse | JobErrorResponse,
    responses={status.HTTP_404_NOT_FOUND: {"model": JobNotFoundResponse}},
)
async def get_status(
    job_id: str,
    registry: JobRegistry = Depends(get_job_registry),
):
    """
    Get the status of an extraction job.

    Returns ``{"status": "pending"}`` while running, ``{"status": true, "data": [...]}``
    on success and ``{"status": "error", "error": ...}`` on failure.
    """
    try:
        job = registry.get(job_id)
    except JobNotFoundError as e:
        logger.error("Status check failed for job %s: Job not found", job_id)
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=JobNotFoundResponse(error=str(e)).model_dump(),
        )

    logger.info("Status check for job %s: %s", job_id, job.status.value)

    if job.status is JobStatus.COMPLETED:
        return JobCompletedResponse(data=job.data)
    if job.status is JobStatus.ERROR:
        return JobErrorResponse(error=job.error or "Unknown error")
    return JobPendingResponse()
