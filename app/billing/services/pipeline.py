"""
Background extraction job.

Runs decode -> lines -> filter -> model -> validate for one upload and writes
the job's single terminal state. Stages always run in that order; the result
is written only after the model reply has been validated.
"""

import asyncio
import logging

from ..models import TextFragment, UnifiedRow
from .ai import AIService, AIServiceError
from .jobs import JobNotFoundError, JobRegistry
from .layout import build_layout
from .lines import extract_lines
from .pdf_service import PDFConversionError, PDFService
from .row_filter import filter_rows

logger = logging.getLogger(__name__)


class NoTextExtractedError(Exception):
    """Raised when a PDF decodes but contains no text lines."""

    def __init__(self, message: str = "No text extracted from PDF"):
        super().__init__(message)


async def _normalize_by_lines(
    pages: list[list[TextFragment]],
    ai_service: AIService,
    job_id: str,
) -> list[UnifiedRow]:
    lines = extract_lines(pages)
    logger.info("Job %s - Extracted %d text lines", job_id, len(lines))
    if not lines:
        raise NoTextExtractedError()

    filtered = filter_rows(lines, job_id=job_id)
    logger.debug("Job %s - Filtered lines: %s", job_id, filtered)
    return await ai_service.normalize_lines(filtered, job_id=job_id)


async def extract_rows(
    file_bytes: bytes,
    pdf_service: PDFService,
    ai_service: AIService,
    strategy: str = "lines",
    row_y_tolerance: float = 3.0,
    column_x_tolerance: float = 12.0,
    job_id: str = "-",
) -> list[UnifiedRow]:
    """
    Turn an uploaded PDF into validated billing rows.

    Args:
        file_bytes: Raw PDF upload.
        pdf_service: Text decoder.
        ai_service: Row normalizer.
        strategy: ``"lines"`` for the line heuristics or ``"columns"`` for
            position-aware alignment (falls back to lines when no grid is found).
        row_y_tolerance: Row bucket size for the columns strategy.
        column_x_tolerance: Column cluster gap for the columns strategy.
        job_id: Used only to tag log messages.

    Raises:
        PDFConversionError: If the PDF cannot be decoded.
        NoTextExtractedError: If the PDF has no text.
        AIServiceError: If the model call or its reply fails.
    """
    # pdfminer is CPU-bound and synchronous
    pages = await asyncio.to_thread(pdf_service.extract_fragments, file_bytes)

    if not any(pages):
        raise NoTextExtractedError()

    if strategy == "columns":
        layout = build_layout(
            pages,
            y_tolerance=row_y_tolerance,
            x_tolerance=column_x_tolerance,
        )
        if layout is not None and layout.rows:
            return await ai_service.normalize_layout(layout, job_id=job_id)
        logger.info("Job %s - No column grid found, using line heuristics", job_id)

    return await _normalize_by_lines(pages, ai_service, job_id)


async def run_extraction_job(
    job_id: str,
    file_bytes: bytes,
    registry: JobRegistry,
    pdf_service: PDFService,
    ai_service: AIService,
    strategy: str = "lines",
    row_y_tolerance: float = 3.0,
    column_x_tolerance: float = 12.0,
) -> None:
    """
    Background task: run the extraction and record the outcome on the job.

    Every failure ends the job in the error state with the failure message;
    nothing is retried.
    """
    try:
        rows = await extract_rows(
            file_bytes,
            pdf_service,
            ai_service,
            strategy=strategy,
            row_y_tolerance=row_y_tolerance,
            column_x_tolerance=column_x_tolerance,
            job_id=job_id,
        )
    except (PDFConversionError, NoTextExtractedError, AIServiceError) as e:
        rows, reason = None, str(e)
    except Exception as e:
        logger.exception("Job %s - Processing error", job_id)
        rows, reason = None, str(e) or type(e).__name__
    else:
        reason = None

    try:
        if reason is None:
            registry.complete(job_id, rows)
        else:
            registry.fail(job_id, reason)
    except JobNotFoundError:
        logger.warning("Job %s - Evicted before it finished; result dropped", job_id)
