"""
FastAPI application for billing PDF extraction.

Provides endpoints for:
- Uploading a billing PDF and starting an extraction job
- Polling job status and results
- Liveness and diagnostics

Run with: uvicorn app.billing.main:app
"""

import logging
from contextlib import asynccontextmanager

import openai
from fastapi import Depends, FastAPI, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, get_settings
from .models import DebugResponse, ExtractRejectedResponse, HealthResponse
from .routers import extract
from .services.ai import get_ai_service
from .services.jobs import get_job_registry
from .services.pdf_service import get_pdf_service

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting Billing PDF Extraction Service...")
    # Initialize services on startup
    get_pdf_service()
    get_ai_service()
    get_job_registry()
    logger.info(
        "Services initialized (model=%s, strategy=%s, retention=%ds)",
        settings.openai_model,
        settings.extraction_strategy,
        settings.job_retention_seconds,
    )
    yield
    logger.info("Shutting down Billing PDF Extraction Service...")
    get_job_registry().clear()


# Create FastAPI application
app = FastAPI(
    title="Billing PDF Extraction API",
    description="Extracts billing table rows from PDFs using AI",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept"],
)


# =============================================================================
# Health Endpoints
# =============================================================================


@app.get("/", response_model=HealthResponse)
async def root() -> HealthResponse:
    """Root endpoint - health check."""
    return HealthResponse(message="Billing PDF API is running")


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(message="Service is healthy")


@app.get("/debug", response_model=DebugResponse)
async def debug(settings: Settings = Depends(get_settings)) -> DebugResponse:
    """Report the OpenAI client version and extraction settings in use."""
    return DebugResponse(
        openai_version=getattr(openai, "__version__", "unknown"),
        model=settings.openai_model,
        extraction_strategy=settings.extraction_strategy,
    )


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(extract.router)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Answer a malformed upload field with the rejection envelope instead of a 422."""
    if request.url.path == "/extract" and any(
        tuple(error.get("loc", ()))[:2] == ("body", "file") for error in exc.errors()
    ):
        logger.warning("Invalid file upload: %s", exc.errors()[0].get("msg"))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ExtractRejectedResponse(error="Please upload a PDF").model_dump(),
        )
    return await request_validation_exception_handler(request, exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Keep every error response a JSON envelope."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": False, "error": f"Internal error: {exc}"},
    )
