"""
Pydantic models for the billing extraction pipeline.

Defines the positioned text fragments read from PDFs, the unified billing
row schema returned by the service, the job record, and the HTTP envelopes.
"""

import enum
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Extraction Models
# =============================================================================


class TextFragment(BaseModel):
    """
    A piece of text placed on a PDF page.

    Attributes:
        x: Horizontal position of the fragment's left edge.
        y: Vertical position of the fragment's top edge.
        text: The decoded text of the fragment.
    """

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    text: str


class UnifiedRow(BaseModel):
    """
    One billing entry in the merged schema.

    Every field is optional and must be a string or null. Values are literal
    text from the document; nothing is coerced, so a numeric ``MemberID``
    fails validation instead of being stringified.
    """

    model_config = ConfigDict(strict=True, extra="ignore")

    Name: str | None = None
    MemberID: str | None = None
    T1023AuthId: str | None = None
    T1023Range: str | None = None
    T1023BillDate: str | None = None
    H0044AuthId: str | None = None
    H0044Range: str | None = None
    H0044BillDate: str | None = None
    Paid: str | None = None

    def is_empty(self) -> bool:
        """True when no field carries a value."""
        return all(value is None for value in self.model_dump().values())


UNIFIED_ROW_FIELDS: list[str] = list(UnifiedRow.model_fields)


# =============================================================================
# Job Models
# =============================================================================


class JobStatus(str, enum.Enum):
    """Lifecycle state of an extraction job."""

    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


class Job(BaseModel):
    """In-memory record of an extraction request."""

    id: str = Field(..., description="Opaque job identifier (UUID4)")
    status: JobStatus = Field(default=JobStatus.PENDING)
    data: list[UnifiedRow] = Field(default_factory=list)
    error: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = Field(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status is not JobStatus.PENDING


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Liveness response."""

    status: bool = Field(default=True)
    message: str


class DebugResponse(BaseModel):
    """Diagnostic information about the extraction oracle client."""

    openai_version: str
    model: str
    extraction_strategy: str


class ExtractAcceptedResponse(BaseModel):
    """Response for an accepted upload."""

    status: Literal[True] = True
    jobId: str = Field(..., description="Job ID to poll at /status/{jobId}")
    message: str


class ExtractRejectedResponse(BaseModel):
    """Response for a rejected upload."""

    status: Literal[False] = False
    data: list[UnifiedRow] = Field(default_factory=list)
    error: str


class JobPendingResponse(BaseModel):
    status: Literal["pending"] = "pending"


class JobCompletedResponse(BaseModel):
    status: Literal[True] = True
    data: list[UnifiedRow]


class JobErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    error: str


class JobNotFoundResponse(BaseModel):
    error: str
