"""
AI service package for billing row normalization.

This package is split into:
- extraction: prompts and the OpenAI request
- validation: reply parsing and per-row schema validation

The AIService class binds these to a configured OpenAI client.
"""

import logging

from openai import AsyncOpenAI

from ...config import get_settings
from ...models import UnifiedRow
from ..layout import TableLayout
from .exceptions import AIServiceError
from .extraction import (
    EXTRACTION_SYSTEM_PROMPT,
    build_extraction_prompt,
    build_layout_prompt,
    normalize_rows,
)
from .validation import RowValidationResult, parse_rows_response, validate_rows

logger = logging.getLogger(__name__)

__all__ = [
    "AIService",
    "AIServiceError",
    "EXTRACTION_SYSTEM_PROMPT",
    "RowValidationResult",
    "build_extraction_prompt",
    "build_layout_prompt",
    "get_ai_service",
    "normalize_rows",
    "parse_rows_response",
    "validate_rows",
]


class AIService:
    """
    Service for turning candidate table text into UnifiedRow records.

    Uses an OpenAI chat model in JSON mode. The client is created lazily so
    the application can start without an API key; jobs fail with an
    AIServiceError when one is needed and missing.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """
        Initialize the AI service.

        Args:
            api_key: OpenAI API key. If None, reads from config/environment.
            model: OpenAI model to use. If None, reads from config.
            temperature: Sampling temperature. If None, reads from config.
            max_tokens: Completion token limit. If None, reads from config.
            client: Pre-built client, mainly for tests.
        """
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.openai_model
        self.temperature = (
            temperature if temperature is not None else settings.openai_temperature
        )
        self.max_tokens = max_tokens or settings.openai_max_tokens
        self._client = client

        if self._client is None and not self.api_key:
            logger.warning(
                "OPENAI_API_KEY is not set; extraction jobs will fail until it is configured."
            )

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-load the OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise AIServiceError(
                    "OpenAI API key not provided. Set OPENAI_API_KEY environment variable."
                )
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def _normalize(self, prompt: str, job_id: str | None) -> list[UnifiedRow]:
        return await normalize_rows(
            prompt,
            client=self.client,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            job_id=job_id,
        )

    async def normalize_lines(
        self, lines: list[str], job_id: str | None = None
    ) -> list[UnifiedRow]:
        """
        Normalize filtered text lines into rows.

        Args:
            lines: Candidate table lines from the row filter.
            job_id: Used only to tag log messages.

        Returns:
            Validated rows.
        """
        return await self._normalize(build_extraction_prompt(lines), job_id)

    async def normalize_layout(
        self, layout: TableLayout, job_id: str | None = None
    ) -> list[UnifiedRow]:
        """
        Normalize a column-aligned table into rows.

        Args:
            layout: Table rebuilt from fragment positions.
            job_id: Used only to tag log messages.

        Returns:
            Validated rows.
        """
        return await self._normalize(build_layout_prompt(layout), job_id)


# =============================================================================
# Singleton Factory
# =============================================================================

_ai_service: AIService | None = None


def get_ai_service() -> AIService:
    """Get or create the AI service singleton."""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service
