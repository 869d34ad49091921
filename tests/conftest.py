"""Pytest configuration and fixtures."""

import json
from types import SimpleNamespace
from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient

from app.billing.config import Settings, get_settings
from app.billing.main import app
from app.billing.models import TextFragment
from app.billing.services.ai import AIService, get_ai_service
from app.billing.services.jobs import JobRegistry, get_job_registry
from app.billing.services.pdf_service import get_pdf_service


# =============================================================================
# Fakes
# =============================================================================


class FakeCompletions:
    """Stands in for ``client.chat.completions`` of an AsyncOpenAI client."""

    def __init__(self, content: str | None = None, error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    @property
    def last_prompt(self) -> str:
        return self.calls[-1]["messages"][1]["content"]


def make_fake_client(content: str | None = None, error: Exception | None = None):
    """Build an object shaped like AsyncOpenAI for the chat completions call."""
    completions = FakeCompletions(content=content, error=error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class FakePDFService:
    """PDF decoder returning fixed pages, or raising a fixed error."""

    def __init__(
        self,
        pages: list[list[TextFragment]] | None = None,
        error: Exception | None = None,
    ):
        self.pages = pages or []
        self.error = error
        self.received: list[bytes] = []

    def extract_fragments(self, file_bytes: bytes) -> list[list[TextFragment]]:
        self.received.append(file_bytes)
        if self.error is not None:
            raise self.error
        return self.pages


def fragments_for_lines(lines: list[str], top: float = 50.0) -> list[TextFragment]:
    """Lay out each line's words on its own row, left to right."""
    fragments = []
    for row, line in enumerate(lines):
        for column, word in enumerate(line.split()):
            fragments.append(
                TextFragment(x=40.0 + column * 30.0, y=top + row * 14.0, text=word)
            )
    return fragments


# =============================================================================
# Shared data
# =============================================================================

EXAMPLE_LINES = [
    "NAME MRN T1023 H0044",
    "1 Alo, Benjamin 9898293 146080416 4/1-6/30",
]

EXAMPLE_REPLY = {
    "rows": [
        {
            "Name": "Alo, Benjamin",
            "MemberID": "9898293",
            "T1023AuthId": "146080416",
            "T1023Range": "4/1-6/30",
            "H0044AuthId": None,
            "H0044Range": None,
            "Paid": None,
        }
    ]
}


@pytest.fixture
def example_pages() -> list[list[TextFragment]]:
    """A one-page document whose lines are EXAMPLE_LINES."""
    return [fragments_for_lines(EXAMPLE_LINES)]


@pytest.fixture
def example_reply() -> str:
    return json.dumps(EXAMPLE_REPLY)


# =============================================================================
# App fixtures
# =============================================================================


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="test-key")


@pytest.fixture
def fake_pdf(example_pages) -> FakePDFService:
    return FakePDFService(pages=example_pages)


@pytest.fixture
def fake_ai(example_reply) -> AIService:
    return AIService(api_key="test-key", client=make_fake_client(content=example_reply))


@pytest.fixture
def client(
    registry: JobRegistry,
    settings: Settings,
    fake_pdf: FakePDFService,
    fake_ai: AIService,
) -> Generator[TestClient, None, None]:
    """Test client with the decoder and the model replaced by fakes."""
    app.dependency_overrides[get_job_registry] = lambda: registry
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_pdf_service] = lambda: fake_pdf
    app.dependency_overrides[get_ai_service] = lambda: fake_ai
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Bytes that pass the upload check; decoding is faked in API tests."""
    return b"%PDF-1.4\n%fake billing document\n%%EOF"

