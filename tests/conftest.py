"""
Pytest configuration and fixtures for Shelfmark tests.
"""

import asyncio
import json
from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from shelfmark.api.main import create_app
from shelfmark.api.dependencies import Settings, ServiceContainer
from shelfmark.classification.cache import ClassificationCacheRepository
from shelfmark.metadata.models import BookMetadata


# =============================================================================
# Test Settings
# =============================================================================

def get_test_settings() -> Settings:
    """Return settings configured for testing."""
    return Settings(
        database_url="sqlite:///:memory:",
        environment="test",
        debug=True,
        llm_provider="mock",
        perpusnas_enabled=True,
        resolve_timeout=5.0,
        source_timeout=2.0,
    )


# =============================================================================
# HTTP Fakes
# =============================================================================

def json_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload), headers={"Content-Type": "application/json"})


def mock_http_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class FakeSource:
    """Metadata source returning a fixed record, optionally after a delay or error."""

    def __init__(self, name: str, record=None, error: Exception = None, delay: float = 0.0):
        self.name = name
        self.record = record
        self.error = error
        self.delay = delay
        self.calls: list[str] = []
        self.closed = False
        self.cancelled = False
        self.finished = False

    async def fetch(self, isbn: str):
        self.calls.append(isbn)
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        self.finished = True
        if self.error:
            raise self.error
        return self.record.copy(isbn=isbn) if self.record else None

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_source() -> type:
    return FakeSource


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def cache_repository() -> ClassificationCacheRepository:
    """Classification cache on a private in-memory database."""
    return ClassificationCacheRepository("sqlite:///:memory:")


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return get_test_settings()


@pytest.fixture
def services(settings) -> ServiceContainer:
    """Service container; tests swap in fakes through the private attributes."""
    return ServiceContainer(settings)


@pytest_asyncio.fixture(scope="function")
async def app(settings, services):
    """Create FastAPI application for testing."""
    application = create_app(settings)
    application.state.services = services
    yield application


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide async HTTP client for API tests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Data Fixtures
# =============================================================================

@pytest.fixture
def sample_book() -> BookMetadata:
    return BookMetadata(
        isbn="9780132350884",
        title="Clean Code",
        subtitle="A Handbook of Agile Software Craftsmanship",
        authors=["Robert C. Martin"],
        publisher="Prentice Hall",
        published_date="2008",
        description="Even bad code can function.",
        page_count=464,
        categories=["Computers"],
        language="en",
        thumbnail="https://books.google.com/books/content?id=abc",
        source="google",
    )


@pytest.fixture
def indonesian_book() -> BookMetadata:
    return BookMetadata(
        isbn="9786020324784",
        title="Laskar Pelangi",
        authors=["Andrea Hirata", "Bentang Pustaka"],
        publisher="Bentang Pustaka",
        published_date="2005",
        language="ind",
        subjects="Fiksi Indonesia; Pendidikan",
        collation="xii, 529 hlm. ; 20 cm",
        publish_place="Yogyakarta",
        source="perpusnas",
    )


@pytest.fixture
def google_volume() -> dict:
    """Google Books volumes response for Clean Code."""
    return {
        "totalItems": 1,
        "items": [
            {
                "volumeInfo": {
                    "title": "Clean Code",
                    "subtitle": "A Handbook of Agile Software Craftsmanship",
                    "authors": ["Robert C. Martin"],
                    "publisher": "Pearson Education",
                    "publishedDate": "2008-08-01",
                    "description": "Even bad code can function.",
                    "pageCount": 464,
                    "categories": ["Computers"],
                    "language": "en",
                    "imageLinks": {"thumbnail": "http://books.google.com/books/content?id=hjEFCAAAQBAJ"},
                    "industryIdentifiers": [
                        {"type": "ISBN_10", "identifier": "0132350882"},
                        {"type": "ISBN_13", "identifier": "9780132350884"},
                    ],
                }
            }
        ],
    }
