"""
Integration tests for API endpoints.
"""

import io

import httpx
import pytest
from pymarc import MARCReader

from shelfmark.api.dependencies import ServiceContainer
from shelfmark.api.main import create_app
from shelfmark.classification.cache import ClassificationCacheEntry
from shelfmark.classification.llm import LLMRateLimitError, MockLLMClient
from shelfmark.classification.cascade import ClassificationCascade
from shelfmark.metadata.models import BookMetadata
from shelfmark.metadata.oai_pmh import OAIEndpoint, PerpusnasClient
from shelfmark.metadata.resolver import MetadataResolver
from tests.conftest import get_test_settings

pytestmark = pytest.mark.asyncio


class FakeOpenLibrary:
    def __init__(self, result=None):
        self.result = result
        self.calls = []

    async def fetch_classification(self, isbn):
        self.calls.append(isbn)
        return self.result

    async def close(self):
        pass


@pytest.fixture
def resolver(services, fake_source, sample_book):
    resolver = MetadataResolver([
        fake_source("google", sample_book),
        fake_source("loc", BookMetadata(isbn="", source="loc", publish_place="Upper Saddle River")),
        fake_source("perpusnas"),
    ])
    services._resolver = resolver
    return resolver


def use_llm(services, cache_repository, llm, openlibrary=None):
    openlibrary = openlibrary or FakeOpenLibrary()
    services._cascade = ClassificationCascade(
        cache=cache_repository,
        openlibrary=openlibrary,
        llm_client=llm,
    )
    return openlibrary


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["llm_configured"] is True
        assert "X-Request-ID" in response.headers

    async def test_llm_configured_from_provider_key(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
        settings = get_test_settings()
        settings.llm_provider = "groq"
        settings.llm_api_key = None

        app = create_app(settings)
        app.state.services = ServiceContainer(settings)
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health")

        assert response.json()["llm_configured"] is True

    async def test_llm_not_configured_without_key(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        settings = get_test_settings()
        settings.llm_provider = "groq"
        settings.llm_api_key = None

        app = create_app(settings)
        app.state.services = ServiceContainer(settings)
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health")

        assert response.json()["llm_configured"] is False

    async def test_request_id_echoed(self, client):
        response = await client.get("/", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestBooksEndpoints:
    """Tests for ISBN lookup."""

    async def test_lookup(self, client, resolver):
        response = await client.get("/api/v1/books/978-0-13-235088-4")

        assert response.status_code == 200
        data = response.json()
        assert data["metadata"]["isbn"] == "9780132350884"
        assert data["metadata"]["title"] == "Clean Code"
        assert data["metadata"]["publish_place"] == "Upper Saddle River"
        assert sorted(data["meta"]["sources_found"]) == ["google", "loc"]
        assert data["meta"]["completeness"] == 100
        assert data["cached"] is False

    async def test_second_lookup_cached(self, client, resolver):
        await client.get("/api/v1/books/9780132350884")
        response = await client.get("/api/v1/books/9780132350884")
        assert response.json()["cached"] is True

    async def test_invalid_isbn(self, client, resolver):
        response = await client.get("/api/v1/books/12345")

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "INVALID_ISBN"
        assert data["error"] == "Invalid ISBN format. Must be 10 or 13 digits."
        assert "timestamp" in data

    async def test_not_found(self, client, services, fake_source):
        services._resolver = MetadataResolver([fake_source("google"), fake_source("loc")])

        response = await client.get("/api/v1/books/9780000000002")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"


class TestClassificationEndpoints:
    """Tests for the classification cascade endpoint."""

    async def test_classify_with_llm(self, client, services, cache_repository, sample_book):
        use_llm(services, cache_repository, MockLLMClient({"ddc": "005.1", "classification_trust": "medium"}))

        response = await client.post(
            "/api/v1/classification",
            json={"metadata": sample_book.to_dict()},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["ddc"] == "005.1"
        assert data["call_number"] == "005.1 MAR"
        assert data["classification_trust"] == "medium"
        assert data["is_ai_enhanced"] is True
        assert len(data["ai_log"]) == 1

    async def test_classify_without_llm(self, client, services, cache_repository, sample_book):
        use_llm(services, cache_repository, None)

        response = await client.post("/api/v1/classification", json={"metadata": sample_book.to_dict()})
        assert response.status_code == 200
        assert response.json()["classification_trust"] == "low"

    async def test_rate_limited(self, client, services, cache_repository, sample_book):
        use_llm(services, cache_repository, MockLLMClient(error=LLMRateLimitError("slow down", retry_after=30)))

        response = await client.post("/api/v1/classification", json={"metadata": sample_book.to_dict()})

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "30"
        assert response.json()["code"] == "CLASSIFICATION_RATE_LIMITED"

    async def test_hyphenated_isbn_uses_verified_cache_row(self, client, services, cache_repository, sample_book):
        cache_repository.insert_if_absent(ClassificationCacheEntry(
            isbn="9780132350884",
            title="Clean Code",
            ddc="005.1",
            call_number="005.1 MAR",
            verified=True,
        ))
        openlibrary = use_llm(services, cache_repository, None)

        payload = sample_book.to_dict()
        payload["isbn"] = "978-0-13-235088-4"
        response = await client.post("/api/v1/classification", json={"metadata": payload})

        assert response.status_code == 200
        data = response.json()
        assert data["isbn"] == "9780132350884"
        assert data["classification_trust"] == "high"
        assert data["call_number"] == "005.1 MAR"
        assert openlibrary.calls == []
        assert cache_repository.count() == 1

    async def test_malformed_isbn_rejected(self, client, services, cache_repository, sample_book):
        openlibrary = use_llm(services, cache_repository, None)

        payload = sample_book.to_dict()
        payload["isbn"] = "12345"
        response = await client.post("/api/v1/classification", json={"metadata": payload})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_ISBN"
        assert openlibrary.calls == []

    async def test_missing_metadata(self, client):
        response = await client.post("/api/v1/classification", json={})
        assert response.status_code == 422


class TestMarcEndpoints:
    """Tests for MARC21 export."""

    async def test_export(self, client, sample_book, indonesian_book):
        response = await client.post(
            "/api/v1/marc/export",
            json={"records": [sample_book.to_dict(), indonesian_book.to_dict()]},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/marc"
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="shelfmark-export-')
        assert disposition.endswith('.mrc"')

        records = list(MARCReader(io.BytesIO(response.content), to_unicode=True, force_utf8=True))
        assert [r["245"]["a"] for r in records] == ["Clean Code", "Laskar Pelangi"]
        assert records[0]["003"].data == "Shelfmark"

    async def test_export_normalizes_isbn(self, client, sample_book):
        payload = sample_book.to_dict()
        payload["isbn"] = "978-0-13-235088-4"

        response = await client.post("/api/v1/marc/export", json={"records": [payload]})

        assert response.status_code == 200
        record = next(iter(MARCReader(io.BytesIO(response.content), to_unicode=True, force_utf8=True)))
        assert record["001"].data == "9780132350884"
        assert record["020"]["a"] == "9780132350884"

    async def test_export_rejects_malformed_isbn(self, client, sample_book):
        payload = sample_book.to_dict()
        payload["isbn"] = "not-an-isbn"

        response = await client.post("/api/v1/marc/export", json={"records": [payload]})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_ISBN"

    async def test_empty_export_rejected(self, client):
        response = await client.post("/api/v1/marc/export", json={"records": []})
        assert response.status_code == 422


class TestPerpusnasEndpoints:
    """Tests for OAI-PMH diagnostics."""

    @pytest.fixture
    def harvester(self, services):
        body = b"""<OAI-PMH xmlns="http://www.openarchives.org/OAI/2.0/"><ListRecords>
          <record><header><identifier>oai:1</identifier></header><metadata>
            <record xmlns="http://www.loc.gov/MARC21/slim">
              <datafield tag="020" ind1=" " ind2=" "><subfield code="a">9786020324784</subfield></datafield>
              <datafield tag="245" ind1="1" ind2="0"><subfield code="a">Laskar pelangi /</subfield></datafield>
            </record>
          </metadata></record>
        </ListRecords></OAI-PMH>"""

        def handler(request):
            return httpx.Response(200, content=body)

        harvester = PerpusnasClient(
            endpoints=[OAIEndpoint("Local", "http://inlislite.local/opac/oai")],
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        services._perpusnas = harvester
        return harvester

    async def test_harvest(self, client, harvester):
        response = await client.get("/api/v1/perpusnas/978-602-03-2478-4")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "found"
        assert data["data"]["title"] == "Laskar pelangi"
        assert data["raw"]["identifier"] == "oai:1"
        assert data["endpoint"] == "http://inlislite.local/opac/oai"

    async def test_harvest_not_found(self, client, harvester):
        response = await client.get("/api/v1/perpusnas/9780132350884")
        assert response.status_code == 200
        assert response.json()["status"] == "not_found"

    async def test_harvest_invalid_isbn(self, client, harvester):
        response = await client.get("/api/v1/perpusnas/abc")
        assert response.status_code == 400

    async def test_connection_probe(self, client, harvester):
        response = await client.get("/api/v1/perpusnas/test")

        assert response.status_code == 200
        data = response.json()
        assert data["available"] is True
        assert data["endpoint"] == "http://inlislite.local/opac/oai"
