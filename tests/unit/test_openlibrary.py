"""
Unit tests for the Open Library adapter.
"""

import httpx
import pytest

from shelfmark.metadata.openlibrary import OpenLibraryClient
from tests.conftest import json_response, mock_http_client


EDITION = {
    "title": "Laskar Pelangi",
    "publishers": ["Bentang Pustaka"],
    "publish_date": "2005",
    "number_of_pages": 529,
    "covers": [8231856],
    "languages": [{"key": "/languages/ind"}],
    "authors": [{"key": "/authors/OL123A"}, {"key": "/authors/OL456A"}],
    "subjects": ["Indonesian fiction", "Education"],
    "description": {"type": "/type/text", "value": "Ten children in Belitung."},
}

AUTHORS = {
    "/authors/OL123A.json": {"name": "Andrea Hirata"},
    "/authors/OL456A.json": {"personal_name": "Angie Kilbane"},
}


def openlibrary_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/isbn/9786020324784.json":
        return json_response(EDITION)
    if path in AUTHORS:
        return json_response(AUTHORS[path])
    if path == "/api/books":
        bibkey = request.url.params["bibkeys"]
        if bibkey != "ISBN:9786020324784":
            return json_response({})
        return json_response({
            bibkey: {
                "title": "Laskar Pelangi",
                "classifications": {
                    "dewey_decimal_class": ["899.2213"],
                    "lc_classifications": ["PL5089.H57 L37 2005"],
                },
                "subjects": [{"name": f"Subject {i}"} for i in range(10)],
            }
        })
    return httpx.Response(404)


@pytest.fixture
def client() -> OpenLibraryClient:
    return OpenLibraryClient(client=mock_http_client(openlibrary_handler))


class TestOpenLibraryFetch:

    async def test_fetch_edition(self, client):
        book = await client.fetch("978-602-03-2478-4")

        assert book.title == "Laskar Pelangi"
        assert book.publisher == "Bentang Pustaka"
        assert book.page_count == 529
        assert book.language == "ind"
        assert book.description == "Ten children in Belitung."
        assert book.thumbnail == "https://covers.openlibrary.org/b/id/8231856-M.jpg"
        assert book.categories == ["Indonesian fiction", "Education"]
        assert book.source == "openlibrary"

    async def test_authors_resolved_in_order(self, client):
        book = await client.fetch("9786020324784")
        assert book.authors == ["Andrea Hirata", "Angie Kilbane"]

    async def test_not_found(self, client):
        assert await client.fetch("9780000000002") is None

    async def test_failed_author_lookup_skipped(self):
        def handler(request):
            if request.url.path == "/isbn/9786020324784.json":
                return json_response(EDITION)
            if request.url.path == "/authors/OL123A.json":
                return json_response({"name": "Andrea Hirata"})
            return httpx.Response(500)

        client = OpenLibraryClient(client=mock_http_client(handler))
        book = await client.fetch("9786020324784")
        assert book.authors == ["Andrea Hirata"]

    async def test_string_description_and_no_cover(self):
        edition = dict(EDITION, description="Plain text.", covers=[-1], authors=[])

        client = OpenLibraryClient(client=mock_http_client(lambda request: json_response(edition)))
        book = await client.fetch("9786020324784")
        assert book.description == "Plain text."
        assert book.thumbnail is None
        assert book.authors == []

    async def test_timeout_returns_none(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = OpenLibraryClient(client=mock_http_client(handler))
        assert await client.fetch("9786020324784") is None


class TestOpenLibraryClassification:

    async def test_fetch_classification(self, client):
        result = await client.fetch_classification("9786020324784")

        assert result.ddc == "899.2213"
        assert result.lcc == "PL5089.H57 L37 2005"
        assert result.title == "Laskar Pelangi"
        assert len(result.subjects) == OpenLibraryClient.MAX_CLASSIFICATION_SUBJECTS

    async def test_no_record(self, client):
        assert await client.fetch_classification("9780132350884") is None

    async def test_record_without_classifications(self):
        def handler(request):
            return json_response({"ISBN:9780132350884": {"title": "Clean Code"}})

        client = OpenLibraryClient(client=mock_http_client(handler))
        result = await client.fetch_classification("9780132350884")
        assert result.ddc is None
        assert result.lcc is None
        assert result.subjects == []
