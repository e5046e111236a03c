"""
Open Library Client

Open catalog source, plus the free DDC/LCC lookup used by the
classification cascade.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from loguru import logger

from shelfmark.metadata.isbn import clean_isbn
from shelfmark.metadata.models import BookMetadata


@dataclass
class OpenLibraryClassification:
    """Classification data from the Open Library books API."""

    title: Optional[str] = None
    ddc: Optional[str] = None
    lcc: Optional[str] = None
    subjects: list[str] = field(default_factory=list)


def _description_text(value: Any) -> Optional[str]:
    """Descriptions arrive as a bare string or a {"type", "value"} object."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        text = value.get("value")
        if isinstance(text, str):
            return text.strip() or None
    return None


class OpenLibraryClient:
    """
    Client for Open Library API.

    Open Library is a free, open-source library catalog.
    Rate limits: Be respectful, no official limit but don't abuse.
    """

    name = "openlibrary"
    BASE_URL = "https://openlibrary.org"
    COVERS_URL = "https://covers.openlibrary.org"
    USER_AGENT = "Shelfmark/1.0 (library cataloging)"

    MAX_AUTHORS = 5
    MAX_CATEGORIES = 10
    MAX_CLASSIFICATION_SUBJECTS = 7

    def __init__(
        self,
        timeout: float = 10.0,
        author_concurrency: int = 5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.author_concurrency = author_concurrency
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.USER_AGENT, "Accept": "application/json"},
            )
        return self._client

    async def fetch(self, isbn: str) -> Optional[BookMetadata]:
        """
        Fetch an edition by ISBN.

        Args:
            isbn: ISBN-10 or ISBN-13

        Returns:
            BookMetadata or None
        """
        client = await self._get_client()
        isbn = clean_isbn(isbn)

        try:
            response = await client.get(f"{self.BASE_URL}/isbn/{isbn}.json")

            if response.status_code == 404:
                logger.info(f"[openlibrary] No results for ISBN {isbn}")
                return None
            if response.status_code != 200:
                logger.warning(f"[openlibrary] HTTP {response.status_code} for ISBN {isbn}")
                return None

            edition = response.json()
            if not isinstance(edition, dict):
                logger.warning(f"[openlibrary] Unexpected edition payload for ISBN {isbn}")
                return None

            authors = await self._resolve_authors(edition.get("authors") or [])
            return self._parse_edition(edition, isbn, authors)

        except httpx.TimeoutException:
            logger.warning(f"[openlibrary] Timeout after {self.timeout}s for ISBN {isbn}")
            return None
        except Exception as e:
            logger.error(f"[openlibrary] Error fetching ISBN {isbn}: {type(e).__name__}: {e}")
            return None

    async def _resolve_authors(self, author_refs: list) -> list[str]:
        """Resolve author keys to names, at most ``author_concurrency`` at a time."""
        keys = [
            ref["key"]
            for ref in author_refs[: self.MAX_AUTHORS]
            if isinstance(ref, dict) and ref.get("key")
        ]
        if not keys:
            return []

        semaphore = asyncio.Semaphore(self.author_concurrency)

        async def bounded(key: str) -> Optional[str]:
            async with semaphore:
                return await self._get_author_name(key)

        names = await asyncio.gather(*(bounded(key) for key in keys))
        return [name for name in names if name]

    async def _get_author_name(self, author_key: str) -> Optional[str]:
        """Fetch author name from author key; failures yield None."""
        client = await self._get_client()

        try:
            response = await client.get(f"{self.BASE_URL}{author_key}.json")
            if response.status_code == 200:
                data = response.json()
                return data.get("name") or data.get("personal_name")
            logger.debug(f"[openlibrary] HTTP {response.status_code} for author {author_key}")

        except Exception as e:
            logger.debug(f"[openlibrary] Author lookup {author_key} failed: {type(e).__name__}")

        return None

    def _parse_edition(self, edition: dict, isbn: str, authors: list[str]) -> BookMetadata:
        thumbnail = None
        covers = edition.get("covers") or []
        if covers and covers[0] and covers[0] > 0:
            thumbnail = f"{self.COVERS_URL}/b/id/{covers[0]}-M.jpg"

        # "/languages/eng" -> "eng"
        language = None
        languages = edition.get("languages") or []
        if languages and isinstance(languages[0], dict):
            language = (languages[0].get("key") or "").rsplit("/", 1)[-1] or None

        publishers = edition.get("publishers") or []
        subjects = [s for s in edition.get("subjects") or [] if isinstance(s, str)]
        pages = edition.get("number_of_pages")

        return BookMetadata(
            isbn=isbn,
            title=edition.get("title") or None,
            subtitle=edition.get("subtitle") or None,
            authors=authors,
            publisher=publishers[0] if publishers else None,
            published_date=edition.get("publish_date") or None,
            description=_description_text(edition.get("description")),
            page_count=int(pages) if pages else None,
            categories=subjects[: self.MAX_CATEGORIES],
            language=language,
            thumbnail=thumbnail,
            source=self.name,
        )

    async def fetch_classification(self, isbn: str) -> Optional[OpenLibraryClassification]:
        """
        Fetch DDC/LCC classification from the books API.

        Returns None when Open Library has no record or the call fails.
        """
        client = await self._get_client()
        isbn = clean_isbn(isbn)
        bibkey = f"ISBN:{isbn}"

        try:
            logger.info(f"[openlibrary] Fetching classification for ISBN {isbn}")
            response = await client.get(
                f"{self.BASE_URL}/api/books",
                params={"bibkeys": bibkey, "jscmd": "data", "format": "json"},
            )
            if response.status_code != 200:
                logger.warning(f"[openlibrary] HTTP {response.status_code} for classification of {isbn}")
                return None

            book = (response.json() or {}).get(bibkey)
            if not book:
                logger.info(f"[openlibrary] No classification data for ISBN {isbn}")
                return None

            classifications = book.get("classifications") or {}
            ddc = (classifications.get("dewey_decimal_class") or [None])[0]
            lcc = (classifications.get("lc_classifications") or [None])[0]
            subjects = [
                s["name"] for s in book.get("subjects") or []
                if isinstance(s, dict) and s.get("name")
            ]

            logger.info(f"[openlibrary] Classification for {isbn}: DDC={ddc}, LCC={lcc}")
            return OpenLibraryClassification(
                title=book.get("title"),
                ddc=ddc,
                lcc=lcc,
                subjects=subjects[: self.MAX_CLASSIFICATION_SUBJECTS],
            )

        except Exception as e:
            logger.error(f"[openlibrary] Classification fetch failed for {isbn}: {type(e).__name__}: {e}")
            return None

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
