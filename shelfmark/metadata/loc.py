"""
Library of Congress Client

Keyword search against the national catalog. The JSON shape is loose:
most fields come back as lists, some as scalars, many not at all.
"""

from typing import Any, Optional

import httpx
from loguru import logger

from shelfmark.metadata.isbn import clean_isbn
from shelfmark.metadata.models import BookMetadata


def _first(value: Any) -> Optional[str]:
    """First non-empty string of a list, or the value itself if scalar."""
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item.strip():
                return item.strip()
        return None
    if isinstance(value, str):
        return value.strip() or None
    return None


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class LibraryOfCongressClient:
    """Client for the loc.gov books search API."""

    name = "loc"
    BASE_URL = "https://www.loc.gov/books/"
    USER_AGENT = "Shelfmark/1.0 (library cataloging)"
    MAX_CATEGORIES = 10

    def __init__(self, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.USER_AGENT, "Accept": "application/json"},
            )
        return self._client

    async def fetch(self, isbn: str) -> Optional[BookMetadata]:
        """Search by ISBN keyword and map the first hit."""
        client = await self._get_client()
        isbn = clean_isbn(isbn)

        try:
            response = await client.get(self.BASE_URL, params={"q": isbn, "fo": "json", "c": 1})

            if response.status_code != 200:
                logger.warning(f"[loc] HTTP {response.status_code} for ISBN {isbn}")
                return None

            results = (response.json() or {}).get("results") or []
            if not results or not isinstance(results[0], dict):
                logger.info(f"[loc] No results for ISBN {isbn}")
                return None

            return self._parse_item(results[0], isbn)

        except httpx.TimeoutException:
            logger.warning(f"[loc] Timeout after {self.timeout}s for ISBN {isbn}")
            return None
        except Exception as e:
            logger.error(f"[loc] Error fetching ISBN {isbn}: {type(e).__name__}: {e}")
            return None

    def _parse_item(self, item: dict, isbn: str) -> BookMetadata:
        # "Title : subtitle" is common in catalog titles
        title = subtitle = None
        raw_title = _first(item.get("title"))
        if raw_title:
            head, sep, tail = raw_title.partition(":")
            title = head.strip().rstrip("/").strip() or None
            if sep:
                subtitle = tail.strip().rstrip("/").strip() or None

        authors = [c for c in _as_str_list(item.get("contributor")) if "publisher" not in c.lower()]

        descriptions = _as_str_list(item.get("description"))
        description = " ".join(descriptions) or None

        return BookMetadata(
            isbn=isbn,
            title=title,
            subtitle=subtitle,
            authors=authors,
            published_date=_first(item.get("date")),
            description=description,
            categories=_as_str_list(item.get("subject"))[: self.MAX_CATEGORIES],
            language=_first(item.get("language")),
            thumbnail=_first(item.get("image_url")),
            source=self.name,
        )

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
