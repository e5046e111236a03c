"""
Google Books API Client

Commercial catalog source. Highest merge priority, and the only
source that retries.
"""

import os
from typing import Any, Optional

import httpx
from loguru import logger

from shelfmark.metadata.isbn import clean_isbn
from shelfmark.metadata.models import BookMetadata
from shelfmark.metadata.retry import RetryableStatusError, retry_async


class GoogleBooksClient:
    """
    Client for the Google Books volumes API.

    A volume is only accepted when one of its industry identifiers
    matches the requested ISBN; the free-text fallback query happily
    returns unrelated books otherwise.
    """

    name = "google"
    BASE_URL = "https://www.googleapis.com/books/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        retry_base_delay: float = 0.15,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize client.

        Args:
            api_key: Optional API key. Falls back to GOOGLE_BOOKS_API_KEY.
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per query on retryable failures
            retry_base_delay: First backoff delay in seconds
            client: Preconfigured HTTP client (tests inject a mock transport)
        """
        self.api_key = api_key or os.getenv("GOOGLE_BOOKS_API_KEY")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self._client = client

        if not self.api_key:
            logger.warning("No Google Books API key provided. Rate limits will be lower.")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def fetch(self, isbn: str) -> Optional[BookMetadata]:
        """
        Look up a book by ISBN.

        Tries ``isbn:<n>`` first, then the bare number as a looser
        keyword query. Never raises.
        """
        target = clean_isbn(isbn)

        for query in (f"isbn:{target}", target):
            try:
                items = await retry_async(
                    lambda q=query: self._search(q),
                    attempts=self.max_attempts,
                    base_delay=self.retry_base_delay,
                    label=f"google isbn={target}",
                )
            except RetryableStatusError as e:
                logger.warning(f"[google] HTTP {e.status_code} for ISBN {target} after {self.max_attempts} attempts")
                return None
            except httpx.TimeoutException:
                logger.warning(f"[google] Timeout after {self.timeout}s for ISBN {target}")
                return None
            except Exception as e:
                logger.error(f"[google] Error fetching ISBN {target}: {type(e).__name__}: {e}")
                return None

            for item in items:
                if not self._matches_isbn(item, target):
                    continue
                metadata = self._parse_volume(item, target)
                if metadata:
                    return metadata

            if items:
                logger.info(f"[google] {len(items)} result(s) for '{query}' but none matched ISBN {target}")

        logger.info(f"[google] No results for ISBN {target}")
        return None

    async def _search(self, query: str) -> list[dict]:
        """Run one volumes query; retryable statuses raise."""
        client = await self._get_client()

        params: dict[str, Any] = {"q": query, "maxResults": 5, "printType": "books"}
        if self.api_key:
            params["key"] = self.api_key

        response = await client.get(
            f"{self.BASE_URL}/volumes",
            params=params,
            headers={"Accept": "application/json"},
        )

        if response.status_code != 200:
            if response.status_code == 429 or response.status_code >= 500:
                raise RetryableStatusError(response.status_code)
            logger.warning(f"[google] HTTP {response.status_code} for query '{query}'")
            return []

        data = response.json()
        if not data.get("totalItems") or "items" not in data:
            return []
        return data["items"]

    @staticmethod
    def _matches_isbn(item: dict, target: str) -> bool:
        """Check the volume's embedded ISBN-10/13 against the request."""
        info = item.get("volumeInfo") or {}
        for identifier in info.get("industryIdentifiers") or []:
            if identifier.get("type") not in ("ISBN_10", "ISBN_13"):
                continue
            if clean_isbn(identifier.get("identifier", "")) == target:
                return True
        return False

    def _parse_volume(self, item: dict, isbn: str) -> Optional[BookMetadata]:
        """Parse raw volume into BookMetadata."""
        try:
            info = item.get("volumeInfo") or {}

            images = info.get("imageLinks") or {}
            thumbnail = images.get("thumbnail") or images.get("smallThumbnail")
            if thumbnail and thumbnail.startswith("http:"):
                thumbnail = thumbnail.replace("http:", "https:", 1)

            page_count = info.get("pageCount")

            return BookMetadata(
                isbn=isbn,
                title=info.get("title") or None,
                subtitle=info.get("subtitle") or None,
                authors=list(info.get("authors") or []),
                publisher=info.get("publisher") or None,
                published_date=info.get("publishedDate") or None,
                description=info.get("description") or None,
                page_count=int(page_count) if page_count else None,
                categories=list(info.get("categories") or []),
                language=info.get("language") or None,
                thumbnail=thumbnail or None,
                source=self.name,
            )

        except Exception as e:
            logger.warning(f"[google] Error parsing volume data for ISBN {isbn}: {e}")
            return None

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
