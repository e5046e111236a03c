"""
Resolution Orchestrator

Fans an ISBN out to every configured source at once, waits for all of
them to settle, and merges whatever came back.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Protocol, Sequence

from loguru import logger

from shelfmark.exceptions import BookNotFoundError
from shelfmark.metadata.isbn import normalize_isbn
from shelfmark.metadata.merge import calculate_completeness, merge_metadata, order_by_priority
from shelfmark.metadata.models import BookMetadata, SourceResult


class MetadataSource(Protocol):
    """What the resolver needs from a source adapter."""

    name: str

    async def fetch(self, isbn: str) -> Optional[BookMetadata]: ...

    async def close(self) -> None: ...


@dataclass
class ResolutionMeta:
    """Observability data for one resolution."""

    total_duration_ms: float = 0.0
    sources_attempted: list[str] = field(default_factory=list)
    sources_found: list[str] = field(default_factory=list)
    individual_durations: dict[str, float] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    completeness: int = 0

    def to_dict(self) -> dict:
        return {
            "total_duration_ms": round(self.total_duration_ms, 1),
            "sources_attempted": list(self.sources_attempted),
            "sources_found": list(self.sources_found),
            "individual_durations": {k: round(v, 1) for k, v in self.individual_durations.items()},
            "errors": dict(self.errors),
            "completeness": self.completeness,
        }

    def copy(self) -> "ResolutionMeta":
        return ResolutionMeta(
            total_duration_ms=self.total_duration_ms,
            sources_attempted=list(self.sources_attempted),
            sources_found=list(self.sources_found),
            individual_durations=dict(self.individual_durations),
            errors=dict(self.errors),
            completeness=self.completeness,
        )


@dataclass
class ResolutionResult:
    data: Optional[BookMetadata]
    meta: ResolutionMeta
    cached: bool = False

    @property
    def found(self) -> bool:
        return self.data is not None


class MetadataResolver:
    """
    Concurrent multi-source ISBN resolver.

    Every source runs under its own timeout; one slow or failing source
    never blocks the others. An optional overall ``timeout`` cancels
    whatever is still in flight and merges what already finished.
    """

    def __init__(
        self,
        sources: Sequence[MetadataSource],
        source_timeout: float = 15.0,
        source_timeouts: Optional[dict[str, float]] = None,
        timeout: Optional[float] = None,
        cache_ttl_seconds: Optional[float] = 24 * 60 * 60,
    ):
        """
        Args:
            sources: Source adapters
            source_timeout: Default per-source timeout in seconds
            source_timeouts: Per-source overrides keyed by adapter name
            timeout: Overall resolution timeout; None disables it
            cache_ttl_seconds: TTL of resolved records; None or 0 disables caching
        """
        self.sources = list(sources)
        self.source_timeout = source_timeout
        self.source_timeouts = dict(source_timeouts or {})
        self.timeout = timeout
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds) if cache_ttl_seconds else None
        self._cache: dict[str, tuple[BookMetadata, ResolutionMeta, datetime]] = {}

        logger.info(f"MetadataResolver initialized with sources: {[s.name for s in self.sources]}")

    async def resolve(self, isbn: str) -> ResolutionResult:
        """
        Resolve an ISBN across all sources.

        Raises:
            InvalidISBNError: if the ISBN does not have a 10/13 shape
        """
        normalized = normalize_isbn(isbn)

        cache_key = f"isbn:{normalized}"
        cached = self._get_cached(cache_key)
        if cached:
            data, meta = cached
            logger.info(f"Resolved ISBN {normalized} from record cache")
            return ResolutionResult(data=data.copy(), meta=meta.copy(), cached=True)

        start = time.perf_counter()
        tasks = {
            source.name: asyncio.create_task(self._run_source(source, normalized))
            for source in self.sources
        }

        done, pending = set(), set()
        try:
            if tasks:
                done, pending = await asyncio.wait(tasks.values(), timeout=self.timeout)
        except asyncio.CancelledError:
            # Caller gave up; take every in-flight request down with it
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            logger.warning(f"Resolution of {normalized} cancelled by caller; {len(tasks)} source task(s) cancelled")
            raise
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Resolution of {normalized} hit overall timeout; {len(pending)} source(s) cancelled")

        meta = ResolutionMeta(sources_attempted=list(tasks))
        found: list[BookMetadata] = []

        for name, task in tasks.items():
            if task in done:
                result: SourceResult = task.result()
            else:
                result = SourceResult(
                    source=name,
                    duration_ms=(time.perf_counter() - start) * 1000,
                    error=f"cancelled after overall timeout of {self.timeout}s",
                )

            meta.individual_durations[name] = result.duration_ms
            if result.error:
                meta.errors[name] = result.error
            if result.found:
                meta.sources_found.append(name)
                found.append(result.data)

        merged = merge_metadata(order_by_priority(found))
        if merged is not None:
            merged.isbn = normalized

        meta.completeness = calculate_completeness(merged)
        meta.total_duration_ms = (time.perf_counter() - start) * 1000

        if merged is None:
            logger.info(f"ISBN {normalized} not found in any source ({', '.join(meta.sources_attempted)})")
        else:
            logger.info(
                f"Resolved ISBN {normalized} from {meta.sources_found} "
                f"(completeness {meta.completeness}, {meta.total_duration_ms:.0f}ms)"
            )
            self._set_cached(cache_key, merged, meta)

        return ResolutionResult(data=merged, meta=meta)

    async def resolve_or_raise(self, isbn: str) -> ResolutionResult:
        """Like ``resolve`` but raises BookNotFoundError when no source has the book."""
        result = await self.resolve(isbn)
        if not result.found:
            raise BookNotFoundError(normalize_isbn(isbn), result.meta.sources_attempted)
        return result

    async def _run_source(self, source: MetadataSource, isbn: str) -> SourceResult:
        """Run one adapter under its own timeout; never raises."""
        timeout = self.source_timeouts.get(source.name, self.source_timeout)
        start = time.perf_counter()

        try:
            data = await asyncio.wait_for(source.fetch(isbn), timeout=timeout)
            return SourceResult(source=source.name, data=data, duration_ms=(time.perf_counter() - start) * 1000)
        except asyncio.TimeoutError:
            logger.warning(f"[{source.name}] Timed out after {timeout}s for ISBN {isbn}")
            error = f"timeout after {timeout}s"
        except Exception as e:
            logger.error(f"[{source.name}] Failed for ISBN {isbn}: {type(e).__name__}: {e}")
            error = f"{type(e).__name__}: {e}"

        return SourceResult(source=source.name, duration_ms=(time.perf_counter() - start) * 1000, error=error)

    def _get_cached(self, key: str) -> Optional[tuple[BookMetadata, ResolutionMeta]]:
        """Get from cache if not expired."""
        if self.cache_ttl is None or key not in self._cache:
            return None
        data, meta, cached_at = self._cache[key]
        if datetime.now() - cached_at < self.cache_ttl:
            return data, meta
        del self._cache[key]
        return None

    def _set_cached(self, key: str, data: BookMetadata, meta: ResolutionMeta):
        if self.cache_ttl is not None:
            self._cache[key] = (data.copy(), meta.copy(), datetime.now())

    def clear_cache(self):
        self._cache.clear()

    async def close(self):
        """Close every source's HTTP client."""
        for source in self.sources:
            await source.close()
