"""
Perpusnas OAI-PMH Harvester

Indonesian library catalogs (INLISLite deployments) only expose
OAI-PMH, which has no ISBN lookup. Each endpoint is asked for a batch
of records and the batch is scanned for the target ISBN.
"""

import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

import httpx
from loguru import logger
from lxml import etree

from shelfmark.exceptions import MalformedUpstreamError, SourceUnavailableError
from shelfmark.metadata.isbn import clean_isbn
from shelfmark.metadata.marcxml import (
    RawMarcRecord,
    iter_oai_records,
    parse_marcxml_record,
    parse_oai_dc_record,
    parse_xml,
)
from shelfmark.metadata.models import BookMetadata


@dataclass(frozen=True)
class OAIEndpoint:
    """One harvestable repository."""

    name: str
    url: str
    metadata_prefix: str = "marcxml"
    priority: int = 100
    region: Optional[str] = None
    aggregator: bool = False


DEFAULT_ENDPOINTS: tuple[OAIEndpoint, ...] = (
    OAIEndpoint("INLISLite v3 Demo (Official)", "http://demo.inlislitev3.perpusnas.go.id/opac/oai", "marcxml", 1, "Jakarta"),
    OAIEndpoint("BP Batam", "http://opacinlis.bpbatam.go.id/oaipmh/oai.aspx", "marcxml", 2, "Batam"),
    OAIEndpoint("Pekanbaru", "http://pustaka-srv.pekanbaru.go.id:4580/inlislite3/opac/oai", "marcxml", 3, "Riau"),
    OAIEndpoint("Permata Cendekia", "https://perpustakaanpermatacendekia.com/inlislite3/opac/", "oai_dc", 4, "School"),
    OAIEndpoint("Kabupaten Bone", "https://inlislite-dispeka.bone.go.id/opac/oai", "oai_dc", 5, "Sulsel"),
    OAIEndpoint("Samarinda", "http://inlislite.samarindakota.go.id:8123/inlislite3/opac/oai", "marcxml", 6, "Kaltim"),
    OAIEndpoint("Banjarmasin", "http://125.167.232.208:12345/opac/oaipmh/oai.aspx", "marcxml", 7, "Kalsel"),
    OAIEndpoint("OneSearch (Aggregator)", "https://onesearch.id", "oai_dc", 8, "National", aggregator=True),
    OAIEndpoint("Perpusnas E-Journal", "https://ejournal.perpusnas.go.id/mp/oai", "oai_dc", 9, "E-Journal", aggregator=True),
)


def _endpoints_from_env(value: Optional[str], label: str) -> list[OAIEndpoint]:
    """Comma-separated URL list -> endpoints, prefix guessed from the host."""
    urls = [url.strip() for url in (value or "").split(",") if url.strip()]
    endpoints = []
    for index, url in enumerate(urls, start=1):
        lowered = url.lower()
        prefix = "marcxml" if "perpusnas" in lowered or "inlislite" in lowered else "oai_dc"
        endpoints.append(OAIEndpoint(f"{label} {index}", url, prefix, index))
    return endpoints


def get_endpoints(include_aggregators: bool = False) -> list[OAIEndpoint]:
    """
    Endpoints in harvest order.

    ``PERPUSNAS_OAI_ENDPOINTS`` entries come first, then the built-in
    registry by priority, then ``PERPUSNAS_OAI_FALLBACKS``.
    """
    preferred = _endpoints_from_env(os.getenv("PERPUSNAS_OAI_ENDPOINTS"), "Env endpoint")
    fallbacks = _endpoints_from_env(os.getenv("PERPUSNAS_OAI_FALLBACKS"), "Env fallback")
    base = sorted(DEFAULT_ENDPOINTS, key=lambda ep: ep.priority)

    combined = [*preferred, *base, *fallbacks]
    if include_aggregators:
        return combined
    return [ep for ep in combined if not ep.aggregator]


def build_oai_url(endpoint: OAIEndpoint, verb: str, **params: Optional[str]) -> str:
    """Build a request URL; ``metadataPrefix`` is only sent with record verbs."""
    query: dict[str, str] = {"verb": verb}
    if verb in ("ListRecords", "ListIdentifiers", "GetRecord"):
        query["metadataPrefix"] = endpoint.metadata_prefix or "marcxml"
    query.update({key: value for key, value in params.items() if value is not None})
    return f"{endpoint.url}?{urlencode(query)}"


class HarvestStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


@dataclass
class HarvestResult:
    """Outcome of one ISBN harvest across the endpoint list."""

    status: HarvestStatus
    data: Optional[BookMetadata] = None
    raw: Optional[RawMarcRecord] = None
    endpoint: Optional[str] = None
    duration_ms: float = 0.0
    error: Optional[str] = None
    endpoints_tried: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "data": self.data.to_dict() if self.data else None,
            "raw": self.raw.to_dict() if self.raw else None,
            "endpoint": self.endpoint,
            "duration_ms": round(self.duration_ms, 1),
            "error": self.error,
            "endpoints_tried": list(self.endpoints_tried),
        }


@dataclass
class ConnectionProbe:
    """Result of an Identify probe."""

    available: bool
    endpoint: Optional[str] = None
    response_time_ms: float = 0.0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "endpoint": self.endpoint,
            "response_time_ms": round(self.response_time_ms, 1),
            "errors": list(self.errors),
        }


class OAIProtocolError(MalformedUpstreamError):
    """An ``<error code="...">`` envelope in an OAI-PMH response."""

    def __init__(self, code: str, message: str):
        self.oai_code = code
        super().__init__("perpusnas", f"OAI-PMH error [{code}]: {message}")


class PerpusnasClient:
    """
    Harvesting adapter for Perpusnas / INLISLite repositories.

    Endpoints are tried in order; any failure moves on to the next one.
    """

    name = "perpusnas"
    USER_AGENT = "Shelfmark/1.0 (Indonesian library cataloging)"

    def __init__(
        self,
        endpoints: Optional[list[OAIEndpoint]] = None,
        timeout: float = 8.0,
        probe_timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoints = list(endpoints) if endpoints is not None else get_endpoints()
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.USER_AGENT, "Accept": "application/xml, text/xml"},
            )
        return self._client

    async def fetch(self, isbn: str) -> Optional[BookMetadata]:
        """Canonical record for ``isbn``, or None."""
        return (await self.harvest(isbn)).data

    async def harvest(self, isbn: str) -> HarvestResult:
        """
        Scan each endpoint's ListRecords batch for ``isbn``.

        ``NOT_FOUND`` means at least one endpoint answered; ``UNAVAILABLE``
        means none did.
        """
        start = time.perf_counter()
        target = clean_isbn(isbn)
        short_target = target[3:] if len(target) == 13 else None

        tried: list[str] = []
        answered: Optional[str] = None
        last_error: Optional[str] = None

        for endpoint in self.endpoints:
            tried.append(endpoint.name)
            try:
                root = await self._list_records(endpoint)
            except SourceUnavailableError as e:
                last_error = f"{endpoint.name}: {e.detail}"
                logger.warning(f"[perpusnas] {e.detail} on {endpoint.url} for ISBN {target}")
                continue
            except MalformedUpstreamError as e:
                last_error = f"{endpoint.name}: {e.detail}"
                logger.warning(f"[perpusnas] {e.detail} from {endpoint.url}")
                continue
            except Exception as e:
                last_error = f"{endpoint.name}: {type(e).__name__}: {e}"
                logger.error(f"[perpusnas] Unexpected error on {endpoint.url}: {type(e).__name__}: {e}")
                continue

            answered = answered or endpoint.url

            for identifier, record in iter_oai_records(root):
                if endpoint.metadata_prefix == "oai_dc":
                    raw = parse_oai_dc_record(record, identifier)
                else:
                    raw = parse_marcxml_record(record, identifier)
                if raw is None or not raw.isbn:
                    continue

                if raw.isbn == target or (short_target and raw.isbn == short_target):
                    logger.info(f"[perpusnas] Found ISBN {target} on {endpoint.name}")
                    return HarvestResult(
                        status=HarvestStatus.FOUND,
                        data=raw.to_metadata(isbn=target),
                        raw=raw,
                        endpoint=endpoint.url,
                        duration_ms=(time.perf_counter() - start) * 1000,
                        endpoints_tried=tried,
                    )

            logger.info(f"[perpusnas] ISBN {target} not in {endpoint.name} batch")

        duration_ms = (time.perf_counter() - start) * 1000

        if answered:
            return HarvestResult(
                status=HarvestStatus.NOT_FOUND,
                endpoint=answered,
                duration_ms=duration_ms,
                error=f"ISBN {target} not found in harvested records",
                endpoints_tried=tried,
            )

        logger.warning(f"[perpusnas] All {len(tried)} endpoints failed for ISBN {target}")
        return HarvestResult(
            status=HarvestStatus.UNAVAILABLE,
            duration_ms=duration_ms,
            error=f"All endpoints failed or timed out (last error: {last_error})" if last_error else "No endpoints configured",
            endpoints_tried=tried,
        )

    async def _list_records(self, endpoint: OAIEndpoint):
        """One ListRecords request; failures raise SourceUnavailableError or MalformedUpstreamError."""
        client = await self._get_client()

        try:
            response = await client.get(build_oai_url(endpoint, "ListRecords"), timeout=self.timeout)
            response.raise_for_status()
        except httpx.TimeoutException:
            raise SourceUnavailableError(self.name, f"timeout after {self.timeout}s")
        except httpx.HTTPError as e:
            raise SourceUnavailableError(self.name, f"{type(e).__name__}: {e}")

        try:
            root = parse_xml(response.content)
        except etree.XMLSyntaxError as e:
            raise MalformedUpstreamError(self.name, f"malformed XML ({e})")
        for error in root.xpath("./*[local-name()='error']"):
            raise OAIProtocolError(error.get("code") or "unknown", "".join(error.itertext()).strip() or "Unknown OAI-PMH error")
        return root

    async def identify(self) -> ConnectionProbe:
        """Probe endpoints with ``verb=Identify`` until one answers."""
        client = await self._get_client()
        start = time.perf_counter()
        errors: list[str] = []

        for endpoint in self.endpoints:
            try:
                response = await client.get(build_oai_url(endpoint, "Identify"), timeout=self.probe_timeout)
            except httpx.HTTPError as e:
                errors.append(f"{endpoint.url} -> {type(e).__name__}: {e}")
                continue

            if response.is_success:
                return ConnectionProbe(
                    available=True,
                    endpoint=endpoint.url,
                    response_time_ms=(time.perf_counter() - start) * 1000,
                    errors=errors,
                )
            errors.append(f"HTTP {response.status_code} from {endpoint.url}")

        logger.warning(f"[perpusnas] Identify failed on all {len(self.endpoints)} endpoints")
        return ConnectionProbe(
            available=False,
            response_time_ms=(time.perf_counter() - start) * 1000,
            errors=errors,
        )

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
