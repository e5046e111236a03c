"""
Dependency injection for FastAPI routes.

Provides injectable dependencies for:
- Configuration
- Service instances (resolver, classification cascade, harvester)
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request


# =============================================================================
# Configuration
# =============================================================================

def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


@dataclass
class Settings:
    """Application settings loaded from environment."""

    # Classification cache
    database_url: str = "sqlite:///./shelfmark.db"

    # Sources
    google_books_api_key: Optional[str] = None
    google_timeout: float = 10.0
    openlibrary_timeout: float = 10.0
    loc_timeout: float = 5.0
    oai_timeout: float = 8.0
    perpusnas_enabled: bool = True
    perpusnas_include_aggregators: bool = False

    # Resolution
    resolve_timeout: Optional[float] = 30.0
    source_timeout: float = 15.0
    record_cache_ttl_seconds: float = 24 * 60 * 60

    # LLM
    llm_provider: str = "groq"  # groq, openai, anthropic, mock
    llm_api_key: Optional[str] = None
    llm_model: Optional[str] = None
    llm_base_url: Optional[str] = None

    # MARC export
    marc_organization_code: str = "Shelfmark"

    # Environment
    environment: str = "development"
    debug: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            google_books_api_key=os.getenv("GOOGLE_BOOKS_API_KEY"),
            google_timeout=_env_float("GOOGLE_BOOKS_TIMEOUT", cls.google_timeout),
            openlibrary_timeout=_env_float("OPENLIBRARY_TIMEOUT", cls.openlibrary_timeout),
            loc_timeout=_env_float("LOC_TIMEOUT", cls.loc_timeout),
            oai_timeout=_env_float("PERPUSNAS_OAI_TIMEOUT", cls.oai_timeout),
            perpusnas_enabled=_env_bool("PERPUSNAS_ENABLED", cls.perpusnas_enabled),
            perpusnas_include_aggregators=_env_bool("PERPUSNAS_INCLUDE_AGGREGATORS", cls.perpusnas_include_aggregators),
            resolve_timeout=_env_float("RESOLVE_TIMEOUT", cls.resolve_timeout),
            source_timeout=_env_float("SOURCE_TIMEOUT", cls.source_timeout),
            record_cache_ttl_seconds=_env_float("RECORD_CACHE_TTL_SECONDS", cls.record_cache_ttl_seconds),
            llm_provider=os.getenv("LLM_PROVIDER", cls.llm_provider),
            llm_api_key=os.getenv("LLM_API_KEY"),
            llm_model=os.getenv("LLM_MODEL"),
            llm_base_url=os.getenv("LLM_BASE_URL"),
            marc_organization_code=os.getenv("MARC_ORGANIZATION_CODE", cls.marc_organization_code),
            environment=os.getenv("SHELFMARK_ENV", cls.environment),
            debug=_env_bool("DEBUG", cls.debug),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings.from_env()


def harvest_timeout(settings: Settings, endpoint_count: int) -> float:
    """
    Resolver timeout for the OAI-PMH harvester.

    Each endpoint may use up to ``oai_timeout``, so the failover loop gets
    that much per endpoint, capped by the overall resolve timeout and never
    below the default per-source timeout.
    """
    budget = settings.oai_timeout * max(1, endpoint_count)
    if settings.resolve_timeout:
        budget = min(budget, settings.resolve_timeout)
    return max(budget, settings.source_timeout)


# =============================================================================
# Service Dependencies (Lazy Loading)
# =============================================================================

class ServiceContainer:
    """
    Container for lazy-loaded service instances.

    Services are initialized on first access to avoid startup delays.
    Tests replace the private attributes with fakes before first access.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._resolver = None
        self._perpusnas = None
        self._classification_cache = None
        self._llm_client = None
        self._llm_client_loaded = False
        self._cascade = None

    @property
    def perpusnas(self):
        """Get OAI-PMH harvester instance."""
        if self._perpusnas is None:
            from ..metadata.oai_pmh import PerpusnasClient, get_endpoints
            self._perpusnas = PerpusnasClient(
                endpoints=get_endpoints(self.settings.perpusnas_include_aggregators),
                timeout=self.settings.oai_timeout,
            )
        return self._perpusnas

    @property
    def resolver(self):
        """Get metadata resolver instance."""
        if self._resolver is None:
            from ..metadata.google_books import GoogleBooksClient
            from ..metadata.loc import LibraryOfCongressClient
            from ..metadata.openlibrary import OpenLibraryClient
            from ..metadata.resolver import MetadataResolver

            sources = [
                GoogleBooksClient(
                    api_key=self.settings.google_books_api_key,
                    timeout=self.settings.google_timeout,
                ),
                OpenLibraryClient(timeout=self.settings.openlibrary_timeout),
                LibraryOfCongressClient(timeout=self.settings.loc_timeout),
            ]
            source_timeouts = {}
            if self.settings.perpusnas_enabled:
                perpusnas = self.perpusnas
                sources.append(perpusnas)
                source_timeouts[perpusnas.name] = harvest_timeout(self.settings, len(perpusnas.endpoints))

            self._resolver = MetadataResolver(
                sources=sources,
                source_timeout=self.settings.source_timeout,
                source_timeouts=source_timeouts,
                timeout=self.settings.resolve_timeout,
                cache_ttl_seconds=self.settings.record_cache_ttl_seconds,
            )
        return self._resolver

    @property
    def classification_cache(self):
        """Get classification cache repository instance."""
        if self._classification_cache is None:
            from ..classification.cache import ClassificationCacheRepository
            self._classification_cache = ClassificationCacheRepository(self.settings.database_url)
        return self._classification_cache

    @property
    def llm_client(self):
        """Get LLM client instance, or None when no key is configured."""
        if not self._llm_client_loaded:
            from ..classification.llm import create_llm_client
            self._llm_client = create_llm_client(
                provider=self.settings.llm_provider,
                api_key=self.settings.llm_api_key,
                model=self.settings.llm_model,
                base_url=self.settings.llm_base_url,
            )
            self._llm_client_loaded = True
        return self._llm_client

    @property
    def cascade(self):
        """Get classification cascade instance."""
        if self._cascade is None:
            from ..classification.cascade import ClassificationCascade
            from ..metadata.openlibrary import OpenLibraryClient
            self._cascade = ClassificationCascade(
                cache=self.classification_cache,
                openlibrary=OpenLibraryClient(timeout=self.settings.openlibrary_timeout),
                llm_client=self.llm_client,
            )
        return self._cascade

    async def close(self):
        """Close HTTP clients held by initialized services."""
        if self._resolver is not None:
            await self._resolver.close()
        if self._perpusnas is not None:
            await self._perpusnas.close()
        if self._cascade is not None:
            await self._cascade.close()


# Global service container
_service_container: Optional[ServiceContainer] = None


def init_services(settings: Settings) -> ServiceContainer:
    """Initialize service container."""
    global _service_container
    _service_container = ServiceContainer(settings)
    return _service_container


def get_service_container(request: Request) -> ServiceContainer:
    """Get the app's service container, creating a default one if needed."""
    container = getattr(request.app.state, "services", None)
    if container is not None:
        return container
    if _service_container is None:
        return init_services(get_settings())
    return _service_container


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()


# =============================================================================
# Individual Service Dependencies
# =============================================================================

def get_resolver(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for metadata resolver."""
    return container.resolver


def get_cascade(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for classification cascade."""
    return container.cascade


def get_perpusnas(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for OAI-PMH harvester."""
    return container.perpusnas
