"""
Metadata Resolution Module

ISBN lookup across bibliographic sources, waterfall merge and
completeness scoring.
"""

from shelfmark.metadata.models import (
    BookMetadata,
    ClassificationChange,
    SourceResult,
    TrustLevel,
)
from shelfmark.metadata.isbn import (
    clean_isbn,
    normalize_isbn,
    is_valid_isbn,
)
from shelfmark.metadata.google_books import GoogleBooksClient
from shelfmark.metadata.openlibrary import (
    OpenLibraryClient,
    OpenLibraryClassification,
)
from shelfmark.metadata.loc import LibraryOfCongressClient
from shelfmark.metadata.oai_pmh import (
    PerpusnasClient,
    OAIEndpoint,
    HarvestResult,
    HarvestStatus,
    get_endpoints,
    build_oai_url,
)
from shelfmark.metadata.marcxml import (
    RawMarcRecord,
    parse_marcxml_record,
)
from shelfmark.metadata.merge import (
    merge_metadata,
    calculate_completeness,
    merge_authors,
    merge_categories,
)
from shelfmark.metadata.resolver import (
    MetadataResolver,
    ResolutionResult,
    ResolutionMeta,
)

__all__ = [
    # Models
    "BookMetadata",
    "ClassificationChange",
    "SourceResult",
    "TrustLevel",
    # ISBN
    "clean_isbn",
    "normalize_isbn",
    "is_valid_isbn",
    # Sources
    "GoogleBooksClient",
    "OpenLibraryClient",
    "OpenLibraryClassification",
    "LibraryOfCongressClient",
    "PerpusnasClient",
    "OAIEndpoint",
    "HarvestResult",
    "HarvestStatus",
    "get_endpoints",
    "build_oai_url",
    # MARCXML
    "RawMarcRecord",
    "parse_marcxml_record",
    # Merge
    "merge_metadata",
    "calculate_completeness",
    "merge_authors",
    "merge_categories",
    # Resolver
    "MetadataResolver",
    "ResolutionResult",
    "ResolutionMeta",
]
