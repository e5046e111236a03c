"""
API Schemas for Shelfmark

Pydantic models for request validation and response serialization:
- Book metadata records
- Resolution and harvest diagnostics
- Classification and MARC export requests
"""

from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, ConfigDict

from shelfmark.metadata.isbn import normalize_isbn
from shelfmark.metadata.models import BookMetadata


# =============================================================================
# Enums
# =============================================================================

class Trust(str, Enum):
    """Classification trust level."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HarvestStatusSchema(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


# =============================================================================
# Record Schemas
# =============================================================================

class ClassificationChangeSchema(BaseModel):
    timestamp: datetime
    model: str
    changes: list[str] = Field(default_factory=list)


class BookRecord(BaseModel):
    """Canonical book record, as exchanged with clients."""

    isbn: str = Field(..., min_length=1, max_length=32)

    title: Optional[str] = None
    subtitle: Optional[str] = None
    authors: list[str] = Field(default_factory=list)
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    description: Optional[str] = None
    page_count: Optional[int] = Field(None, ge=0)
    categories: list[str] = Field(default_factory=list)
    language: Optional[str] = None
    thumbnail: Optional[str] = None
    source: str = "unknown"

    # Cataloguing fields
    ddc: Optional[str] = None
    lcc: Optional[str] = None
    call_number: Optional[str] = None
    subjects: Optional[str] = None
    series: Optional[str] = None
    edition: Optional[str] = None
    collation: Optional[str] = None
    gmd: Optional[str] = None
    publish_place: Optional[str] = None

    classification_trust: Optional[Trust] = None
    is_ai_enhanced: bool = False
    enhanced_at: Optional[datetime] = None
    ai_log: list[ClassificationChangeSchema] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "isbn": "9780306406157",
                "title": "Clean Code",
                "subtitle": "A Handbook of Agile Software Craftsmanship",
                "authors": ["Robert C. Martin"],
                "publisher": "Prentice Hall",
                "published_date": "2008",
                "page_count": 464,
                "categories": ["Computers"],
                "language": "en",
                "source": "google",
            }
        }
    )

    def to_metadata(self) -> BookMetadata:
        """Canonical record with a normalized ISBN; raises InvalidISBNError."""
        data = self.model_dump(mode="json")
        data["isbn"] = normalize_isbn(self.isbn)
        return BookMetadata.from_dict(data)

    @classmethod
    def from_metadata(cls, record: BookMetadata) -> "BookRecord":
        return cls.model_validate(record.to_dict())


# =============================================================================
# Book Lookup
# =============================================================================

class ResolutionMetaSchema(BaseModel):
    """Per-lookup observability data."""

    total_duration_ms: float
    sources_attempted: list[str]
    sources_found: list[str]
    individual_durations: dict[str, float]
    errors: dict[str, str] = Field(default_factory=dict)
    completeness: int = Field(..., ge=0, le=100)


class BookLookupResponse(BaseModel):
    metadata: BookRecord
    meta: ResolutionMetaSchema
    cached: bool = False


# =============================================================================
# Classification
# =============================================================================

class ClassificationRequest(BaseModel):
    metadata: BookRecord


# =============================================================================
# MARC Export
# =============================================================================

class MarcExportRequest(BaseModel):
    records: list[BookRecord] = Field(..., min_length=1, max_length=1000)


# =============================================================================
# Perpusnas Harvest
# =============================================================================

class RawMarcRecordSchema(BaseModel):
    """Fields as read from the MARCXML record, before canonicalization."""

    identifier: Optional[str] = None
    isbn: Optional[str] = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    authors: list[str] = Field(default_factory=list)
    publisher: Optional[str] = None
    publish_place: Optional[str] = None
    year: Optional[str] = None
    language: Optional[str] = None
    collation: Optional[str] = None
    subjects: list[str] = Field(default_factory=list)


class HarvestResponse(BaseModel):
    status: HarvestStatusSchema
    data: Optional[BookRecord] = None
    raw: Optional[RawMarcRecordSchema] = None
    endpoint: Optional[str] = None
    duration_ms: float
    error: Optional[str] = None
    endpoints_tried: list[str] = Field(default_factory=list)


class ConnectionProbeResponse(BaseModel):
    available: bool
    endpoint: Optional[str] = None
    response_time_ms: float
    errors: list[str] = Field(default_factory=list)


# =============================================================================
# Error Schemas
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: Optional[str] = None
    code: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Book not found",
                "detail": "ISBN 9780306406157 was found in no source",
                "code": "NOT_FOUND",
                "timestamp": "2025-01-20T12:00:00Z",
            }
        }
    )


# =============================================================================
# Health Check
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    uptime_seconds: float

    llm_configured: bool = False
    perpusnas_enabled: bool = True
