"""
Canonical Book Metadata

The shared record shape every source adapter produces and every
consumer (merge, classification, MARC export) reads.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class TrustLevel(str, Enum):
    """Confidence in a record's classification fields."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class ClassificationChange:
    """One entry of the append-only classification change log."""

    timestamp: datetime
    model: str
    changes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "model": self.model,
            "changes": list(self.changes),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ClassificationChange":
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            timestamp=timestamp or datetime.utcnow(),
            model=data.get("model") or "unknown",
            changes=list(data.get("changes") or []),
        )


@dataclass
class BookMetadata:
    """
    Canonical bibliographic record.

    Only ``isbn`` is guaranteed; every other field is independently
    nullable and no field's presence implies another's.
    """

    isbn: str

    # Descriptive
    title: Optional[str] = None
    subtitle: Optional[str] = None
    authors: list[str] = field(default_factory=list)
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    description: Optional[str] = None
    page_count: Optional[int] = None
    categories: list[str] = field(default_factory=list)
    language: Optional[str] = None
    thumbnail: Optional[str] = None

    # Provenance
    source: str = "unknown"

    # Cataloging
    ddc: Optional[str] = None
    lcc: Optional[str] = None
    call_number: Optional[str] = None
    subjects: Optional[str] = None  # semicolon-joined headings
    series: Optional[str] = None
    edition: Optional[str] = None
    collation: Optional[str] = None
    gmd: Optional[str] = None
    publish_place: Optional[str] = None

    # Classification bookkeeping
    classification_trust: Optional[TrustLevel] = None
    is_ai_enhanced: bool = False
    enhanced_at: Optional[datetime] = None
    ai_log: list[ClassificationChange] = field(default_factory=list)

    @property
    def primary_author(self) -> Optional[str]:
        """First listed author, if any."""
        if self.authors:
            return self.authors[0]
        return None

    @property
    def full_title(self) -> Optional[str]:
        """Title and subtitle joined the way catalog displays show them."""
        if self.title and self.subtitle:
            return f"{self.title}: {self.subtitle}"
        return self.title

    @property
    def subject_list(self) -> list[str]:
        """Split ``subjects`` into individual headings."""
        if not self.subjects:
            return []
        return [s.strip() for s in self.subjects.split(";") if s.strip()]

    def copy(self, **changes: Any) -> "BookMetadata":
        """Shallow copy with list fields detached from the original."""
        clone = replace(
            self,
            authors=list(self.authors),
            categories=list(self.categories),
            ai_log=list(self.ai_log),
        )
        return replace(clone, **changes) if changes else clone

    def to_dict(self) -> dict:
        """Convert to the JSON wire shape."""
        return {
            "isbn": self.isbn,
            "title": self.title,
            "subtitle": self.subtitle,
            "authors": list(self.authors),
            "publisher": self.publisher,
            "published_date": self.published_date,
            "description": self.description,
            "page_count": self.page_count,
            "categories": list(self.categories),
            "language": self.language,
            "thumbnail": self.thumbnail,
            "source": self.source,
            "ddc": self.ddc,
            "lcc": self.lcc,
            "call_number": self.call_number,
            "subjects": self.subjects,
            "series": self.series,
            "edition": self.edition,
            "collation": self.collation,
            "gmd": self.gmd,
            "publish_place": self.publish_place,
            "classification_trust": self.classification_trust.value if self.classification_trust else None,
            "is_ai_enhanced": self.is_ai_enhanced,
            "enhanced_at": self.enhanced_at.isoformat() if self.enhanced_at else None,
            "ai_log": [entry.to_dict() for entry in self.ai_log],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BookMetadata":
        """Create from the wire shape; missing keys become None."""
        trust = data.get("classification_trust")
        enhanced_at = data.get("enhanced_at")
        if isinstance(enhanced_at, str):
            enhanced_at = datetime.fromisoformat(enhanced_at)

        return cls(
            isbn=data["isbn"],
            title=data.get("title"),
            subtitle=data.get("subtitle"),
            authors=list(data.get("authors") or []),
            publisher=data.get("publisher"),
            published_date=data.get("published_date"),
            description=data.get("description"),
            page_count=data.get("page_count"),
            categories=list(data.get("categories") or []),
            language=data.get("language"),
            thumbnail=data.get("thumbnail"),
            source=data.get("source") or "unknown",
            ddc=data.get("ddc"),
            lcc=data.get("lcc"),
            call_number=data.get("call_number"),
            subjects=data.get("subjects"),
            series=data.get("series"),
            edition=data.get("edition"),
            collation=data.get("collation"),
            gmd=data.get("gmd"),
            publish_place=data.get("publish_place"),
            classification_trust=TrustLevel(trust) if trust else None,
            is_ai_enhanced=bool(data.get("is_ai_enhanced", False)),
            enhanced_at=enhanced_at,
            ai_log=[ClassificationChange.from_dict(e) for e in data.get("ai_log") or []],
        )


@dataclass
class SourceResult:
    """Outcome of one adapter call, as seen by the resolver."""

    source: str
    data: Optional[BookMetadata] = None
    duration_ms: float = 0.0
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.data is not None
