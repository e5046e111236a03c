"""
Merge Engine

Waterfall merge of per-source records into one canonical record.
Sources are passed highest priority first; the fixed order everywhere
is google > openlibrary > loc > perpusnas.
"""

from typing import Iterable, Optional, Sequence

from shelfmark.metadata.models import BookMetadata


SOURCE_PRIORITY: tuple[str, ...] = ("google", "openlibrary", "loc", "perpusnas")

# A lower-priority description wins when it is at least this much longer
DESCRIPTION_OVERRIDE_RATIO = 1.5

COMPLETENESS_WEIGHTS: dict[str, int] = {
    "title": 20,
    "authors": 20,
    "description": 15,
    "publisher": 10,
    "published_date": 10,
    "categories": 10,
    "page_count": 5,
    "thumbnail": 5,
    "language": 5,
}

_SCALAR_FIELDS = (
    "title",
    "subtitle",
    "publisher",
    "published_date",
    "description",
    "page_count",
    "language",
    "thumbnail",
    "ddc",
    "lcc",
    "call_number",
    "subjects",
    "series",
    "edition",
    "collation",
    "gmd",
    "publish_place",
)

_LIST_FIELDS = ("authors", "categories")


def _present(sources: Iterable[Optional[BookMetadata]]) -> list[BookMetadata]:
    return [s for s in sources if s is not None]


def order_by_priority(sources: Iterable[Optional[BookMetadata]]) -> list[BookMetadata]:
    """Sort records by ``SOURCE_PRIORITY``; unknown sources go last, stable."""
    rank = {name: index for index, name in enumerate(SOURCE_PRIORITY)}
    return sorted(_present(sources), key=lambda s: rank.get(s.source, len(rank)))


def merge_metadata(sources: Sequence[Optional[BookMetadata]]) -> Optional[BookMetadata]:
    """
    Merge records with waterfall priority.

    Args:
        sources: Records in priority order (highest first); None entries
            are skipped.

    Returns:
        Merged record, or None if every source is None.
    """
    valid = _present(sources)
    if not valid:
        return None

    first = valid[0]
    merged = BookMetadata(isbn=first.isbn, source=first.source)

    for source in valid:
        for name in _SCALAR_FIELDS:
            if getattr(merged, name) in (None, "") and getattr(source, name) not in (None, ""):
                setattr(merged, name, getattr(source, name))

        for name in _LIST_FIELDS:
            if not getattr(merged, name) and getattr(source, name):
                setattr(merged, name, list(getattr(source, name)))

    # Prefer a substantially richer synopsis from a lower-priority source
    for source in valid:
        if (
            merged.description
            and source.description
            and len(source.description) >= len(merged.description) * DESCRIPTION_OVERRIDE_RATIO
        ):
            merged.description = source.description

    return merged


def merge_authors(sources: Sequence[Optional[BookMetadata]]) -> list[str]:
    """Union of authors across sources, first spelling kept, case-insensitive."""
    seen: set[str] = set()
    result: list[str] = []
    for source in _present(sources):
        for author in source.authors:
            key = author.strip().lower()
            if key and key not in seen:
                seen.add(key)
                result.append(author)
    return result


def merge_categories(sources: Sequence[Optional[BookMetadata]]) -> list[str]:
    """Ordered union of categories across sources."""
    result: list[str] = []
    for source in _present(sources):
        for category in source.categories:
            if category not in result:
                result.append(category)
    return result


def calculate_completeness(metadata: Optional[BookMetadata]) -> int:
    """Weighted 0-100 score of how many core fields are populated."""
    if metadata is None:
        return 0

    score = 0
    for name, weight in COMPLETENESS_WEIGHTS.items():
        if getattr(metadata, name):
            score += weight
    return score
