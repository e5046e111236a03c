"""
Unit tests for the waterfall merge and completeness score.
"""

import pytest

from shelfmark.metadata.merge import (
    calculate_completeness,
    merge_authors,
    merge_categories,
    merge_metadata,
    order_by_priority,
)
from shelfmark.metadata.models import BookMetadata


def record(source: str, **fields) -> BookMetadata:
    return BookMetadata(isbn="9780132350884", source=source, **fields)


class TestMergeMetadata:

    def test_all_none(self):
        assert merge_metadata([None, None]) is None
        assert merge_metadata([]) is None

    def test_single_source_passthrough(self, sample_book):
        merged = merge_metadata([None, sample_book])
        assert merged.title == sample_book.title
        assert merged.source == "google"
        assert merged is not sample_book

    def test_higher_priority_wins(self):
        merged = merge_metadata([
            record("google", title="Clean Code", publisher="Prentice Hall"),
            record("openlibrary", title="Clean code : a handbook", publisher="Pearson"),
        ])
        assert merged.title == "Clean Code"
        assert merged.publisher == "Prentice Hall"
        assert merged.source == "google"

    def test_gaps_filled_from_lower_priority(self):
        merged = merge_metadata([
            record("google", title="Clean Code", page_count=None, authors=[]),
            record("openlibrary", page_count=431, authors=["Robert C. Martin"]),
            record("loc", publish_place="Upper Saddle River, NJ"),
        ])
        assert merged.page_count == 431
        assert merged.authors == ["Robert C. Martin"]
        assert merged.publish_place == "Upper Saddle River, NJ"

    def test_empty_string_is_a_gap(self):
        merged = merge_metadata([
            record("google", publisher=""),
            record("loc", publisher="Prentice Hall"),
        ])
        assert merged.publisher == "Prentice Hall"

    def test_lists_not_unioned(self):
        merged = merge_metadata([
            record("google", categories=["Computers"]),
            record("openlibrary", categories=["Software engineering", "Agile"]),
        ])
        assert merged.categories == ["Computers"]

    def test_much_longer_description_overrides(self):
        short = "A handbook."
        long = "A handbook of agile software craftsmanship, with case studies."
        merged = merge_metadata([
            record("google", description=short),
            record("loc", description=long),
        ])
        assert merged.description == long

    def test_slightly_longer_description_does_not_override(self):
        merged = merge_metadata([
            record("google", description="0123456789"),
            record("loc", description="01234567890123"),
        ])
        assert merged.description == "0123456789"

    def test_merged_lists_are_copies(self):
        google = record("google", authors=["Robert C. Martin"])
        merged = merge_metadata([google])
        merged.authors.append("Someone Else")
        assert google.authors == ["Robert C. Martin"]


class TestHelpers:

    def test_order_by_priority(self):
        ordered = order_by_priority([
            record("perpusnas"),
            None,
            record("loc"),
            record("google"),
            record("openlibrary"),
        ])
        assert [r.source for r in ordered] == ["google", "openlibrary", "loc", "perpusnas"]

    def test_unknown_source_goes_last(self):
        ordered = order_by_priority([record("manual"), record("loc")])
        assert [r.source for r in ordered] == ["loc", "manual"]

    def test_merge_authors_case_insensitive(self):
        authors = merge_authors([
            record("google", authors=["Robert C. Martin"]),
            record("loc", authors=["robert c. martin", "Michael C. Feathers"]),
        ])
        assert authors == ["Robert C. Martin", "Michael C. Feathers"]

    def test_merge_categories(self):
        categories = merge_categories([
            record("google", categories=["Computers"]),
            None,
            record("openlibrary", categories=["Computers", "Agile"]),
        ])
        assert categories == ["Computers", "Agile"]


class TestCompleteness:

    def test_none(self):
        assert calculate_completeness(None) == 0

    def test_full_record(self, sample_book):
        assert calculate_completeness(sample_book) == 100

    def test_partial_record(self):
        assert calculate_completeness(record("loc", title="Clean Code", authors=["Robert C. Martin"])) == 40

    def test_empty_list_not_counted(self):
        assert calculate_completeness(record("loc", title="X", categories=[])) == 20

    @pytest.mark.parametrize("field_name,value", [
        ("title", "Clean Code"),
        ("authors", ["Robert C. Martin"]),
        ("description", "Even bad code can function."),
        ("publisher", "Prentice Hall"),
        ("published_date", "2008"),
        ("categories", ["Computers"]),
        ("page_count", 464),
        ("thumbnail", "https://covers.openlibrary.org/b/id/1-M.jpg"),
        ("language", "en"),
    ])
    def test_filling_a_gap_never_lowers_score(self, sample_book, field_name, value):
        primary = sample_book.copy(**{field_name: [] if isinstance(value, list) else None})
        before = calculate_completeness(primary)

        merged = merge_metadata([primary, record("openlibrary", **{field_name: value})])

        assert calculate_completeness(merged) >= before
        assert calculate_completeness(merged) == 100
