"""
Unit tests for the MARC21 (ISO 2709) builder.
"""

import io
from datetime import datetime

import pytest
from pymarc import MARCReader

from shelfmark.exceptions import MarcEncodingError
from shelfmark.marc.builder import (
    FIELD_TERMINATOR,
    RECORD_TERMINATOR,
    MarcField,
    assemble_record,
    build_008,
    build_marc21_file,
    build_marc21_record,
    marc_language_code,
    parse_directory,
)
from shelfmark.metadata.models import BookMetadata


NOW = datetime(2024, 5, 1, 9, 30, 15)


def read_records(data: bytes) -> list:
    return list(MARCReader(io.BytesIO(data), to_unicode=True, force_utf8=True))


@pytest.fixture
def catalogued(sample_book) -> BookMetadata:
    return sample_book.copy(
        ddc="005.1",
        lcc="QA76.76.D47",
        call_number="005.1 MAR",
        subjects="Agile software development; Computer software -- Reliability",
        authors=["Robert C. Martin", "Michael C. Feathers"],
        publish_place="Upper Saddle River, NJ",
        edition="1st ed.",
        series="Robert C. Martin series",
    )


class TestStructure:

    def test_leader_and_terminators(self, catalogued):
        data = build_marc21_record(catalogued, now=NOW)
        parsed = parse_directory(data)

        assert parsed.record_length == len(data)
        assert data.endswith(FIELD_TERMINATOR + RECORD_TERMINATOR)
        assert data[parsed.base_address - 1:parsed.base_address] == FIELD_TERMINATOR
        assert parsed.leader[5:10] == "nam a"
        assert parsed.leader[10:12] == "22"
        assert parsed.leader[20:24] == "4500"

    def test_directory_offsets_are_contiguous(self, catalogued):
        parsed = parse_directory(build_marc21_record(catalogued, now=NOW))

        offset = 0
        for entry in parsed.entries:
            assert entry.offset == offset
            offset += entry.length
        assert parsed.base_address + offset + 1 == parsed.record_length

    def test_field_order(self, catalogued):
        tags = [e.tag for e in parse_directory(build_marc21_record(catalogued, now=NOW)).entries]
        assert tags == [
            "001", "003", "005", "008", "020", "041", "082", "050", "100",
            "245", "250", "264", "300", "490", "520", "650", "650", "700",
        ]

    def test_lengths_are_utf8_bytes(self):
        record = BookMetadata(isbn="9786020324784", title="Négara Kertagama", authors=["Prapañca"])
        data = build_marc21_record(record, now=NOW)
        parsed = parse_directory(data)

        assert parsed.record_length == len(data)
        assert len(data) > len(data.decode("utf-8"))
        assert "Négara Kertagama".encode("utf-8") in parsed.fields["245"][0]

    def test_control_characters_removed_from_content(self):
        record = BookMetadata(isbn="9780132350884", title="Bad\x1eTitle\x1f")
        parsed = parse_directory(build_marc21_record(record, now=NOW))
        assert parsed.fields["245"][0] == b"10\x1faBad Title "


class TestFields:

    def test_control_fields(self, catalogued):
        fields = parse_directory(build_marc21_record(catalogued, now=NOW, organization_code="IdJkPN")).fields

        assert fields["001"] == [b"9780132350884"]
        assert fields["003"] == [b"IdJkPN"]
        assert fields["005"] == [b"20240501093015.0"]

    def test_008(self, catalogued):
        value = build_008(catalogued, NOW)
        assert len(value) == 40
        assert value[0:6] == "240501"
        assert value[6] == "s"
        assert value[7:11] == "2008"
        assert value[35:38] == "eng"

    def test_008_without_date_or_language(self):
        value = build_008(BookMetadata(isbn="1"), NOW)
        assert len(value) == 40
        assert value[7:11] == "    "
        assert value[35:38] == "eng"

    def test_pymarc_reads_back(self, catalogued):
        [record] = read_records(build_marc21_record(catalogued, now=NOW))

        assert record["020"]["a"] == "9780132350884"
        assert record["041"]["a"] == "eng"
        assert record["082"]["a"] == "005.1"
        assert record["082"].indicators[0] == "0"
        assert record["050"]["a"] == "QA76.76.D47"
        assert record["100"]["a"] == "Robert C. Martin"
        assert record["245"]["a"] == "Clean Code"
        assert record["245"]["b"] == "A Handbook of Agile Software Craftsmanship"
        assert record["245"]["c"] == "Robert C. Martin, Michael C. Feathers"
        assert record["250"]["a"] == "1st ed."
        assert record["264"]["a"] == "Upper Saddle River, NJ"
        assert record["264"]["b"] == "Prentice Hall"
        assert record["264"]["c"] == "2008"
        assert record["300"]["a"] == "464 p."
        assert record["490"]["a"] == "Robert C. Martin series"
        assert record["520"]["a"] == "Even bad code can function."
        assert [f["a"] for f in record.get_fields("650")] == [
            "Agile software development",
            "Computer software -- Reliability",
        ]
        assert [f["a"] for f in record.get_fields("700")] == ["Michael C. Feathers"]

    def test_collation_preferred_over_page_count(self, indonesian_book):
        [record] = read_records(build_marc21_record(indonesian_book.copy(page_count=529), now=NOW))
        assert record["300"]["a"] == "xii, 529 hlm. ; 20 cm"
        assert record["041"]["a"] == "ind"

    def test_categories_used_when_no_subjects(self, sample_book):
        book = sample_book.copy(categories=["A", "B", "C", "D", "E", "F"])
        [record] = read_records(build_marc21_record(book, now=NOW))
        assert [f["a"] for f in record.get_fields("650")] == ["A", "B", "C", "D", "E"]

    def test_summary_truncated(self, sample_book):
        [record] = read_records(build_marc21_record(sample_book.copy(description="x" * 900), now=NOW))
        assert len(record["520"]["a"]) == 500

    def test_minimal_record(self):
        data = build_marc21_record(BookMetadata(isbn="", title=None), now=NOW)
        tags = [e.tag for e in parse_directory(data).entries]
        assert tags == ["001", "003", "005", "008"]
        assert parse_directory(data).fields["001"] == [b"unknown"]

    @pytest.mark.parametrize("language,expected", [
        ("en", "eng"),
        ("id", "ind"),
        ("ind", "ind"),
        ("ENG", "eng"),
        ("xx", "xx"),
        ("", None),
        (None, None),
    ])
    def test_language_code(self, language, expected):
        assert marc_language_code(language) == expected


class TestLimitsAndFiles:

    def test_field_too_long(self):
        with pytest.raises(MarcEncodingError):
            assemble_record([MarcField("500", "  ", [("a", "x" * 10000)])])

    def test_record_too_long(self):
        fields = [MarcField("500", "  ", [("a", "x" * 9000)]) for _ in range(12)]
        with pytest.raises(MarcEncodingError) as exc_info:
            assemble_record(fields)
        assert exc_info.value.status_code == 500

    def test_file_concatenates_records(self, catalogued, indonesian_book):
        data = build_marc21_file([catalogued, indonesian_book], now=NOW)

        records = read_records(data)
        assert [r["001"].data for r in records] == ["9780132350884", "9786020324784"]
        assert data.count(RECORD_TERMINATOR) == 2

    def test_empty_file(self):
        assert build_marc21_file([], now=NOW) == b""
