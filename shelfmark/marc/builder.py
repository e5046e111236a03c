"""
MARC21 Record Builder

Serializes canonical records to ISO 2709 MARC21 bytes (UTF-8) for
import into integrated library systems such as Koha or SLiMS.

Record layout:
- Leader: 24 bytes
- Directory: 12 bytes per field (tag + length + start offset), then 0x1E
- Fields: indicators + subfields, each terminated by 0x1E
- Record terminator: 0x1D

Lengths and offsets are byte counts of the UTF-8 encoding, so fields
are encoded first and the directory and leader computed afterwards.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from shelfmark.exceptions import MarcEncodingError
from shelfmark.metadata.models import BookMetadata


FIELD_TERMINATOR = b"\x1e"
RECORD_TERMINATOR = b"\x1d"
SUBFIELD_DELIMITER = b"\x1f"

LEADER_LENGTH = 24
DIRECTORY_ENTRY_LENGTH = 12
MAX_FIELD_LENGTH = 9999
MAX_RECORD_LENGTH = 99999

DEFAULT_ORGANIZATION_CODE = "Shelfmark"
MAX_SUMMARY_LENGTH = 500
MAX_SUBJECT_HEADINGS = 5

# ISO 639-1 codes seen from the catalog APIs -> MARC language codes
_LANGUAGE_CODES = {
    "en": "eng",
    "id": "ind",
    "in": "ind",
    "ms": "may",
    "fr": "fre",
    "de": "ger",
    "es": "spa",
    "nl": "dut",
    "ja": "jpn",
    "zh": "chi",
    "ar": "ara",
    "it": "ita",
    "pt": "por",
    "ru": "rus",
    "ko": "kor",
}

_CONTROL_CHARS = re.compile(r"[\x1d\x1e\x1f]")
_YEAR = re.compile(r"\d{4}")


@dataclass
class MarcField:
    """One MARC field: a control value, or indicators plus subfields."""

    tag: str
    indicators: str = "  "
    subfields: list[tuple[str, str]] = field(default_factory=list)
    value: Optional[str] = None

    @property
    def is_control(self) -> bool:
        return self.value is not None

    def encode(self) -> bytes:
        """Field data including its terminator."""
        if self.is_control:
            data = _clean(self.value).encode("utf-8")
        else:
            data = self.indicators.encode("ascii")
            for code, value in self.subfields:
                data += SUBFIELD_DELIMITER + code.encode("ascii") + _clean(value).encode("utf-8")
        return data + FIELD_TERMINATOR


@dataclass
class DirectoryEntry:
    tag: str
    length: int
    offset: int


@dataclass
class ParsedRecord:
    """Leader values and directory read back from serialized bytes."""

    leader: str
    record_length: int
    base_address: int
    entries: list[DirectoryEntry]
    fields: dict[str, list[bytes]]


def _clean(value: str) -> str:
    """Strip MARC structural characters out of field content."""
    return _CONTROL_CHARS.sub(" ", value)


def marc_language_code(language: Optional[str]) -> Optional[str]:
    """Three-letter MARC language code, or None."""
    if not language or not language.strip():
        return None
    code = language.strip().lower()
    if len(code) == 2:
        return _LANGUAGE_CODES.get(code, code)
    return code[:3]


def format_marc_timestamp(now: datetime) -> str:
    """005 value: ``YYYYMMDDHHMMSS.0``."""
    return now.strftime("%Y%m%d%H%M%S") + ".0"


def build_008(record: BookMetadata, now: datetime) -> str:
    """40-character fixed-length data elements for books."""
    match = _YEAR.search(record.published_date or "")
    year = match.group(0) if match else "    "
    language = (marc_language_code(record.language) or "eng").ljust(3)[:3]

    value = (
        now.strftime("%y%m%d")  # 00-05 date entered
        + "s"                   # 06 type of date
        + year                  # 07-10 date 1
        + "    "                # 11-14 date 2
        + "   "                 # 15-17 place of publication
        + "    "                # 18-21 illustrations
        + " "                   # 22 target audience
        + " "                   # 23 form of item
        + "    "                # 24-27 nature of contents
        + "       "             # 28-34
        + language              # 35-37 language
        + " "                   # 38 modified record
        + " "                   # 39 cataloging source
    )
    return value


def build_leader(record_length: int, base_address: int) -> str:
    """
    24-character leader.

    05 n (new), 06 a (language material), 07 m (monograph),
    09 a (UCS/Unicode), 10-11 indicator/subfield counts, 20-23 4500.
    """
    return f"{record_length:05d}nam a22{base_address:05d}   4500"


def build_fields(record: BookMetadata, now: datetime, organization_code: str) -> list[MarcField]:
    """Assemble the field list in tag order."""
    fields = [
        MarcField("001", value=record.isbn or "unknown"),
        MarcField("003", value=organization_code),
        MarcField("005", value=format_marc_timestamp(now)),
        MarcField("008", value=build_008(record, now)),
    ]

    if record.isbn:
        fields.append(MarcField("020", "  ", [("a", record.isbn)]))

    language = marc_language_code(record.language)
    if language:
        fields.append(MarcField("041", "0 ", [("a", language)]))

    if record.ddc:
        fields.append(MarcField("082", "04", [("a", record.ddc)]))

    if record.lcc:
        fields.append(MarcField("050", " 4", [("a", record.lcc)]))

    authors = [a.strip() for a in record.authors if a and a.strip()]
    if authors:
        fields.append(MarcField("100", "1 ", [("a", authors[0])]))

    if record.title:
        subfields = [("a", record.title)]
        if record.subtitle:
            subfields.append(("b", record.subtitle))
        if authors:
            subfields.append(("c", ", ".join(authors)))
        fields.append(MarcField("245", "10", subfields))

    if record.edition:
        fields.append(MarcField("250", "  ", [("a", record.edition)]))

    if record.publish_place or record.publisher or record.published_date:
        subfields = []
        if record.publish_place:
            subfields.append(("a", record.publish_place))
        if record.publisher:
            subfields.append(("b", record.publisher))
        if record.published_date:
            subfields.append(("c", record.published_date))
        fields.append(MarcField("264", " 1", subfields))

    if record.collation or record.page_count:
        extent = record.collation or f"{record.page_count} p."
        fields.append(MarcField("300", "  ", [("a", extent)]))

    if record.series:
        fields.append(MarcField("490", "0 ", [("a", record.series)]))

    if record.description:
        fields.append(MarcField("520", "  ", [("a", record.description[:MAX_SUMMARY_LENGTH])]))

    headings = record.subject_list or [c for c in record.categories if c and c.strip()]
    for heading in headings[:MAX_SUBJECT_HEADINGS]:
        fields.append(MarcField("650", " 0", [("a", heading)]))

    for coauthor in authors[1:]:
        fields.append(MarcField("700", "1 ", [("a", coauthor)]))

    return fields


def assemble_record(fields: Iterable[MarcField]) -> bytes:
    """Encode fields, then compute directory and leader from byte lengths."""
    encoded = [(f.tag, f.encode()) for f in fields]

    directory = b""
    offset = 0
    for tag, data in encoded:
        if len(data) > MAX_FIELD_LENGTH:
            raise MarcEncodingError(f"Field {tag} is {len(data)} bytes; the limit is {MAX_FIELD_LENGTH}")
        directory += f"{tag}{len(data):04d}{offset:05d}".encode("ascii")
        offset += len(data)

    base_address = LEADER_LENGTH + len(directory) + len(FIELD_TERMINATOR)
    record_length = base_address + offset + len(RECORD_TERMINATOR)
    if record_length > MAX_RECORD_LENGTH:
        raise MarcEncodingError(f"Record is {record_length} bytes; the limit is {MAX_RECORD_LENGTH}")

    leader = build_leader(record_length, base_address).encode("ascii")
    return leader + directory + FIELD_TERMINATOR + b"".join(data for _, data in encoded) + RECORD_TERMINATOR


def build_marc21_record(
    record: BookMetadata,
    now: Optional[datetime] = None,
    organization_code: str = DEFAULT_ORGANIZATION_CODE,
) -> bytes:
    """
    Serialize one record.

    Args:
        record: Canonical record
        now: Timestamp for 005/008 (defaults to the current time)
        organization_code: 003 control number identifier

    Raises:
        MarcEncodingError: if a field or the record exceeds ISO 2709 limits
    """
    now = now or datetime.now()
    return assemble_record(build_fields(record, now, organization_code))


def build_marc21_file(
    records: Iterable[BookMetadata],
    now: Optional[datetime] = None,
    organization_code: str = DEFAULT_ORGANIZATION_CODE,
) -> bytes:
    """Concatenate serialized records into one .mrc payload."""
    now = now or datetime.now()
    return b"".join(build_marc21_record(r, now, organization_code) for r in records)


def parse_directory(data: bytes) -> ParsedRecord:
    """Read leader, directory and raw field bytes of a single record."""
    if len(data) < LEADER_LENGTH:
        raise ValueError("Record shorter than its leader")

    leader = data[:LEADER_LENGTH].decode("ascii")
    record_length = int(leader[0:5])
    base_address = int(leader[12:17])

    directory = data[LEADER_LENGTH:base_address - 1]
    if len(directory) % DIRECTORY_ENTRY_LENGTH:
        raise ValueError("Directory length is not a multiple of 12")

    entries = []
    fields: dict[str, list[bytes]] = {}
    for start in range(0, len(directory), DIRECTORY_ENTRY_LENGTH):
        chunk = directory[start:start + DIRECTORY_ENTRY_LENGTH].decode("ascii")
        entry = DirectoryEntry(tag=chunk[:3], length=int(chunk[3:7]), offset=int(chunk[7:12]))
        entries.append(entry)

        begin = base_address + entry.offset
        fields.setdefault(entry.tag, []).append(data[begin:begin + entry.length - 1])

    return ParsedRecord(
        leader=leader,
        record_length=record_length,
        base_address=base_address,
        entries=entries,
        fields=fields,
    )
