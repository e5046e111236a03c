"""
MARCXML Parser

Turns one harvested ``<record>`` element into a flat ``RawMarcRecord``.
Harvested XML may or may not be namespaced, so every lookup matches on
local names.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from lxml import etree

from shelfmark.metadata.models import BookMetadata


DEFAULT_LANGUAGE = "ind"

_YEAR = re.compile(r"\d{4}")
_NON_ISBN = re.compile(r"[^0-9X]")


@dataclass
class RawMarcRecord:
    """Flat view of a MARCXML record, before it becomes a BookMetadata."""

    identifier: Optional[str] = None
    isbn: Optional[str] = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    author: Optional[str] = None
    additional_authors: list[str] = field(default_factory=list)
    publisher: Optional[str] = None
    publish_place: Optional[str] = None
    year: Optional[str] = None
    language: Optional[str] = None
    collation: Optional[str] = None
    subjects: list[str] = field(default_factory=list)

    @property
    def authors(self) -> list[str]:
        if self.author:
            return [self.author, *self.additional_authors]
        return list(self.additional_authors)

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "isbn": self.isbn,
            "title": self.title,
            "subtitle": self.subtitle,
            "authors": self.authors,
            "publisher": self.publisher,
            "publish_place": self.publish_place,
            "year": self.year,
            "language": self.language,
            "collation": self.collation,
            "subjects": list(self.subjects),
        }

    def to_metadata(self, isbn: Optional[str] = None) -> BookMetadata:
        """Build the canonical record; ``isbn`` overrides the parsed one."""
        return BookMetadata(
            isbn=isbn or self.isbn or "",
            title=self.title,
            subtitle=self.subtitle,
            authors=self.authors,
            publisher=self.publisher,
            published_date=self.year,
            language=self.language or DEFAULT_LANGUAGE,
            source="perpusnas",
            subjects="; ".join(self.subjects) or None,
            collation=self.collation,
            publish_place=self.publish_place,
        )


def _as_list(value: Any) -> list:
    """Normalize a bare node, a node list or None into a list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _children(element: Any, name: str) -> list:
    return _as_list(element.xpath(f"./*[local-name()='{name}']"))


def _text(element: Any) -> str:
    return "".join(element.itertext()).strip()


def _subfield(datafield: Any, code: str) -> str:
    for sub in _children(datafield, "subfield"):
        if sub.get("code") == code:
            return _text(sub)
    return ""


def _strip_trailing(value: str, chars: str) -> str:
    value = value.strip()
    if value and value[-1] in chars:
        value = value[:-1]
    return value.strip()


def find_record_element(element: Any) -> Optional[Any]:
    """
    Locate the MARC ``<record>`` container.

    Accepts the MARC record itself, an OAI ``<metadata>`` wrapper, or a
    whole OAI ``<record>`` (header + metadata).
    """
    if element is None:
        return None

    local_name = etree.QName(element).localname
    if local_name == "record" and not _children(element, "header") and not _children(element, "metadata"):
        return element

    if local_name == "metadata":
        candidates = element.xpath(".//*[local-name()='record']")
    else:
        candidates = element.xpath(".//*[local-name()='metadata']//*[local-name()='record']")
    for candidate in _as_list(candidates):
        return candidate
    return None


def parse_marcxml_record(element: Any, identifier: Optional[str] = None) -> Optional[RawMarcRecord]:
    """
    Parse one MARCXML record.

    Returns None only when no record container can be found; missing
    fields come back as None / empty lists.
    """
    record = find_record_element(element)
    if record is None:
        return None

    raw = RawMarcRecord(identifier=identifier)

    for controlfield in _children(record, "controlfield"):
        if controlfield.get("tag") != "008":
            continue
        value = controlfield.text or ""
        if len(value) >= 38:
            year = value[7:11]
            if year.isdigit() and len(year) == 4:
                raw.year = year
            language = value[35:38].strip()
            if language:
                raw.language = language

    for datafield in _children(record, "datafield"):
        tag = datafield.get("tag")

        if tag == "020":
            isbn = _NON_ISBN.sub("", _subfield(datafield, "a").upper())[:13]
            if isbn and not raw.isbn:
                raw.isbn = isbn

        elif tag == "100":
            raw.author = _strip_trailing(_subfield(datafield, "a"), ",;.") or None

        elif tag == "245":
            raw.title = _strip_trailing(_subfield(datafield, "a"), "/:;") or None
            raw.subtitle = _strip_trailing(_subfield(datafield, "b"), "/:;") or None

        elif tag in ("260", "264"):
            raw.publish_place = raw.publish_place or _strip_trailing(_subfield(datafield, "a"), ",;:") or None
            raw.publisher = raw.publisher or _strip_trailing(_subfield(datafield, "b"), ",;:") or None
            match = _YEAR.search(_subfield(datafield, "c"))
            if match and not raw.year:
                raw.year = match.group(0)

        elif tag == "300":
            parts = [_subfield(datafield, "a"), _subfield(datafield, "c")]
            raw.collation = " ; ".join(p for p in parts if p).strip() or None

        elif tag in ("650", "651", "653"):
            subject = _strip_trailing(_subfield(datafield, "a"), ".")
            if subject and subject not in raw.subjects:
                raw.subjects.append(subject)

        elif tag == "700":
            name = _strip_trailing(_subfield(datafield, "a"), ",;.")
            if name and name != raw.author:
                raw.additional_authors.append(name)

    return raw


def iter_oai_records(root: Any) -> Iterable[tuple[Optional[str], Any]]:
    """Yield ``(oai_identifier, record_element)`` for each ListRecords entry."""
    for list_records in _as_list(root.xpath("./*[local-name()='ListRecords']")):
        for record in _children(list_records, "record"):
            identifier = None
            for header in _children(record, "header"):
                for ident in _children(header, "identifier"):
                    identifier = _text(ident) or None
            yield identifier, record


def parse_oai_dc_record(element: Any, identifier: Optional[str] = None) -> Optional[RawMarcRecord]:
    """
    Parse a Dublin Core (``oai_dc``) record into the same flat shape.

    Some repositories only expose ``oai_dc``; the ISBN is then one of
    the ``dc:identifier`` values.
    """
    containers = _as_list(element.xpath(".//*[local-name()='dc']"))
    if not containers:
        return None
    dc = containers[0]

    def values(name: str) -> list[str]:
        return [v for v in (_text(e) for e in _children(dc, name)) if v]

    raw = RawMarcRecord(identifier=identifier)

    for value in values("identifier"):
        candidate = _NON_ISBN.sub("", value.upper())
        if len(candidate) in (10, 13) and ("isbn" in value.lower() or candidate == value.replace("-", "").strip()):
            raw.isbn = candidate
            break

    titles = values("title")
    if titles:
        head, sep, tail = titles[0].partition(":")
        raw.title = _strip_trailing(head, "/:;") or None
        if sep:
            raw.subtitle = _strip_trailing(tail, "/:;") or None

    creators = [_strip_trailing(c, ",;.") for c in values("creator")]
    if creators:
        raw.author = creators[0]
        raw.additional_authors = [c for c in creators[1:] if c and c != raw.author]

    publishers = values("publisher")
    if publishers:
        raw.publisher = _strip_trailing(publishers[0], ",;:") or None

    for value in values("date"):
        match = _YEAR.search(value)
        if match:
            raw.year = match.group(0)
            break

    languages = values("language")
    if languages:
        raw.language = languages[0]

    for subject in values("subject"):
        subject = _strip_trailing(subject, ".")
        if subject and subject not in raw.subjects:
            raw.subjects.append(subject)

    return raw


def parse_xml(content: bytes) -> Any:
    """Parse an XML response body without resolving entities or touching the network."""
    parser = etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False, huge_tree=False)
    return etree.fromstring(content, parser=parser)
