"""
ISBN cleaning, validation and conversion.
"""

import re

from shelfmark.exceptions import InvalidISBNError


_NON_ISBN_CHARS = re.compile(r"[^0-9X]")
_ISBN10_SHAPE = re.compile(r"^\d{9}[\dX]$")
_ISBN13_SHAPE = re.compile(r"^\d{13}$")


def clean_isbn(value: str) -> str:
    """Strip everything except digits and X, upper-casing first."""
    if not value:
        return ""
    return _NON_ISBN_CHARS.sub("", value.upper())


def has_isbn_shape(value: str) -> bool:
    """True if a cleaned value looks like an ISBN-10 or ISBN-13."""
    return bool(_ISBN10_SHAPE.match(value) or _ISBN13_SHAPE.match(value))


def normalize_isbn(value: str) -> str:
    """
    Normalize an ISBN for lookup.

    Args:
        value: Raw user or scanner input, with or without separators

    Returns:
        Cleaned ISBN (10 or 13 characters)

    Raises:
        InvalidISBNError: If the cleaned value has neither shape
    """
    cleaned = clean_isbn(value or "")
    if not has_isbn_shape(cleaned):
        raise InvalidISBNError(value)
    return cleaned


def is_valid_isbn10(value: str) -> bool:
    """Check the ISBN-10 mod-11 checksum."""
    cleaned = clean_isbn(value)
    if not _ISBN10_SHAPE.match(cleaned):
        return False

    total = sum(int(digit) * (10 - i) for i, digit in enumerate(cleaned[:9]))
    check = cleaned[9]
    total += 10 if check == "X" else int(check)
    return total % 11 == 0


def is_valid_isbn13(value: str) -> bool:
    """Check the ISBN-13 (EAN) checksum; prefix must be 978 or 979."""
    cleaned = clean_isbn(value)
    if not _ISBN13_SHAPE.match(cleaned) or cleaned[:3] not in ("978", "979"):
        return False

    total = sum(int(digit) * (1 if i % 2 == 0 else 3) for i, digit in enumerate(cleaned[:12]))
    return (10 - total % 10) % 10 == int(cleaned[12])


def is_valid_isbn(value: str) -> bool:
    """Checksum-valid ISBN-10 or ISBN-13."""
    return is_valid_isbn10(value) or is_valid_isbn13(value)


def isbn10_to_isbn13(value: str) -> str:
    """Convert an ISBN-10 to its 978-prefixed ISBN-13."""
    cleaned = clean_isbn(value)
    if not _ISBN10_SHAPE.match(cleaned):
        raise InvalidISBNError(value)

    body = "978" + cleaned[:9]
    total = sum(int(digit) * (1 if i % 2 == 0 else 3) for i, digit in enumerate(body))
    return body + str((10 - total % 10) % 10)
