"""
MARC21 Export Module

ISO 2709 serialization of canonical records.
"""

from shelfmark.marc.builder import (
    MarcField,
    build_marc21_record,
    build_marc21_file,
    parse_directory,
)

__all__ = [
    "MarcField",
    "build_marc21_record",
    "build_marc21_file",
    "parse_directory",
]
