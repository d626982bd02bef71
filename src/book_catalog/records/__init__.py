"""
Records Package

Duplicate resolution, tabular import/export and the record catalog.
"""

from .resolver import DuplicateResolver, ResolveResult, NUMERAL_WORDS
from .tabular import FieldMapping, parse_csv, to_csv
from .catalog import RecordCatalog, ImportSummary

__all__ = [
    "DuplicateResolver",
    "ResolveResult",
    "NUMERAL_WORDS",
    "FieldMapping",
    "parse_csv",
    "to_csv",
    "RecordCatalog",
    "ImportSummary",
]
