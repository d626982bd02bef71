"""
Tabular Import / Export

Converts between CSV documents with human-facing column labels and record
dicts with internal field names.

The label table is explicit (``FieldMapping``). Columns it does not know pass
through lower-cased, and the required fields ``title``, ``author`` and
``category`` are always present on imported records, filled with placeholder
sentinels when the document does not provide them.
"""

from __future__ import annotations

import io
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import ValidationError

Record = Dict[str, Any]


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

DEFAULT_COLUMNS: Dict[str, str] = {
    "書名": "title",
    "作者": "author",
    "集數": "series",
    "類別": "category",
    "櫃號": "cabinet",
    "行號": "row",
    "出版社": "publisher",
    "描述": "description",
    "ISBN號": "isbn",
    "ISBN": "isbn",
    "備註": "notes",
}

PLACEHOLDERS: Dict[str, str] = {
    "title": "未知書名",
    "author": "未知作者",
    "category": "未分類",
}


# ---------------------------------------------------------------------
# Field Mapping
# ---------------------------------------------------------------------

class FieldMapping(BaseModel):
    """
    External column label -> internal field name table.

    Lookups that miss the table fall back to the lower-cased label. For
    export, the first label listed for a field wins (``ISBN號`` over ``ISBN``
    in the default table).
    """

    columns: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_COLUMNS))

    model_config = ConfigDict(extra="forbid", frozen=True)

    def to_internal(self, label: str) -> str:
        label = label.strip()
        return self.columns.get(label, label.lower())

    def export_columns(self) -> List[tuple]:
        """Ordered ``(label, field)`` pairs, one label per field."""
        seen: Dict[str, str] = {}
        for label, field in self.columns.items():
            seen.setdefault(field, label)
        return [(label, field) for field, label in seen.items()]


def normalize_record_fields(row: Mapping[str, Any], mapping: FieldMapping) -> Record:
    """
    Rename ``row``'s keys through ``mapping`` and fill required placeholders.
    """
    record: Record = {}
    for label, value in row.items():
        record[mapping.to_internal(str(label))] = value

    for field, placeholder in PLACEHOLDERS.items():
        if not record.get(field):
            record[field] = placeholder
    return record


# ---------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------

def parse_csv(document: str, mapping: Optional[FieldMapping] = None) -> List[Record]:
    """
    Parse a CSV document into normalized records.

    Every cell is read as text; empty cells are dropped rather than stored
    as empty strings.

    Raises
    ------
    ValidationError
        If the document is empty, has no header row, cannot be parsed, or two
        columns map onto the same internal field.
    """
    mapping = mapping or FieldMapping()

    if not document or not document.strip():
        raise ValidationError("Import document is empty.")

    try:
        frame = pd.read_csv(
            io.StringIO(document),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise ValidationError(f"Import document could not be parsed: {exc}") from exc

    labels = [str(c).strip() for c in frame.columns]
    if not labels or all(label.startswith("Unnamed:") for label in labels):
        raise ValidationError("Import document has no header row.")

    internal = [mapping.to_internal(label) for label in labels]
    dupes = sorted({f for f in internal if internal.count(f) > 1})
    if dupes:
        raise ValidationError(
            f"Columns map onto the same field more than once: {', '.join(dupes)}"
        )

    records: List[Record] = []
    for row in frame.itertuples(index=False, name=None):
        raw = {
            label: value.strip()
            for label, value in zip(labels, row)
            if isinstance(value, str) and value.strip()
        }
        if not raw:
            continue
        records.append(normalize_record_fields(raw, mapping))
    return records


# ---------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------

def to_csv(records: Sequence[Mapping[str, Any]], mapping: Optional[FieldMapping] = None) -> str:
    """
    Render records as CSV with the mapping's external column labels.

    Only mapped fields are exported; missing values become empty cells.
    """
    mapping = mapping or FieldMapping()
    columns = mapping.export_columns()

    rows = [
        {label: _cell(record.get(field)) for label, field in columns}
        for record in records
    ]
    frame = pd.DataFrame(rows, columns=[label for label, _ in columns])
    return frame.to_csv(index=False)


def export_filename(prefix: str = "書籍資料", now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"{prefix}_{now.strftime('%Y%m%d_%H%M')}.csv"


def _cell(value: Any) -> str:
    return "" if value is None else str(value)
