"""
Duplicate Resolver

Detects records that are equivalent over a caller-chosen list of fields and
keeps exactly one representative per group.

Normalization
-------------
Every key field value is trimmed and case-folded. Fields listed as numeral
fields (volume / series numbers) are additionally reduced to a canonical digit
string through ``NUMERAL_WORDS``, so "1", "01", "１", "one", "一" and "第一集"
all produce the token "1".

Tie-break
---------
Within a group the record with the earliest ``createdAt`` survives; equal or
missing timestamps fall back to the earliest position in the input. Missing
or unparseable timestamps sort before every real one.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import ValidationError

logger = logging.getLogger("catalog.resolver")

Record = Dict[str, Any]


# ---------------------------------------------------------------------
# Numeral Table
# ---------------------------------------------------------------------

NUMERAL_WORDS: Dict[str, str] = {
    # Chinese
    "零": "0",
    "一": "1",
    "二": "2",
    "兩": "2",
    "两": "2",
    "三": "3",
    "四": "4",
    "五": "5",
    "六": "6",
    "七": "7",
    "八": "8",
    "九": "9",
    "十": "10",
    "十一": "11",
    "十二": "12",
    "十三": "13",
    "十四": "14",
    "十五": "15",
    "十六": "16",
    "十七": "17",
    "十八": "18",
    "十九": "19",
    "二十": "20",
    # English
    "zero": "0",
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
    "ten": "10",
    "eleven": "11",
    "twelve": "12",
    "thirteen": "13",
    "fourteen": "14",
    "fifteen": "15",
    "sixteen": "16",
    "seventeen": "17",
    "eighteen": "18",
    "nineteen": "19",
    "twenty": "20",
}

# Ordinal wrappers around a volume number, e.g. 第一集, 第3冊, vol. 2
NUMERAL_PREFIXES: Tuple[str, ...] = ("第", "volume", "vol.", "vol", "no.", "#")
NUMERAL_SUFFIXES: Tuple[str, ...] = ("集", "冊", "册", "卷", "部")

_LEADING_ZEROS = re.compile(r"^0+(?=\d)")


def normalize_numeral(value: str, table: Mapping[str, str] = NUMERAL_WORDS) -> str:
    """
    Reduce a volume/series value to its canonical digit token.

    Affixes are only removed when what remains is a numeral. Anything else,
    such as "volcano" or "第五元素", is returned cleaned but otherwise intact.
    """
    text = unicodedata.normalize("NFKC", value).strip().casefold()

    core = text
    for prefix in NUMERAL_PREFIXES:
        if core.startswith(prefix):
            core = core[len(prefix):].strip()
            break
    for suffix in NUMERAL_SUFFIXES:
        if core.endswith(suffix):
            core = core[: -len(suffix)].strip()
            break

    if core.isdigit():
        return _LEADING_ZEROS.sub("", core)
    return table.get(core, text)


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------

class ResolveResult(BaseModel):
    """
    Output of ``DuplicateResolver.resolve``.
    """

    kept: List[Record] = Field(default_factory=list)
    removed: int = Field(default=0, ge=0)
    removed_records: List[Record] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------

class DuplicateResolver:
    """
    Equivalence-key based deduplication.

    Parameters
    ----------
    numeral_fields : Iterable[str]
        Fields whose values get numeral normalization.
    numeral_table : Mapping[str, str]
        Word -> canonical digit table. Defaults to ``NUMERAL_WORDS``.
    """

    def __init__(
        self,
        numeral_fields: Iterable[str] = ("series",),
        numeral_table: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._numeral_fields = frozenset(numeral_fields)
        self._table = dict(NUMERAL_WORDS if numeral_table is None else numeral_table)

    def normalize(self, field: str, value: Any) -> str:
        if value is None:
            return ""
        text = str(value).strip().casefold()
        if field in self._numeral_fields and text:
            return normalize_numeral(text, self._table)
        return text

    def equivalence_key(self, record: Mapping[str, Any], fields: Sequence[str]) -> Tuple[str, ...]:
        """
        Build the normalized key for ``record``.

        When every key field is empty the record's ``id`` is used instead, so
        records with no identifying data are never merged with each other.
        """
        key = tuple(self.normalize(f, record.get(f)) for f in fields)
        if not any(key):
            return ("\x00id", str(record.get("id", id(record))))
        return key

    def resolve(self, records: Sequence[Mapping[str, Any]], fields: Sequence[str]) -> ResolveResult:
        """
        Remove duplicates from ``records``.

        Parameters
        ----------
        records : Sequence[Mapping[str, Any]]
            The collection, in display order.
        fields : Sequence[str]
            Non-empty list of field names forming the equivalence key.

        Returns
        -------
        ResolveResult
            ``kept`` in original relative order, ``removed`` count and the
            removed records themselves.

        Raises
        ------
        ValidationError
            If ``fields`` is empty.
        """
        fields = [f for f in fields if f and f.strip()]
        if not fields:
            raise ValidationError("At least one dedup field is required.")

        winners: Dict[Tuple[str, ...], int] = {}
        for position, record in enumerate(records):
            key = self.equivalence_key(record, fields)
            current = winners.get(key)
            if current is None or self._precedes(records, position, current):
                winners[key] = position

        keep_positions = set(winners.values())
        kept = [dict(r) for i, r in enumerate(records) if i in keep_positions]
        removed = [dict(r) for i, r in enumerate(records) if i not in keep_positions]

        if removed:
            logger.info(
                "Dedup over %s removed %d of %d records",
                ",".join(fields),
                len(removed),
                len(records),
            )

        return ResolveResult(kept=kept, removed=len(removed), removed_records=removed)

    @staticmethod
    def _precedes(records: Sequence[Mapping[str, Any]], a: int, b: int) -> bool:
        return (created_at_timestamp(records[a].get("createdAt")), a) < (
            created_at_timestamp(records[b].get("createdAt")),
            b,
        )


def created_at_timestamp(value: Any) -> float:
    """
    Convert a ``createdAt`` value to epoch seconds.

    Accepts ISO-8601 strings (``Z`` suffix allowed), ``datetime`` objects and
    epoch milliseconds. Anything else maps to ``float("-inf")``.
    """
    if value is None or isinstance(value, bool):
        return float("-inf")
    if isinstance(value, (int, float)):
        return float(value) / 1000.0
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return float("-inf")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
