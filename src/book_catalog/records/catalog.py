"""
Record Catalog

The record collection and its trash, each persisted in its own chunked store,
plus the administrative operations built on them: search, import with
duplicate filtering, duplicate removal into the trash, and trash retention.

All mutating operations load, modify and re-save the whole collection, which
is the persistence model of the chunked store. Each one runs inside the
store's transaction and saves with the index version it read, so a write that
raced another writer is retried on fresh data instead of overwriting it.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .resolver import DuplicateResolver, ResolveResult, created_at_timestamp
from ..core.errors import RecordNotFoundError, StaleIndexError, ValidationError
from ..storage.chunked_store import NOT_FOUND, ChunkedStore, ChunkIndex

logger = logging.getLogger("catalog.records")

Record = Dict[str, Any]
T = TypeVar("T")

SEARCH_ALL_FIELDS = (
    "title",
    "author",
    "series",
    "publisher",
    "cabinet",
    "row",
    "isbn",
    "description",
    "notes",
)

DEDUP_DELETE_REASON = "auto-dedup"
MANUAL_DELETE_REASON = "manual"

# Attempts per read-modify-write before a StaleIndexError reaches the caller
MAX_WRITE_ATTEMPTS = 3


class ImportSummary(BaseModel):
    """Counts produced by ``RecordCatalog.import_records``."""

    imported: int = Field(default=0, ge=0)
    filtered: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)

    model_config = ConfigDict(extra="forbid")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_record_id() -> str:
    return uuid.uuid4().hex


class RecordCatalog:
    """
    Catalog over a record store and a trash store.

    Parameters
    ----------
    records : ChunkedStore
        Persists the live record collection (a JSON list).
    trash : ChunkedStore
        Persists removed records until purged.
    resolver : DuplicateResolver
        Used by ``remove_duplicates``.
    """

    def __init__(
        self,
        records: ChunkedStore,
        trash: ChunkedStore,
        resolver: DuplicateResolver,
    ) -> None:
        self._records = records
        self._trash = trash
        self._resolver = resolver

    # ------------------------------------------------------------------
    # Collection I/O
    # ------------------------------------------------------------------

    def list(self) -> List[Record]:
        return self._load(self._records)

    def replace_all(self, records: Sequence[Mapping[str, Any]]) -> ChunkIndex:
        """Overwrite the whole collection, stringifying every ``id``."""
        cleaned = []
        for record in records:
            if not isinstance(record, Mapping):
                raise ValidationError("Every record must be an object.")
            item = dict(record)
            if item.get("id") is not None:
                item["id"] = str(item["id"])
            cleaned.append(item)
        return self._records.save(cleaned)

    def init_storage(self) -> Dict[str, ChunkIndex]:
        """Write empty chunk indexes for stores that have none."""
        return {"records": self._records.init(), "trash": self._trash.init()}

    def storage_stats(self) -> Dict[str, ChunkIndex]:
        return {"records": self._records.stats(), "trash": self._trash.stats()}

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> Record:
        for record in self.list():
            if str(record.get("id")) == str(record_id):
                return record
        raise RecordNotFoundError(f"No record with id {record_id!r}")

    def add(self, record: Mapping[str, Any]) -> Record:
        """Append ``record``, assigning ``id`` and ``createdAt`` when absent."""
        item = dict(record)
        item["id"] = str(item.get("id") or new_record_id())
        item.setdefault("createdAt", _now_iso())

        def _append(records: List[Record]) -> Record:
            if any(str(r.get("id")) == item["id"] for r in records):
                raise ValidationError(f"Record with id {item['id']!r} already exists")
            records.append(item)
            return item

        return self._modify(self._records, _append)

    def update(self, record_id: str, changes: Mapping[str, Any]) -> Record:
        """Merge ``changes`` into a record. ``id`` and ``createdAt`` are kept."""

        def _merge(records: List[Record]) -> Record:
            i = _position(records, record_id)
            record = records[i]
            merged = {**record, **changes}
            merged["id"] = record["id"]
            if "createdAt" in record:
                merged["createdAt"] = record["createdAt"]
            merged["updatedAt"] = _now_iso()
            records[i] = merged
            return merged

        return self._modify(self._records, _merge)

    def delete(self, record_id: str, reason: str = MANUAL_DELETE_REASON) -> Record:
        """Move a record to the trash."""
        with self._records.atomic():
            removed = self._modify(
                self._records,
                lambda records: records.pop(_position(records, record_id)),
            )
            self._move_to_trash([removed], reason)
        return removed

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query: Optional[str] = None,
        field: str = "title",
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Record]:
        """
        Case-insensitive search.

        A field matches when either its value contains the query or the query
        contains its value. ``field="all"`` tries every field in
        ``SEARCH_ALL_FIELDS``; ``field="cabinet"`` requires an exact match.
        ``filters`` are exact, case-insensitive equality constraints; falsy
        filter values are ignored.
        """
        results = [r for r in self.list() if isinstance(r, Mapping) and r.get("title")]

        needle = (query or "").strip().lower()
        if needle:
            results = [r for r in results if _matches(r, needle, field)]

        active = {k: v for k, v in (filters or {}).items() if v}
        if active:
            results = [
                r for r in results
                if all(
                    r.get(k) and str(r[k]).lower() == str(v).lower()
                    for k, v in active.items()
                )
            ]
        return results

    # ------------------------------------------------------------------
    # Import / Dedup
    # ------------------------------------------------------------------

    def import_records(
        self,
        incoming: Sequence[Mapping[str, Any]],
        filter_duplicates: bool = True,
    ) -> ImportSummary:
        """
        Merge imported records into the collection.

        An incoming record duplicates a stored one when title and author are
        equal. Duplicates are skipped when ``filter_duplicates`` is set and
        merged into the stored record otherwise. Rows of the same document are
        never compared with each other, so every volume of a series imports.
        """

        def _pair(record: Mapping[str, Any]) -> tuple:
            return (record.get("title"), record.get("author"))

        def _merge(records: List[Record]) -> ImportSummary:
            summary = ImportSummary()
            positions = {_pair(r): i for i, r in enumerate(records)}

            for item in incoming:
                existing = positions.get(_pair(item))
                if existing is not None and filter_duplicates:
                    summary.filtered += 1
                elif existing is not None:
                    current = records[existing]
                    merged = {**current, **item}
                    merged["id"] = current.get("id")
                    merged["createdAt"] = current.get("createdAt")
                    merged["updatedAt"] = _now_iso()
                    records[existing] = merged
                    summary.updated += 1
                else:
                    record = dict(item)
                    record["id"] = str(record.get("id") or new_record_id())
                    record.setdefault("createdAt", _now_iso())
                    records.append(record)
                    summary.imported += 1
            return summary

        summary = self._modify(self._records, _merge)
        logger.info(
            "Imported %d, filtered %d, updated %d record(s)",
            summary.imported,
            summary.filtered,
            summary.updated,
        )
        return summary

    def remove_duplicates(self, fields: Sequence[str]) -> ResolveResult:
        """Resolve duplicates, persist the survivors, trash the rest."""

        def _resolve(records: List[Record]) -> ResolveResult:
            result = self._resolver.resolve(records, fields)
            records[:] = result.kept
            return result

        with self._records.atomic():
            result = self._modify(self._records, _resolve)
            if result.removed:
                self._move_to_trash(result.removed_records, DEDUP_DELETE_REASON)
        return result

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    def trash(self) -> List[Record]:
        return self._load(self._trash)

    def restore(self, record_id: str) -> Record:
        """Move a record from the trash back into the collection."""
        with self._records.atomic():
            record = self._modify(
                self._trash,
                lambda trash: trash.pop(_position(trash, record_id, "trashed record")),
            )
            record.pop("deletedAt", None)
            record.pop("deleteReason", None)
            record["updatedAt"] = _now_iso()

            def _put_back(records: List[Record]) -> None:
                records[:] = [r for r in records if str(r.get("id")) != str(record_id)]
                records.append(record)

            self._modify(self._records, _put_back)
        return record

    def purge(self, record_id: str) -> bool:

        def _drop(trash: List[Record]) -> bool:
            remaining = [r for r in trash if str(r.get("id")) != str(record_id)]
            found = len(remaining) != len(trash)
            trash[:] = remaining
            return found

        return self._modify(self._trash, _drop)

    def empty_trash(self) -> int:

        def _clear(trash: List[Record]) -> int:
            count = len(trash)
            trash.clear()
            return count

        return self._modify(self._trash, _clear)

    def cleanup_trash(self, days: int, now: Optional[datetime] = None) -> int:
        """
        Purge trashed records deleted more than ``days`` ago.

        Records without a ``deletedAt`` stamp are stamped with ``now`` and
        kept. Returns the number of purged records.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(days=days)).timestamp()
        stamp = now.isoformat().replace("+00:00", "Z")

        def _expire(trash: List[Record]) -> int:
            kept: List[Record] = []
            for record in trash:
                deleted_at = record.get("deletedAt")
                if not deleted_at or created_at_timestamp(deleted_at) == float("-inf"):
                    record["deletedAt"] = stamp
                    kept.append(record)
                elif created_at_timestamp(deleted_at) >= cutoff:
                    kept.append(record)
            purged = len(trash) - len(kept)
            trash[:] = kept
            return purged

        purged = self._modify(self._trash, _expire)
        if purged:
            logger.info("Purged %d trashed record(s) older than %d days", purged, days)
        return purged

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load(store: ChunkedStore) -> List[Record]:
        return RecordCatalog._load_versioned(store)[0]

    @staticmethod
    def _load_versioned(store: ChunkedStore) -> Tuple[List[Record], int]:
        value, version = store.load_versioned()
        if value is NOT_FOUND:
            return [], version
        if not isinstance(value, list):
            raise ValidationError("Stored collection is not a list.")
        return value, version

    def _modify(self, store: ChunkedStore, change: Callable[[List[Record]], T]) -> T:
        """
        Apply ``change`` to the stored collection in place and save it back.

        The save carries the index version read together with the collection.
        On ``StaleIndexError`` the read-change-save is repeated on fresh data,
        at most ``MAX_WRITE_ATTEMPTS`` times in total. Any other exception from
        ``change`` aborts without saving.
        """
        attempt = 1
        while True:
            try:
                with store.atomic():
                    records, version = self._load_versioned(store)
                    result = change(records)
                    store.save(records, expected_version=version)
                return result
            except StaleIndexError:
                if attempt >= MAX_WRITE_ATTEMPTS:
                    raise
                logger.warning(
                    "Collection under %r changed during write; retrying (%d/%d)",
                    store.prefix,
                    attempt,
                    MAX_WRITE_ATTEMPTS,
                )
                attempt += 1

    def _move_to_trash(self, removed: Sequence[Mapping[str, Any]], reason: str) -> None:
        stamp = _now_iso()

        def _append(trash: List[Record]) -> None:
            positions = {str(r.get("id")): i for i, r in enumerate(trash)}
            for record in removed:
                item = dict(record)
                item["id"] = str(item.get("id") or new_record_id())
                item["deletedAt"] = stamp
                item["deleteReason"] = reason
                if item["id"] in positions:
                    trash[positions[item["id"]]] = item
                else:
                    positions[item["id"]] = len(trash)
                    trash.append(item)

        self._modify(self._trash, _append)


def _position(records: Sequence[Mapping[str, Any]], record_id: str, what: str = "record") -> int:
    for i, record in enumerate(records):
        if str(record.get("id")) == str(record_id):
            return i
    raise RecordNotFoundError(f"No {what} with id {record_id!r}")


def _matches(record: Mapping[str, Any], needle: str, field: str) -> bool:
    if field == "all":
        return any(_contains(record.get(f), needle) for f in SEARCH_ALL_FIELDS)
    if field == "cabinet":
        value = record.get("cabinet")
        return bool(value) and str(value).lower() == needle
    return _contains(record.get(field), needle)


def _contains(value: Any, needle: str) -> bool:
    if not value:
        return False
    text = str(value).lower()
    return needle in text or text in needle
