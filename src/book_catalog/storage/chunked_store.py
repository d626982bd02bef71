"""
Chunked Store

Persists one JSON-serializable value across a key-value medium whose values
have a size ceiling. The value is serialized, passed through the reversible
transform, sliced into ordinal chunks of at most ``chunk_size`` characters and
written under ``prefix + ordinal``. A single chunk index record describes the
set and is the only source of truth for how many chunks to read back.

Key Properties
--------------
- ``total_chunks == ceil(total_size / chunk_size)`` after every save
- Surplus chunks from a previous, larger save are deleted
- A missing chunk fails the whole read; no partial reconstruction
- Saves run inside ``medium.atomic()`` and can be version-checked
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from contextlib import contextmanager
from typing import Any, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .medium import KeyValueMedium
from .transform import ReversibleTransform, dumps_canonical
from ..core.errors import (
    CorruptStoreError,
    DecodeError,
    StaleIndexError,
    ValidationError,
)

logger = logging.getLogger("catalog.store")


class _NotFound:
    """Sentinel type for "nothing has been saved"."""

    _instance: Optional["_NotFound"] = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


# ---------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------

class ChunkIndex(BaseModel):
    """
    Metadata describing a persisted chunk set.
    """

    total_chunks: int = Field(default=0, ge=0, alias="totalChunks")
    total_size: int = Field(default=0, ge=0, alias="totalSize")
    last_update: Optional[datetime] = Field(default=None, alias="lastUpdate")
    version: int = Field(default=0, ge=0)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_empty(self) -> bool:
        return self.total_chunks == 0

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class LoadOutcome(BaseModel):
    """
    Result of ``ChunkedStore.try_load``: failure as a value instead of an
    exception.
    """

    status: Literal["ok", "not_found", "corrupt", "undecodable"]
    value: Any = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


# ---------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------

class ChunkedStore:
    """
    Chunked persistence for a single logical value.

    Parameters
    ----------
    medium : KeyValueMedium
        Where the index and chunks live.
    transform : ReversibleTransform
        Applied to the serialized value before chunking.
    prefix : str
        Chunk keys are ``prefix + str(ordinal)``.
    index_key : str
        Key of the chunk index record.
    chunk_size : int
        Maximum chunk length in characters. Must not exceed the medium's
        per-value ceiling.
    """

    def __init__(
        self,
        medium: KeyValueMedium,
        transform: ReversibleTransform,
        prefix: str,
        index_key: str,
        chunk_size: int,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive.")
        if medium.max_value_size is not None and chunk_size > medium.max_value_size:
            raise ValueError(
                f"chunk_size {chunk_size} exceeds the medium value limit "
                f"{medium.max_value_size}."
            )
        if index_key.startswith(prefix) and index_key[len(prefix):].isdigit():
            raise ValueError("index_key collides with the chunk key space.")

        self._medium = medium
        self._transform = transform
        self._prefix = prefix
        self._index_key = index_key
        self._chunk_size = chunk_size
        self._ordinal_re = re.compile(re.escape(prefix) + r"(\d+)$")

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def chunk_key(self, ordinal: int) -> str:
        return f"{self._prefix}{ordinal}"

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Group a read-modify-write on this store into one medium transaction."""
        with self._medium.atomic():
            yield

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def read_index(self) -> Optional[ChunkIndex]:
        """
        Return the current chunk index, or None when no index record exists.

        Raises
        ------
        CorruptStoreError
            If the index record itself cannot be parsed.
        """
        raw = self._medium.get(self._index_key)
        if raw is None:
            return None
        try:
            return ChunkIndex.model_validate_json(raw)
        except ValueError as exc:
            raise CorruptStoreError(
                f"Chunk index {self._index_key!r} is unreadable"
            ) from exc

    def init(self) -> ChunkIndex:
        """Write an empty index if none exists and return the current one."""
        with self._medium.atomic():
            current = self.read_index()
            if current is not None:
                return current
            empty = ChunkIndex()
            self._medium.set(self._index_key, empty.to_json())
            return empty

    def stats(self) -> ChunkIndex:
        return self.read_index() or ChunkIndex()

    # ------------------------------------------------------------------
    # Save / Load
    # ------------------------------------------------------------------

    def split(self, payload: str) -> List[str]:
        """Slice ``payload`` into ordered chunks of at most ``chunk_size``."""
        size = self._chunk_size
        return [payload[i:i + size] for i in range(0, len(payload), size)]

    def save(self, value: Any, expected_version: Optional[int] = None) -> ChunkIndex:
        """
        Persist ``value`` and return the new chunk index.

        Parameters
        ----------
        value : Any
            Any JSON-serializable value.
        expected_version : Optional[int]
            When given, the save only proceeds if the stored index still has
            this version (0 when no index exists).

        Raises
        ------
        ValidationError
            If ``value`` is not JSON-serializable.
        StaleIndexError
            If ``expected_version`` does not match the stored index.
        """
        try:
            serialized = dumps_canonical(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Value is not JSON-serializable: {exc}") from exc

        payload = self._transform.encode(serialized)
        chunks = self.split(payload)

        with self._medium.atomic():
            previous = self.read_index()
            current_version = previous.version if previous else 0

            if expected_version is not None and expected_version != current_version:
                raise StaleIndexError(
                    f"Expected index version {expected_version}, found {current_version}"
                )

            for ordinal, chunk in enumerate(chunks):
                self._medium.set(self.chunk_key(ordinal), chunk)

            removed = self._remove_ordinals_from(len(chunks), previous)

            index = ChunkIndex(
                total_chunks=len(chunks),
                total_size=len(payload),
                last_update=datetime.now(timezone.utc),
                version=current_version + 1,
            )
            self._medium.set(self._index_key, index.to_json())

        logger.debug(
            "Saved %d chunk(s) (%d chars) under %r; removed %d stale chunk(s)",
            index.total_chunks,
            index.total_size,
            self._prefix,
            removed,
        )
        return index

    def read_payload(self) -> Optional[str]:
        """
        Reassemble the transformed payload, or None when nothing is stored.

        Raises
        ------
        CorruptStoreError
            If any chunk ordinal named by the index is missing.
        """
        return self._read_chunks(self.read_index())

    def _read_chunks(self, index: Optional[ChunkIndex]) -> Optional[str]:
        if index is None or index.is_empty:
            return None

        parts: List[str] = []
        for ordinal in range(index.total_chunks):
            chunk = self._medium.get(self.chunk_key(ordinal))
            if chunk is None:
                logger.error(
                    "Chunk %d of %d missing under %r",
                    ordinal,
                    index.total_chunks,
                    self._prefix,
                )
                raise CorruptStoreError(
                    f"Chunk {ordinal} of {index.total_chunks} is missing"
                )
            parts.append(chunk)

        payload = "".join(parts)
        if len(payload) != index.total_size:
            raise CorruptStoreError(
                f"Reassembled size {len(payload)} does not match index size {index.total_size}"
            )
        return payload

    def load(self) -> Any:
        """
        Load the stored value.

        Returns
        -------
        Any
            The stored value, or ``NOT_FOUND`` if there is no index or the
            index is empty.

        Raises
        ------
        CorruptStoreError
            A chunk is missing.
        DecodeError
            The reassembled payload could not be decoded. The data is lost.
        """
        return self.load_versioned()[0]

    def load_versioned(self) -> Tuple[Any, int]:
        """
        Load the stored value together with the index version it was read at.

        The version is 0 when no index exists. Pass it back as
        ``save(..., expected_version=version)`` to make a read-modify-write
        fail with ``StaleIndexError`` if another writer saved in between.
        """
        with self._medium.atomic():
            index = self.read_index()
            payload = self._read_chunks(index)

        version = index.version if index is not None else 0
        if payload is None:
            return NOT_FOUND, version

        try:
            return self._transform.decode_value(payload), version
        except DecodeError:
            logger.error("Stored payload under %r failed to decode", self._prefix)
            raise

    def try_load(self) -> LoadOutcome:
        """``load`` with every failure mode reported as a ``LoadOutcome``."""
        try:
            value = self.load()
        except CorruptStoreError as exc:
            return LoadOutcome(status="corrupt", detail=str(exc))
        except DecodeError as exc:
            return LoadOutcome(status="undecodable", detail=str(exc))

        if value is NOT_FOUND:
            return LoadOutcome(status="not_found")
        return LoadOutcome(status="ok", value=value)

    def cleanup(self) -> ChunkIndex:
        """
        Delete every chunk and reset the index to the empty state.
        """
        with self._medium.atomic():
            previous = self.read_index()
            removed = self._remove_ordinals_from(0, previous)
            index = ChunkIndex(version=(previous.version + 1) if previous else 0)
            self._medium.set(self._index_key, index.to_json())

        logger.info("Cleaned up %d chunk(s) under %r", removed, self._prefix)
        return index

    def drop(self) -> None:
        """Delete every chunk and the index record itself."""
        with self._medium.atomic():
            self._remove_ordinals_from(0, self.read_index())
            self._medium.remove(self._index_key)

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _remove_ordinals_from(self, start: int, previous: Optional[ChunkIndex]) -> int:
        """
        Delete chunk keys with ordinal >= ``start``.

        Covers ordinals named by ``previous`` and any stray ordinal keys left
        behind by writers that never cleaned up.
        """
        stale = set()
        if previous is not None:
            stale.update(self.chunk_key(i) for i in range(start, previous.total_chunks))

        for key in self._medium.keys():
            match = self._ordinal_re.match(key)
            if match and int(match.group(1)) >= start:
                stale.add(key)

        for key in stale:
            self._medium.remove(key)
        return len(stale)

