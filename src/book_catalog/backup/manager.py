"""
Backup Manager

Point-in-time snapshots of the record collection, kept in the same key-value
medium as the catalog. Each snapshot is its own chunked store; a history list
(newest first) records which snapshots exist. The oldest snapshots are pruned
past ``max_backup_count``.

An optional remote snapshot service can receive and supply snapshots. It is
treated as fallible: when absent or unavailable the operation raises
``RemoteUnavailableError`` and local state is left untouched.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from ..core.errors import (
    BackupNotFoundError,
    DecodeError,
    RemoteUnavailableError,
    ValidationError,
)
from ..records.catalog import RecordCatalog
from ..storage.chunked_store import NOT_FOUND, ChunkedStore
from ..storage.medium import KeyValueMedium
from ..storage.transform import ReversibleTransform

logger = logging.getLogger("catalog.backup")

HISTORY_KEY = "backup_history"


# ---------------------------------------------------------------------
# Remote Service Contract
# ---------------------------------------------------------------------

@runtime_checkable
class RemoteSnapshotService(Protocol):
    """
    Opaque remote snapshot storage.

    ``fetch_remote_snapshot`` returns None when no snapshot is available;
    ``push_snapshot`` returns False when the push did not happen.
    """

    def fetch_remote_snapshot(self) -> Optional[bytes]:
        ...

    def push_snapshot(self, data: bytes) -> bool:
        ...


# ---------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------

class BackupEntry(BaseModel):
    """
    History entry for one snapshot. The snapshot data itself lives in the
    chunked store named by ``prefix``.
    """

    id: str
    timestamp: datetime
    record_count: int = Field(..., ge=0, alias="recordCount")
    prefix: str
    last_restored: Optional[datetime] = Field(default=None, alias="lastRestored")

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------

class BackupManager:
    """
    Create, list, restore and prune snapshots of a ``RecordCatalog``.

    Parameters
    ----------
    medium : KeyValueMedium
        Storage for the history list and snapshot chunks.
    transform : ReversibleTransform
        Applied to snapshot payloads and remote snapshot bytes.
    catalog : RecordCatalog
        Source and restore target.
    chunk_size : int
        Chunk size for snapshot stores.
    max_backup_count : int
        History length limit; 0 or less disables pruning.
    remote : Optional[RemoteSnapshotService]
        Optional remote snapshot service.
    """

    def __init__(
        self,
        medium: KeyValueMedium,
        transform: ReversibleTransform,
        catalog: RecordCatalog,
        chunk_size: int,
        max_backup_count: int = 10,
        remote: Optional[RemoteSnapshotService] = None,
    ) -> None:
        self._medium = medium
        self._transform = transform
        self._catalog = catalog
        self._chunk_size = chunk_size
        self._max_backup_count = max_backup_count
        self._remote = remote

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def history(self) -> List[BackupEntry]:
        raw = self._medium.get(HISTORY_KEY)
        if raw is None:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Backup history is unreadable; treating it as empty")
            return []
        if not isinstance(items, list):
            logger.error("Backup history is not a list; treating it as empty")
            return []
        try:
            return [BackupEntry.model_validate(item) for item in items]
        except SchemaError:
            logger.error("Backup history has malformed entries; treating it as empty")
            return []

    def _write_history(self, entries: List[BackupEntry]) -> None:
        payload = [e.model_dump(mode="json", by_alias=True) for e in entries]
        self._medium.set(HISTORY_KEY, json.dumps(payload, ensure_ascii=False))

    def _store_for(self, backup_id: str) -> ChunkedStore:
        return ChunkedStore(
            self._medium,
            self._transform,
            prefix=f"backup_{backup_id}_chunk_",
            index_key=f"backup_{backup_id}_info",
            chunk_size=self._chunk_size,
        )

    # ------------------------------------------------------------------
    # Local Snapshots
    # ------------------------------------------------------------------

    def create_backup(self) -> BackupEntry:
        """
        Snapshot the current collection.

        Raises
        ------
        ValidationError
            If the collection is empty.
        """
        records = self._catalog.list()
        if not records:
            raise ValidationError("Collection is empty; nothing to back up.")

        backup_id = uuid.uuid4().hex[:12]
        store = self._store_for(backup_id)
        entry = BackupEntry(
            id=backup_id,
            timestamp=datetime.now(timezone.utc),
            record_count=len(records),
            prefix=store.prefix,
        )

        with self._medium.atomic():
            store.save(records)
            history = [entry] + self.history()
            if self._max_backup_count > 0 and len(history) > self._max_backup_count:
                for old in history[self._max_backup_count:]:
                    self._store_for(old.id).drop()
                history = history[: self._max_backup_count]
            self._write_history(history)

        logger.info("Created backup %s with %d record(s)", backup_id, len(records))
        return entry

    def restore_backup(self, backup_id: str) -> BackupEntry:
        """Replace the collection with a stored snapshot."""
        history = self.history()
        for i, entry in enumerate(history):
            if entry.id == backup_id:
                break
        else:
            raise BackupNotFoundError(f"No backup with id {backup_id!r}")

        records = self._store_for(backup_id).load()
        if records is NOT_FOUND or not isinstance(records, list):
            raise BackupNotFoundError(f"Backup {backup_id!r} has no readable data")

        self._catalog.replace_all(records)

        restored = entry.model_copy(update={"last_restored": datetime.now(timezone.utc)})
        history[i] = restored
        self._write_history(history)

        logger.info("Restored backup %s (%d record(s))", backup_id, len(records))
        return restored

    def delete_backup(self, backup_id: str) -> None:
        history = self.history()
        remaining = [e for e in history if e.id != backup_id]
        if len(remaining) == len(history):
            raise BackupNotFoundError(f"No backup with id {backup_id!r}")
        with self._medium.atomic():
            self._store_for(backup_id).drop()
            self._write_history(remaining)

    def clear_history(self) -> int:
        history = self.history()
        with self._medium.atomic():
            for entry in history:
                self._store_for(entry.id).drop()
            self._write_history([])
        return len(history)

    # ------------------------------------------------------------------
    # Remote Snapshots
    # ------------------------------------------------------------------

    def snapshot_bytes(self) -> bytes:
        envelope: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "records": self._catalog.list(),
        }
        return self._transform.encode_value(envelope).encode("ascii")

    def push_to_remote(self) -> int:
        """
        Send the current collection to the remote service.

        Returns the number of records pushed.
        """
        if self._remote is None:
            raise RemoteUnavailableError("No remote snapshot service configured.")

        data = self.snapshot_bytes()
        if not self._remote.push_snapshot(data):
            raise RemoteUnavailableError("Remote snapshot service rejected the push.")

        count = len(self._catalog.list())
        logger.info("Pushed snapshot with %d record(s) to remote", count)
        return count

    def restore_from_remote(self) -> int:
        """
        Replace the collection with the remote snapshot.

        Raises
        ------
        RemoteUnavailableError
            No service, or it has no snapshot.
        DecodeError
            The snapshot bytes are not a valid envelope.
        """
        if self._remote is None:
            raise RemoteUnavailableError("No remote snapshot service configured.")

        data = self._remote.fetch_remote_snapshot()
        if data is None:
            raise RemoteUnavailableError("Remote snapshot is unavailable.")

        try:
            envelope = self._transform.decode_value(data.decode("ascii"))
        except UnicodeDecodeError as exc:
            raise DecodeError("Remote snapshot is not an ASCII token") from exc

        records = envelope.get("records") if isinstance(envelope, dict) else None
        if not isinstance(records, list):
            raise DecodeError("Remote snapshot has no record list")

        self._catalog.replace_all(records)
        logger.info("Restored %d record(s) from remote snapshot", len(records))
        return len(records)
