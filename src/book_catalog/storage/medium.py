"""
Key-Value Medium

The storage abstraction the chunked store persists into: ``get``, ``set``,
``remove`` and ``keys`` over string keys and string values, with an optional
per-value size ceiling (the analogue of a browser's local-storage quota).

``MemoryMedium`` is the in-process implementation used by tests and by
single-process deployments. See ``sql_medium`` for the database-backed one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from threading import RLock
from typing import Dict, Iterator, Optional, Set

from ..core.errors import StorageQuotaError


class KeyValueMedium(ABC):
    """
    Abstract key-value medium.

    Subclasses implement the four primitive operations. ``atomic()`` groups a
    sequence of writes so that readers observe all of them or none; the base
    implementation provides no isolation and is only correct for a single
    logical writer.
    """

    def __init__(self, max_value_size: Optional[int] = None) -> None:
        self.max_value_size = max_value_size

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key``, or None when absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key``. Removing an absent key is a no-op."""

    @abstractmethod
    def keys(self) -> Set[str]:
        """Return the set of all stored keys."""

    @contextmanager
    def atomic(self) -> Iterator[None]:
        yield

    def _check_size(self, key: str, value: str) -> None:
        if self.max_value_size is not None and len(value) > self.max_value_size:
            raise StorageQuotaError(
                f"Value for key {key!r} is {len(value)} characters; "
                f"limit is {self.max_value_size}"
            )


class MemoryMedium(KeyValueMedium):
    """
    Dict-backed medium.

    Thread-safe through a re-entrant lock. ``atomic()`` holds the lock for the
    whole block, so a concurrent reader in another thread waits for the full
    chunk set to be written.
    """

    def __init__(self, max_value_size: Optional[int] = None) -> None:
        super().__init__(max_value_size)
        self._data: Dict[str, str] = {}
        self._lock = RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._check_size(key, value)
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> Set[str]:
        with self._lock:
            return set(self._data)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            yield

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
