"""
Storage Package

Key-value media, the reversible payload transform and the chunked store that
combines them.
"""

from .medium import KeyValueMedium, MemoryMedium
from .sql_medium import SqlMedium
from .transform import ReversibleTransform
from .chunked_store import NOT_FOUND, ChunkIndex, ChunkedStore, LoadOutcome

__all__ = [
    "KeyValueMedium",
    "MemoryMedium",
    "SqlMedium",
    "ReversibleTransform",
    "NOT_FOUND",
    "ChunkIndex",
    "ChunkedStore",
    "LoadOutcome",
]
