"""Shared fixtures: in-memory media, small-chunk stores and a wired catalog."""

import pytest

from book_catalog.records.catalog import RecordCatalog
from book_catalog.records.resolver import DuplicateResolver
from book_catalog.storage.chunked_store import ChunkedStore
from book_catalog.storage.medium import MemoryMedium
from book_catalog.storage.transform import ReversibleTransform

TEST_KEY = "book-system-secure-key"
SMALL_CHUNK = 16


@pytest.fixture
def medium():
    return MemoryMedium()


@pytest.fixture
def transform():
    return ReversibleTransform(TEST_KEY)


@pytest.fixture
def make_store(medium, transform):
    def _make(prefix="books_chunk_", index_key="books_chunk_info", chunk_size=SMALL_CHUNK):
        return ChunkedStore(
            medium,
            transform,
            prefix=prefix,
            index_key=index_key,
            chunk_size=chunk_size,
        )
    return _make


@pytest.fixture
def record_store(make_store):
    return make_store()


@pytest.fixture
def trash_store(make_store):
    return make_store(prefix="trash_chunk_", index_key="trash_chunk_info")


@pytest.fixture
def catalog(record_store, trash_store):
    return RecordCatalog(record_store, trash_store, DuplicateResolver(numeral_fields=["series"]))


@pytest.fixture
def chunk_keys():
    """Ordinal chunk keys currently stored under a prefix."""
    def _keys(medium, prefix):
        return sorted(
            k for k in medium.keys()
            if k.startswith(prefix) and k[len(prefix):].isdigit()
        )
    return _keys
