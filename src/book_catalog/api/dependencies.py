"""
Dependency Providers

Builds the storage and catalog components from ``settings``. Every component
receives its medium, transform and sizes explicitly; tests replace
``get_medium`` through ``app.dependency_overrides`` and everything downstream
follows.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from ..backup.manager import BackupManager
from ..config import settings
from ..records.catalog import RecordCatalog
from ..records.resolver import DuplicateResolver
from ..storage.chunked_store import ChunkedStore
from ..storage.medium import KeyValueMedium
from ..storage.sql_medium import SqlMedium
from ..storage.transform import ReversibleTransform


@lru_cache
def get_medium() -> KeyValueMedium:
    return SqlMedium.from_url(
        settings.database_url,
        max_value_size=settings.medium_value_limit,
    )


@lru_cache
def get_transform() -> ReversibleTransform:
    return ReversibleTransform(settings.transform_key.get_secret_value())


def build_catalog(medium: KeyValueMedium, transform: ReversibleTransform) -> RecordCatalog:
    records = ChunkedStore(
        medium,
        transform,
        prefix=settings.records_prefix,
        index_key=settings.records_index_key,
        chunk_size=settings.chunk_size,
    )
    trash = ChunkedStore(
        medium,
        transform,
        prefix=settings.trash_prefix,
        index_key=settings.trash_index_key,
        chunk_size=settings.chunk_size,
    )
    return RecordCatalog(
        records,
        trash,
        DuplicateResolver(numeral_fields=settings.numeral_field_list),
    )


def get_catalog(
    medium: Annotated[KeyValueMedium, Depends(get_medium)],
    transform: Annotated[ReversibleTransform, Depends(get_transform)],
) -> RecordCatalog:
    return build_catalog(medium, transform)


def get_backup_manager(
    medium: Annotated[KeyValueMedium, Depends(get_medium)],
    transform: Annotated[ReversibleTransform, Depends(get_transform)],
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> BackupManager:
    return BackupManager(
        medium,
        transform,
        catalog,
        chunk_size=settings.chunk_size,
        max_backup_count=settings.max_backup_count,
    )
