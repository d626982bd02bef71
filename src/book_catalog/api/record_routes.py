"""
Record Routes

CRUD and search over the catalog's record collection. These are the calls a
rendering layer makes to populate result cards; none of them expose chunk
keys or storage layout.
"""

from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from .dependencies import get_catalog
from .models import OperationResult, RecordListResponse
from ..records.catalog import RecordCatalog

router = APIRouter(prefix="/records", tags=["records"])

FILTER_FIELDS = ("category", "publisher", "cabinet", "status", "location")


@router.get("", response_model=RecordListResponse, summary="List all records")
def list_records(
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> RecordListResponse:
    records = catalog.list()
    return RecordListResponse(records=records, total=len(records))


@router.get("/search", response_model=RecordListResponse, summary="Search records")
def search_records(
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
    q: Optional[str] = None,
    field: str = "title",
    category: Optional[str] = None,
    publisher: Optional[str] = None,
    cabinet: Optional[str] = None,
    status_: Annotated[Optional[str], Query(alias="status")] = None,
    location: Optional[str] = None,
) -> RecordListResponse:
    """
    Keyword search with optional exact-match filters.

    ``field`` is a record field name, or ``all`` to search every text field.
    """
    filters = dict(zip(FILTER_FIELDS, (category, publisher, cabinet, status_, location)))
    records = catalog.search(q, field=field, filters=filters)
    return RecordListResponse(records=records, total=len(records))


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Add a record",
)
def add_record(
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
    record: Annotated[Dict[str, Any], Body()],
) -> Dict[str, Any]:
    return catalog.add(record)


@router.get("/{record_id}", summary="Get a record by id")
def get_record(
    record_id: str,
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> Dict[str, Any]:
    return catalog.get(record_id)


@router.patch("/{record_id}", summary="Update fields on a record")
def update_record(
    record_id: str,
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
    changes: Annotated[Dict[str, Any], Body()],
) -> Dict[str, Any]:
    return catalog.update(record_id, changes)


@router.delete(
    "/{record_id}",
    response_model=OperationResult,
    summary="Move a record to the trash",
)
def delete_record(
    record_id: str,
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> OperationResult:
    catalog.delete(record_id)
    return OperationResult(status="deleted", count=1, details={"id": record_id})
