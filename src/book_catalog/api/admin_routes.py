"""
Admin Routes

Bulk import/export, duplicate removal, trash management and storage
diagnostics. Failures surface as typed ``CatalogError`` responses through the
global handlers.
"""

from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from .dependencies import get_catalog
from .models import (
    DedupeRequest,
    DedupeResponse,
    ImportRequest,
    ImportResponse,
    OperationResult,
    RecordListResponse,
    StorageStatsResponse,
    TrashCleanupRequest,
)
from ..config import settings
from ..records.catalog import RecordCatalog
from ..records.tabular import FieldMapping, export_filename, parse_csv, to_csv

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/import", response_model=ImportResponse, summary="Import a CSV document")
def import_document(
    req: ImportRequest,
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> ImportResponse:
    mapping = FieldMapping(columns=req.columns) if req.columns else FieldMapping()
    records = parse_csv(req.document, mapping)
    summary = catalog.import_records(records, filter_duplicates=req.filter_duplicates)
    return ImportResponse(**summary.model_dump())


@router.get("/export", response_class=PlainTextResponse, summary="Export records as CSV")
def export_document(
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> PlainTextResponse:
    body = to_csv(catalog.list())
    filename = export_filename()
    return PlainTextResponse(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@router.post("/dedupe", response_model=DedupeResponse, summary="Remove duplicate records")
def dedupe(
    req: DedupeRequest,
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> DedupeResponse:
    fields = req.fields if req.fields is not None else settings.dedup_field_list
    result = catalog.remove_duplicates(fields)
    return DedupeResponse(
        removed=result.removed,
        total=len(result.kept),
        removed_ids=[str(r.get("id")) for r in result.removed_records],
    )


@router.get("/trash", response_model=RecordListResponse, summary="List trashed records")
def list_trash(
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> RecordListResponse:
    records = catalog.trash()
    return RecordListResponse(records=records, total=len(records))


@router.post(
    "/trash/{record_id}/restore",
    response_model=OperationResult,
    summary="Restore a trashed record",
)
def restore_from_trash(
    record_id: str,
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> OperationResult:
    catalog.restore(record_id)
    return OperationResult(status="restored", count=1, details={"id": record_id})


@router.post(
    "/trash/cleanup",
    response_model=OperationResult,
    summary="Purge trashed records past the retention window",
)
def cleanup_trash(
    req: TrashCleanupRequest,
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> OperationResult:
    days = req.days if req.days is not None else settings.trash_retention_days
    purged = catalog.cleanup_trash(days)
    return OperationResult(status="deleted", count=purged, details={"days": days})


@router.get("/storage", response_model=StorageStatsResponse, summary="Chunk index stats")
def storage_stats(
    catalog: Annotated[RecordCatalog, Depends(get_catalog)],
) -> StorageStatsResponse:
    stats = catalog.storage_stats()
    return StorageStatsResponse(
        records=stats["records"].model_dump(mode="json", by_alias=True),
        trash=stats["trash"].model_dump(mode="json", by_alias=True),
    )
