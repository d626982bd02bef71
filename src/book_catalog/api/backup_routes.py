"""
Backup Routes

Create, list, restore and delete local snapshots of the record collection.
"""

from typing import Annotated, List

from fastapi import APIRouter, Depends, status

from .dependencies import get_backup_manager
from .models import BackupResponse, OperationResult
from ..backup.manager import BackupEntry, BackupManager

router = APIRouter(prefix="/backups", tags=["backups"])


def _to_response(entry: BackupEntry) -> BackupResponse:
    return BackupResponse(
        id=entry.id,
        timestamp=entry.timestamp,
        record_count=entry.record_count,
        last_restored=entry.last_restored,
    )


@router.get("", response_model=List[BackupResponse], summary="List backups, newest first")
def list_backups(
    manager: Annotated[BackupManager, Depends(get_backup_manager)],
) -> List[BackupResponse]:
    return [_to_response(e) for e in manager.history()]


@router.post(
    "",
    response_model=BackupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Snapshot the current collection",
)
def create_backup(
    manager: Annotated[BackupManager, Depends(get_backup_manager)],
) -> BackupResponse:
    return _to_response(manager.create_backup())


@router.post(
    "/{backup_id}/restore",
    response_model=BackupResponse,
    summary="Replace the collection with a snapshot",
)
def restore_backup(
    backup_id: str,
    manager: Annotated[BackupManager, Depends(get_backup_manager)],
) -> BackupResponse:
    return _to_response(manager.restore_backup(backup_id))


@router.delete(
    "/{backup_id}",
    response_model=OperationResult,
    summary="Delete a snapshot",
)
def delete_backup(
    backup_id: str,
    manager: Annotated[BackupManager, Depends(get_backup_manager)],
) -> OperationResult:
    manager.delete_backup(backup_id)
    return OperationResult(status="deleted", count=1, details={"id": backup_id})
