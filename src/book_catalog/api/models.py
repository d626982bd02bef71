"""
API Models

Pydantic request/response models for the record, admin and backup routes.
Records themselves stay free-form dicts; only the envelopes are typed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["updated", "deleted", "created", "restored", "ok"]
    count: Optional[int] = Field(default=None, ge=0)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------

class RecordListResponse(BaseModel):
    records: List[Dict[str, Any]]
    total: int = Field(..., ge=0)


class ImportRequest(BaseModel):
    """
    CSV import payload. ``columns`` overrides the default label table.
    """
    document: str = Field(..., min_length=1)
    columns: Optional[Dict[str, str]] = None
    filter_duplicates: bool = True

    model_config = ConfigDict(extra="forbid")


class ImportResponse(BaseModel):
    imported: int
    filtered: int
    updated: int


class DedupeRequest(BaseModel):
    """
    Duplicate removal request. Falls back to the configured default fields.
    """
    fields: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class DedupeResponse(BaseModel):
    removed: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    removed_ids: List[str] = Field(default_factory=list)


class TrashCleanupRequest(BaseModel):
    days: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Storage / Backups
# ---------------------------------------------------------------------

class StorageStatsResponse(BaseModel):
    """
    Chunk index summaries for the record and trash stores.
    """
    records: Dict[str, Any]
    trash: Dict[str, Any]


class BackupResponse(BaseModel):
    id: str
    timestamp: datetime
    record_count: int
    last_restored: Optional[datetime] = None
