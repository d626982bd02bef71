"""
Error Taxonomy and Global Error Handling

This module defines the typed failures raised by the storage, transform and
record layers, and the FastAPI exception handlers that turn them into
responses.

Conventions
-----------
- Storage, transform and record layers only raise ``CatalogError`` subclasses
- Each subclass carries a stable ``code`` string and the HTTP status it maps to
- Unexpected exceptions reach clients as an opaque 500; the traceback stays in the log
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("catalog.errors")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class CatalogError(Exception):
    """Base class for all typed catalog failures."""

    code: str = "catalog_error"
    status_code: int = 500


class DecodeError(CatalogError):
    """
    The reversible transform produced unparseable data.

    The payload is considered lost; callers must not retry.
    """

    code = "decode_error"
    status_code = 500


class CorruptStoreError(CatalogError):
    """A chunk ordinal named by the chunk index is missing."""

    code = "corrupt_store"
    status_code = 500


class ValidationError(CatalogError):
    """Invalid arguments, or an import document failed structural checks."""

    code = "validation_error"
    status_code = 422


class StaleIndexError(CatalogError):
    """The chunk index changed since the caller last read it."""

    code = "stale_index"
    status_code = 409


class StorageQuotaError(CatalogError):
    """A value exceeds the key-value medium's per-key ceiling."""

    code = "storage_quota_exceeded"
    status_code = 507


class RecordNotFoundError(CatalogError):
    code = "record_not_found"
    status_code = 404


class BackupNotFoundError(CatalogError):
    code = "backup_not_found"
    status_code = 404


class RemoteUnavailableError(CatalogError):
    """The optional remote snapshot service is absent or failed."""

    code = "remote_unavailable"
    status_code = 503


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def catalog_error_handler(
    request: Request,
    exc: CatalogError,
) -> JSONResponse:
    """
    Map a typed ``CatalogError`` to its HTTP status.

    The exception message is safe to return: core modules only put
    identifiers and counts in it, never record payloads.
    """
    logger.warning(
        "Catalog error during request %s %s: %s",
        request.method,
        request.url.path,
        exc.code,
    )

    payload: Dict[str, Any] = {
        "error": exc.code,
        "detail": str(exc) or exc.code,
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Last-resort handler: log the traceback, answer with an opaque 500.

    Nothing from ``exc`` is echoed back.
    """
    logger.exception(
        "Unhandled %s on %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
