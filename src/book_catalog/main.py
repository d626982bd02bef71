"""
Book Catalog ASGI Application

``create_app()`` wires the record, admin and backup routers onto one FastAPI
instance with the catalog error handlers. Tests call it directly and swap the
storage medium through ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .config import settings
from .core.errors import CatalogError, catalog_error_handler, unhandled_exception_handler

from .api import (
    admin_routes,
    backup_routes,
    health_routes,
    record_routes,
)
from .api.dependencies import build_catalog, get_medium, get_transform


logger = logging.getLogger("catalog.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Fail-fast startup: open the medium and make sure both chunk indexes exist
    before the first request is served.
    """
    logger.info("Starting book-catalog")

    medium = app.dependency_overrides.get(get_medium, get_medium)()
    catalog = build_catalog(medium, get_transform())
    stats = catalog.init_storage()
    logger.info(
        "Storage ready: %d record chunk(s), %d trash chunk(s)",
        stats["records"].total_chunks,
        stats["trash"].total_chunks,
    )

    yield

    logger.info("Shutting down book-catalog")


# ---------------------------------------------------------------------
# Application Factory
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Application with handlers and routers registered.
    """
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title="book-catalog",
        version="1.0.0",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(CatalogError, catalog_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(record_routes.router)
    app.include_router(admin_routes.router)
    app.include_router(backup_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
