"""
Query Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures exception handling, and owns the lifecycle of the shared store
connection and embedding client.

Design Goals
------------
- Explicitly constructed clients, opened at startup and closed at shutdown
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .config import settings
from .core.errors import QueryError, query_error_handler, unhandled_exception_handler
from .embeddings.embedder import Embedder
from .search.engine import SearchEngine
from .storage.store import open_store

from .api import (
    health_routes,
    query_routes,
)


logger = logging.getLogger("semse.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Open the store, make sure the index exists and build the search engine.

    Startup fails fast if the store is unreachable, the index conflicts
    with the expected schema, or no API key is configured.
    """
    logger.info("Starting semse query server")

    async with open_store(settings) as store:
        await store.ensure_index(
            settings.document_index,
            settings.document_prefix,
            create_if_missing=True,
        )

        app.state.store = store
        app.state.search_engine = SearchEngine(
            store=store,
            embedder=Embedder(),
            index=settings.document_index,
            prefix=settings.document_prefix,
        )
        logger.info("Server up and running")

        yield

        logger.info("Shutting down semse query server")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="semse",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(QueryError, query_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_routes.router)
    app.include_router(query_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
