"""
Error Taxonomy and Global Error Handling

This module defines the exception hierarchy shared by the pipeline, the
storage layer and the query server, plus the FastAPI exception handlers
that turn them into HTTP responses.

Taxonomy
--------
- RecordValidationError : aggregate of field-level errors (per-file, recoverable)
- ExternalServiceError  : completion / embedding failure or malformed response
- StorageError          : store unreachable or index conflict
- TraversalError        : root folder cannot be listed (fatal for a run)
- QueryError            : invalid caller input on the query path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Sequence

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("semse.errors")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class SemseError(Exception):
    """Base class for all semse errors."""


class ConfigurationError(SemseError):
    """Raised when required configuration is missing."""


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class RecordValidationError(SemseError):
    """
    Aggregate validation failure.

    Carries every field error found in one validation pass, so callers can
    enumerate all of them instead of only the first.
    """

    def __init__(self, errors: Sequence[FieldError]) -> None:
        self.errors: List[FieldError] = list(errors)
        summary = "; ".join(str(e) for e in self.errors)
        super().__init__(f"Validation errors: {summary}")

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]


class ExternalServiceError(SemseError):
    """Raised when an external service call fails or returns garbage."""


class EmbeddingError(ExternalServiceError):
    """Raised when embedding generation fails."""


class CompletionError(ExternalServiceError):
    """Raised when a chat completion fails or cannot be parsed."""


class StorageError(SemseError):
    """Raised when the key-value / vector store cannot be used."""


class IndexSchemaError(StorageError):
    """Raised when an existing index conflicts with the expected schema."""


class TraversalError(SemseError):
    """Raised when the root folder of a walk cannot be listed."""


class QueryError(SemseError):
    """Raised for invalid search input (empty query, bad window)."""


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def query_error_handler(
    request: Request,
    exc: QueryError,
) -> JSONResponse:
    """
    Map caller input errors on the query path to a 400 response.
    """
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_query", "detail": str(exc)},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
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
