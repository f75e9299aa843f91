"""
Document Data Models

This module defines the canonical record flowing through the pipeline and
the on-disk artifact envelope that wraps it.

Two on-disk shapes exist:

- bare  : {"title", "body", "date", "embedding"?, "image"?, "type"?}
- keyed : {"key": "<prefix>:<id>", "value": <bare record>}

`Artifact` normalizes both into one internal type at the ingestion
boundary, so no stage has to guess which shape it is holding.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError


# ---------------------------------------------------------------------
# Date Coercion
# ---------------------------------------------------------------------

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def coerce_date(value: Any) -> datetime:
    """
    Normalize an ISO-8601 string, epoch-millisecond number or datetime
    into a timezone-aware datetime. Naive values are taken as UTC.
    """
    if value is None or value == "" or value == 0:
        raise PydanticCustomError("missing", "Date missing or empty.")

    if isinstance(value, bool):
        raise PydanticCustomError("date_type", "Invalid date.")

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise PydanticCustomError("date_type", "Invalid date.") from None
    elif isinstance(value, (int, float)):
        try:
            parsed = _EPOCH + timedelta(milliseconds=value)
        except (OverflowError, OSError, ValueError):
            raise PydanticCustomError("date_type", "Invalid date.") from None
    else:
        raise PydanticCustomError("date_type", "Invalid date.")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_epoch_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(value: Any) -> datetime:
    return _EPOCH + timedelta(milliseconds=int(float(value)))


# ---------------------------------------------------------------------
# Document Record
# ---------------------------------------------------------------------

class DocumentRecord(BaseModel):
    """
    A single normalized document.

    Pass `context={"dimensions": n}` to `model_validate` to enforce the
    embedding length.
    """

    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    date: datetime
    embedding: Optional[List[float]] = None
    image: Optional[Any] = None
    type: Optional[Any] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> datetime:
        return coerce_date(value)

    @field_validator("embedding")
    @classmethod
    def _check_dimensions(
        cls,
        value: Optional[List[float]],
        info: ValidationInfo,
    ) -> Optional[List[float]]:
        dimensions = (info.context or {}).get("dimensions")
        if value is not None and dimensions is not None and len(value) != dimensions:
            raise PydanticCustomError(
                "embedding_dimensions",
                "Embedding has {actual} dimensions, expected {expected}.",
                {"actual": len(value), "expected": dimensions},
            )
        return value

    def to_json(self) -> Dict[str, Any]:
        """Serialize for on-disk artifacts (ISO-8601 date, float list embedding)."""
        return self.model_dump(mode="json", exclude_none=True)


class KeyedRecord(BaseModel):
    """A validated record bound to its storage key."""

    key: str = Field(..., min_length=1)
    value: DocumentRecord

    def to_json(self) -> Dict[str, Any]:
        return {"key": self.key, "value": self.value.to_json()}


# ---------------------------------------------------------------------
# Artifact Envelope
# ---------------------------------------------------------------------

class ArtifactShape(str, Enum):
    BARE = "bare"
    KEYED = "keyed"


@dataclass
class Artifact:
    """
    A JSON artifact read from disk, normalized to (key, record fields).

    `data` is the raw field mapping of the record; it is kept unvalidated
    so that stages which only add a field leave everything else intact.
    """

    data: Dict[str, Any]
    key: Optional[str] = None
    shape: ArtifactShape = ArtifactShape.BARE

    @classmethod
    def from_json(cls, payload: Any) -> "Artifact":
        if not isinstance(payload, dict):
            raise ValueError("Artifact must be a JSON object.")

        value = payload.get("value")
        if isinstance(value, dict):
            return cls(data=value, key=payload.get("key"), shape=ArtifactShape.KEYED)

        return cls(data=payload)

    def to_json(self) -> Dict[str, Any]:
        if self.shape is ArtifactShape.KEYED:
            return {"key": self.key, "value": self.data}
        return self.data

    @property
    def has_embedding(self) -> bool:
        return bool(self.data.get("embedding"))
