"""
Record Validation

Pure, side-effect free validation of arbitrary field mappings into
`DocumentRecord` instances. Every failing field is reported in a single
`RecordValidationError`; validation never returns a partially valid record.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from pydantic import ValidationError

from .models import DocumentRecord
from ..core.errors import FieldError, RecordValidationError

# Error types that mean "absent or empty" rather than "wrong type"
_MISSING_TYPES = {"missing", "string_too_short"}


def _field_errors(exc: ValidationError) -> List[FieldError]:
    errors: List[FieldError] = []
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "record"
        if err["type"] in _MISSING_TYPES:
            message = f"{field.capitalize()} missing or empty."
        else:
            message = err["msg"]
        errors.append(FieldError(field=field, message=message))
    return errors


def validate_record(
    data: Mapping[str, Any],
    dimensions: Optional[int] = None,
) -> DocumentRecord:
    """
    Validate and normalize a document mapping.

    Parameters
    ----------
    data : Mapping[str, Any]
        Raw record fields. Keys other than title, body, date, embedding,
        image and type are dropped.
    dimensions : Optional[int]
        Expected embedding length, checked only when an embedding is present.

    Returns
    -------
    DocumentRecord

    Raises
    ------
    RecordValidationError
        Listing every missing or invalid field.
    """
    if not isinstance(data, Mapping):
        raise RecordValidationError(
            [FieldError(field="record", message="Record must be an object.")]
        )

    try:
        return DocumentRecord.model_validate(
            dict(data),
            context={"dimensions": dimensions},
        )
    except ValidationError as exc:
        raise RecordValidationError(_field_errors(exc)) from exc
