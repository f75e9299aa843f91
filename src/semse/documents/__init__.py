"""
Documents Package

Canonical document record, on-disk artifact envelope and record validation.
"""

from .models import Artifact, ArtifactShape, DocumentRecord, KeyedRecord
from .validation import validate_record

__all__ = [
    "Artifact",
    "ArtifactShape",
    "DocumentRecord",
    "KeyedRecord",
    "validate_record",
]
