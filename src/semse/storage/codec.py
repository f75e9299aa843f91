"""
Vector and hash field codecs for the Redis storage format.

Vectors are stored as packed little-endian FLOAT32, which is what a
RediSearch FLAT/FLOAT32 vector field expects.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

import numpy as np

from ..documents.models import DocumentRecord, to_epoch_millis

VECTOR_DTYPE = np.dtype("<f4")
VECTOR_FIELD = "embedding"


def encode_vector(vector: Sequence[float]) -> bytes:
    """Pack a float sequence into FLOAT32 bytes."""
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def decode_vector(blob: bytes) -> List[float]:
    """Unpack FLOAT32 bytes into a list of Python floats."""
    if len(blob) % VECTOR_DTYPE.itemsize:
        raise ValueError(
            f"Vector blob of {len(blob)} bytes is not a multiple of "
            f"{VECTOR_DTYPE.itemsize}."
        )
    return np.frombuffer(blob, dtype=VECTOR_DTYPE).astype(float).tolist()


def record_to_hash(record: DocumentRecord) -> Dict[str, Any]:
    """
    Flatten a record into hash fields: date as integer epoch millis,
    embedding as FLOAT32 bytes, everything else as strings.
    """
    fields: Dict[str, Any] = {
        "title": record.title,
        "body": record.body,
        "date": to_epoch_millis(record.date),
    }
    if record.embedding is not None:
        fields[VECTOR_FIELD] = encode_vector(record.embedding)
    if record.image is not None:
        fields["image"] = str(record.image)
    if record.type is not None:
        fields["type"] = str(record.type)
    return fields


def hash_to_fields(raw: Mapping[bytes | str, bytes | str]) -> Dict[str, Any]:
    """
    Decode a raw HGETALL reply. Text fields are decoded as UTF-8, the
    vector field is unpacked and `date` is turned back into epoch millis.
    """
    fields: Dict[str, Any] = {}
    for name, value in raw.items():
        if isinstance(name, bytes):
            name = name.decode("utf-8")
        if name == VECTOR_FIELD:
            fields[name] = decode_vector(value)
            continue
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        fields[name] = int(float(value)) if name == "date" else value
    return fields
