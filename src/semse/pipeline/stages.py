"""
Pipeline Stages

Each stage turns one input artifact into one output artifact and is driven
file by file by the walker (through `StageQueue`). Stages share one
per-file policy, implemented in `FileStage`:

- an existing destination is skipped unless `force` is set, before any
  external service is called
- `simulate` reads and validates input but performs no network call and
  no write
- every per-file error is caught, logged with its reason and counted as a
  failure; it never escapes to the batch

Stages
------
StructuringStage : raw text        -> document record  (completion service)
EmbeddingStage   : document record -> record + vector  (embedding service)
KeyingStage      : document record -> {key, value}     (no network)
ImportStage      : {key, value}    -> Redis hash       (store write)
ExportStage      : Redis hash      -> {key, value}     (store read)
"""

from __future__ import annotations

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .walker import BatchTally
from ..core.errors import (
    CompletionError,
    FieldError,
    RecordValidationError,
    SemseError,
)
from ..documents.models import Artifact, ArtifactShape, DocumentRecord, KeyedRecord
from ..documents.validation import validate_record
from ..embeddings.embedder import Embedder, compose_document_text
from ..llm.client import CompletionClient
from ..prompts import build_structuring_prompt
from ..storage.store import DocumentStore

logger = logging.getLogger("semse.pipeline")


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


# ---------------------------------------------------------------------
# File Helpers
# ---------------------------------------------------------------------

def read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)


def read_artifact(path: Path) -> Artifact:
    try:
        return Artifact.from_json(read_json(path))
    except ValueError as exc:
        raise RecordValidationError(
            [FieldError(field="record", message=str(exc))]
        ) from exc


def normalize_prefix(prefix: str) -> str:
    """Strip the trailing key separator from a namespace prefix."""
    return prefix[:-1] if prefix.endswith(":") else prefix


def key_to_filename(key: str) -> str:
    return f"{key.replace(':', '_')}.json"


# ---------------------------------------------------------------------
# Base Stage
# ---------------------------------------------------------------------

class FileStage(ABC):
    """
    A per-file pipeline step. Instances are callable as walker operations.
    """

    verb = "processed"

    def __init__(
        self,
        source_root: Path | str,
        dest_root: Optional[Path | str] = None,
        force: bool = False,
        simulate: bool = False,
    ) -> None:
        self.source_root = Path(source_root)
        self.dest_root = Path(dest_root) if dest_root is not None else self.source_root
        self.force = force
        self.simulate = simulate

    async def prepare(self) -> None:
        """Batch-level setup run once before the first file. May raise."""

    @abstractmethod
    async def run(self, relative_path: Path) -> Outcome:
        """Process one file; raise on failure."""

    async def process_file(self, relative_path: Path) -> Outcome:
        """Run one file inside the per-file error boundary."""
        try:
            outcome = await self.run(relative_path)
        except SemseError as exc:
            logger.error("%s: Failed: %s", relative_path, exc)
            return Outcome.FAILED
        except (OSError, ValueError) as exc:
            logger.error("%s: Failed: %s: %s", relative_path, type(exc).__name__, exc)
            return Outcome.FAILED
        except Exception:
            logger.exception("%s: Failed with an unexpected error", relative_path)
            return Outcome.FAILED

        if outcome is Outcome.SKIPPED:
            logger.info("%s: Exists, skipping.", relative_path)
        return outcome

    async def __call__(self, root: Path, relative_path: Path, tally: BatchTally) -> None:
        tally.record(await self.process_file(relative_path))

    def _report(self, relative_path: Path, target: Any) -> None:
        if self.simulate:
            logger.info("%s: %s Ok (simulated).", relative_path, target)
        else:
            logger.info("%s: %s Ok.", relative_path, target)


# ---------------------------------------------------------------------
# Structuring: text -> record
# ---------------------------------------------------------------------

class StructuredCompletion(BaseModel):
    """The JSON object the completion service is asked to return."""

    title: str = Field(..., min_length=1)
    date: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


def parse_completion(raw: str) -> StructuredCompletion:
    """
    Parse a completion strictly as `{"title": str, "date"?: str}`.

    Raises
    ------
    CompletionError
        If the text is not JSON or does not match the expected shape.
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CompletionError(f"Completion is not valid JSON: {exc.msg}.") from exc

    try:
        return StructuredCompletion.model_validate(payload)
    except ValidationError as exc:
        fields = ", ".join(str(e["loc"][0]) if e["loc"] else "root" for e in exc.errors())
        raise CompletionError(f"Completion does not match the expected schema ({fields}).") from exc


class StructuringStage(FileStage):
    """Turn plain text files into document records via the completion service."""

    verb = "converted"

    def __init__(self, completion: CompletionClient, source_root, dest_root=None, **options) -> None:
        super().__init__(source_root, dest_root, **options)
        self.completion = completion

    async def structure(self, text: str) -> DocumentRecord:
        raw = await self.completion.complete(build_structuring_prompt(text))
        parsed = parse_completion(raw)
        return validate_record(
            {
                "title": parsed.title,
                "body": text,
                "date": parsed.date or datetime.now(timezone.utc),
            }
        )

    async def run(self, relative_path: Path) -> Outcome:
        dst_relative = relative_path.with_suffix(".json")
        dst = self.dest_root / dst_relative

        if dst.exists() and not self.force:
            return Outcome.SKIPPED

        text = (self.source_root / relative_path).read_text(encoding="utf-8")

        if not self.simulate:
            record = await self.structure(text)
            write_json(dst, record.to_json())

        self._report(relative_path, dst_relative)
        return Outcome.SUCCEEDED


# ---------------------------------------------------------------------
# Embedding: record -> record + vector
# ---------------------------------------------------------------------

class EmbeddingStage(FileStage):
    """
    Add an embedding to bare or keyed record files.

    Writes in place unless a destination folder is given. The artifact is
    written back in its original shape with only `embedding` added.
    """

    verb = "embedded"

    def __init__(self, embedder: Embedder, source_root, dest_root=None, **options) -> None:
        super().__init__(source_root, dest_root, **options)
        self.embedder = embedder

    def _already_embedded(self, src: Path, dst: Path, artifact: Artifact) -> bool:
        if artifact.has_embedding:
            return True
        if dst != src and dst.exists():
            return read_artifact(dst).has_embedding
        return False

    async def run(self, relative_path: Path) -> Outcome:
        src = self.source_root / relative_path
        dst = self.dest_root / relative_path

        artifact = read_artifact(src)
        if not self.force and self._already_embedded(src, dst, artifact):
            return Outcome.SKIPPED

        record = validate_record({k: v for k, v in artifact.data.items() if k != "embedding"})

        if not self.simulate:
            text = compose_document_text(record.title, record.body)
            artifact.data["embedding"] = await self.embedder.embed_one(text)
            write_json(dst, artifact.to_json())

        self._report(relative_path, relative_path)
        return Outcome.SUCCEEDED


# ---------------------------------------------------------------------
# Keying: record -> {key, value}
# ---------------------------------------------------------------------

class KeyingStage(FileStage):
    """
    Wrap validated records as `{key, value}` with a freshly minted key.
    """

    verb = "converted"

    def __init__(
        self,
        prefix: str,
        source_root,
        dest_root=None,
        flatten: bool = False,
        dimensions: Optional[int] = None,
        **options,
    ) -> None:
        super().__init__(source_root, dest_root, **options)
        self.prefix = normalize_prefix(prefix)
        self.flatten = flatten
        self.dimensions = dimensions

    def mint_key(self) -> str:
        return f"{self.prefix}:{uuid.uuid4()}"

    def key_record(self, data: Dict[str, Any]) -> KeyedRecord:
        record = validate_record(data, dimensions=self.dimensions)
        return KeyedRecord(key=self.mint_key(), value=record)

    async def run(self, relative_path: Path) -> Outcome:
        artifact = read_artifact(self.source_root / relative_path)
        keyed = self.key_record(artifact.data)

        dst_relative = Path(key_to_filename(keyed.key)) if self.flatten else relative_path
        dst = self.dest_root / dst_relative

        if dst.exists() and not self.force:
            return Outcome.SKIPPED

        if not self.simulate:
            write_json(dst, keyed.to_json())

        self._report(relative_path, f"{keyed.key} {dst_relative}")
        return Outcome.SUCCEEDED


# ---------------------------------------------------------------------
# Import: {key, value} -> store
# ---------------------------------------------------------------------

class ImportStage(FileStage):
    """
    Write keyed, embedded records into the store under their own keys.

    The index is ensured (and created unless simulating) before the first
    file; an existing key is only overwritten with `force`.
    """

    verb = "imported"

    def __init__(
        self,
        store: DocumentStore,
        index: str,
        prefix: str,
        source_root,
        **options,
    ) -> None:
        super().__init__(source_root, None, **options)
        self.store = store
        self.index = index
        self.prefix = normalize_prefix(prefix)

    async def prepare(self) -> None:
        await self.store.ensure_index(self.index, self.prefix, create_if_missing=not self.simulate)

    def _validate(self, artifact: Artifact) -> DocumentRecord:
        errors: List[FieldError] = []
        key = artifact.key if artifact.shape is ArtifactShape.KEYED else None

        if not key:
            errors.append(FieldError(field="key", message="Key missing or empty."))
        elif not key.startswith(f"{self.prefix}:"):
            errors.append(FieldError(field="key", message=f"Key is outside prefix '{self.prefix}:'."))

        record = None
        try:
            record = validate_record(artifact.data, dimensions=self.store.dimensions)
        except RecordValidationError as exc:
            errors.extend(exc.errors)

        if record is not None and record.embedding is None:
            errors.append(FieldError(field="embedding", message="Embedding missing or empty."))

        if errors:
            raise RecordValidationError(errors)
        return record

    async def run(self, relative_path: Path) -> Outcome:
        artifact = read_artifact(self.source_root / relative_path)
        record = self._validate(artifact)

        if not self.force and await self.store.exists(artifact.key):
            return Outcome.SKIPPED

        if not self.simulate:
            await self.store.put(artifact.key, record)

        self._report(relative_path, artifact.key)
        return Outcome.SUCCEEDED


# ---------------------------------------------------------------------
# Export: store -> {key, value}
# ---------------------------------------------------------------------

class ExportStage:
    """
    Dump every record under a prefix into `<key with : as _>.json` files.
    """

    verb = "exported"

    def __init__(self, store: DocumentStore, prefix: str, dest_root, force: bool = False) -> None:
        self.store = store
        self.prefix = normalize_prefix(prefix)
        self.dest_root = Path(dest_root)
        self.force = force

    async def export_key(self, key: str) -> Outcome:
        dst = self.dest_root / key_to_filename(key)
        if dst.exists() and not self.force:
            logger.info("%s: Exists, skipping.", key)
            return Outcome.SKIPPED

        try:
            record = await self.store.get(key)
            if record is None:
                raise SemseError(f"Key '{key}' no longer exists.")
            write_json(dst, KeyedRecord(key=key, value=record).to_json())
        except (SemseError, OSError, ValueError) as exc:
            logger.error("%s: Failed: %s", key, exc)
            return Outcome.FAILED

        logger.info("%s: Ok.", key)
        return Outcome.SUCCEEDED

    async def run(self, limit: Optional[int] = None) -> BatchTally:
        tally = BatchTally()
        self.dest_root.mkdir(parents=True, exist_ok=True)

        keys = sorted([key async for key in self.store.scan(f"{self.prefix}:*")])
        if limit is not None:
            keys = keys[:limit]
        if not keys:
            logger.info("No documents to export.")
            return tally

        logger.info("Found %d documents, starting export.", len(keys))
        for key in keys:
            tally.record(await self.export_key(key))

        return tally
