"""
Document Store

Redis (RediSearch) backed storage for keyed document records and the
vector similarity index built over them.

Key Properties
--------------
- One flat HASH per document, keyed `<prefix>:<id>`
- Lazy, idempotent index creation scoped to `<prefix>:`
- Exact (FLAT) cosine KNN search
- Explicit lifecycle via `open_store()`; the underlying connection pool is
  safe to share across concurrent request handlers
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Sequence

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ResponseError
from redis.commands.search.field import NumericField, TextField, VectorField
from redis.commands.search.query import Query

try:
    from redis.commands.search.index_definition import IndexDefinition, IndexType
except ImportError:  # redis-py < 6
    from redis.commands.search.indexDefinition import IndexDefinition, IndexType

from .codec import VECTOR_FIELD, encode_vector, hash_to_fields, record_to_hash
from ..config import Settings, settings as default_settings
from ..core.errors import IndexSchemaError, StorageError
from ..documents.models import DocumentRecord

logger = logging.getLogger("semse.store")

SCORE_FIELD = "vector_score"
RETURN_FIELDS = ("title", "body", "date", "image", "type")

# Field name -> RediSearch attribute type
INDEX_SCHEMA = {
    "title": "TEXT",
    "body": "TEXT",
    "date": "NUMERIC",
    VECTOR_FIELD: "VECTOR",
}


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        raise StorageError(f"{action} failed: {type(exc).__name__}: {exc}") from exc


def _text(value: Any) -> Any:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _is_unknown_index(exc: ResponseError) -> bool:
    message = str(exc).lower()
    return "unknown index" in message or "no such index" in message


def _describe_attributes(info: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Turn FT.INFO `attributes` into {name: {"type": ..., "dim": ...}}.

    Attribute replies are flat lists that mix key/value pairs with bare
    flags (SORTABLE, NOSTEM), so they are scanned for known keys.
    """
    described: Dict[str, Dict[str, Any]] = {}
    for raw in info.get("attributes") or []:
        items = [_text(v) for v in raw]
        props: Dict[str, Any] = {}
        for i, item in enumerate(items[:-1]):
            if isinstance(item, str) and item.lower() in ("identifier", "attribute", "type", "dim"):
                props.setdefault(item.lower(), items[i + 1])
        name = props.get("attribute") or props.get("identifier")
        if name:
            described[name] = props
    return described


def _describe_prefixes(info: Dict[str, Any]) -> List[str]:
    definition = [_text(v) for v in info.get("index_definition") or []]
    for i, item in enumerate(definition[:-1]):
        if item == "prefixes":
            return [_text(p) for p in definition[i + 1]]
    return []


# ---------------------------------------------------------------------
# Search Hits
# ---------------------------------------------------------------------

@dataclass
class SearchHit:
    """One KNN match: storage key, cosine distance and returned fields."""

    key: str
    distance: float
    fields: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------

class DocumentStore:
    """
    Hash storage plus a RediSearch vector index for document records.

    The store is the only component writing to Redis; callers apply
    skip/force policy before calling `put`.
    """

    def __init__(self, client: aioredis.Redis, dimensions: int) -> None:
        """
        Parameters
        ----------
        client : redis.asyncio.Redis
            Client created with `decode_responses=False`; vector fields are
            binary.
        dimensions : int
            Vector dimensionality declared in the index schema.
        """
        self._client = client
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------

    def _schema(self) -> list:
        return [
            TextField("title"),
            TextField("body"),
            NumericField("date", sortable=True),
            VectorField(
                VECTOR_FIELD,
                "FLAT",
                {
                    "TYPE": "FLOAT32",
                    "DIM": self._dimensions,
                    "DISTANCE_METRIC": "COSINE",
                },
            ),
        ]

    async def describe_index(self, name: str) -> Optional[Dict[str, Any]]:
        """Return FT.INFO for `name`, or None if the index does not exist."""
        try:
            return await self._client.ft(name).info()
        except ResponseError as exc:
            if _is_unknown_index(exc):
                return None
            raise StorageError(f"Describing index '{name}' failed: {exc}") from exc
        except RedisError as exc:
            raise StorageError(f"Describing index '{name}' failed: {exc}") from exc

    def _check_schema(self, name: str, prefix: str, info: Dict[str, Any]) -> None:
        problems: List[str] = []

        prefixes = _describe_prefixes(info)
        if prefixes and f"{prefix}:" not in prefixes:
            problems.append(f"prefixes {prefixes} do not include '{prefix}:'")

        attributes = _describe_attributes(info)
        for field_name, field_type in INDEX_SCHEMA.items():
            actual = attributes.get(field_name)
            if actual is None:
                problems.append(f"field '{field_name}' missing")
            elif str(actual.get("type", "")).upper() != field_type:
                problems.append(
                    f"field '{field_name}' is {actual.get('type')}, expected {field_type}"
                )

        dim = attributes.get(VECTOR_FIELD, {}).get("dim")
        if dim is not None and int(dim) != self._dimensions:
            problems.append(f"vector dim is {dim}, expected {self._dimensions}")

        if problems:
            raise IndexSchemaError(
                f"Index '{name}' exists with an incompatible schema: " + "; ".join(problems)
            )

    async def ensure_index(
        self,
        name: str,
        prefix: str,
        create_if_missing: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Make sure the similarity index `name` over `<prefix>:` exists.

        Returns
        -------
        Optional[Dict[str, Any]]
            Index info, or None if it is missing and creation was not requested.

        Raises
        ------
        IndexSchemaError
            If an index with that name exists with a different schema.
        StorageError
            If the store is unreachable.
        """
        info = await self.describe_index(name)
        if info is not None:
            self._check_schema(name, prefix, info)
            return info

        if not create_if_missing:
            return None

        logger.info("Creating index '%s' over prefix '%s:'", name, prefix)
        definition = IndexDefinition(prefix=[f"{prefix}:"], index_type=IndexType.HASH)
        with _translate_errors(f"Creating index '{name}'"):
            await self._client.ft(name).create_index(self._schema(), definition=definition)

        return await self.describe_index(name)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def put(self, key: str, record: DocumentRecord) -> None:
        """
        Replace the hash at `key` with the fields of `record`.

        Delete and write run in one MULTI/EXEC block, so fields missing from
        `record` never survive from a previous value.
        """
        fields = record_to_hash(record)
        with _translate_errors(f"Writing '{key}'"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=fields)
                await pipe.execute()

    async def exists(self, key: str) -> bool:
        with _translate_errors(f"Checking '{key}'"):
            return bool(await self._client.exists(key))

    async def get_fields(self, key: str) -> Optional[Dict[str, Any]]:
        """Return decoded hash fields at `key` (date as epoch millis), or None."""
        with _translate_errors(f"Reading '{key}'"):
            raw = await self._client.hgetall(key)
        if not raw:
            return None
        return hash_to_fields(raw)

    async def get(self, key: str) -> Optional[DocumentRecord]:
        """Read the record at `key` back into a DocumentRecord, or None."""
        fields = await self.get_fields(key)
        if fields is None:
            return None
        return DocumentRecord.model_validate(fields)

    async def scan(self, pattern: str) -> AsyncIterator[str]:
        """Yield keys matching a glob-style `pattern` (e.g. `documents:*`)."""
        with _translate_errors(f"Scanning '{pattern}'"):
            async for key in self._client.scan_iter(match=pattern):
                yield _text(key)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def knn(
        self,
        index: str,
        vector: Sequence[float],
        k: int,
    ) -> List[SearchHit]:
        """
        Return the `k` nearest records to `vector` by ascending cosine distance.
        """
        query = (
            Query(f"*=>[KNN {k} @{VECTOR_FIELD} $vec AS {SCORE_FIELD}]")
            .sort_by(SCORE_FIELD)
            .return_fields(*RETURN_FIELDS, SCORE_FIELD)
            .paging(0, k)
            .dialect(2)
        )

        with _translate_errors(f"Searching index '{index}'"):
            result = await self._client.ft(index).search(
                query,
                query_params={"vec": encode_vector(vector)},
            )

        hits: List[SearchHit] = []
        for doc in result.docs:
            fields = {
                name: _text(getattr(doc, name))
                for name in RETURN_FIELDS
                if getattr(doc, name, None) is not None
            }
            hits.append(
                SearchHit(
                    key=_text(doc.id),
                    distance=float(getattr(doc, SCORE_FIELD)),
                    fields=fields,
                )
            )
        return hits


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

def create_client(config: Settings = default_settings) -> aioredis.Redis:
    password = config.redis_password.get_secret_value() if config.redis_password else None
    return aioredis.Redis.from_url(
        config.redis_url,
        username=config.redis_user,
        password=password,
        decode_responses=False,
    )


@asynccontextmanager
async def open_store(config: Settings = default_settings) -> AsyncIterator[DocumentStore]:
    """
    Connect to Redis, yield a DocumentStore and always close the pool.

    Raises
    ------
    StorageError
        If the store cannot be reached.
    """
    client = create_client(config)
    try:
        with _translate_errors(f"Connecting to {config.redis_url}"):
            await client.ping()
        logger.info("Connected to redis at %s", config.redis_url)
        yield DocumentStore(client, dimensions=config.dimensions)
    finally:
        await client.aclose()

