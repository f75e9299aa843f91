"""
Semantic Search Engine

Answers "which stored documents are closest to this text" with offset/size
pagination.

Responsibilities
----------------
- Reject invalid input before any network call
- Embed the query
- Run an exact KNN query for `offset + size` neighbors
- Apply the window and rebuild results for external consumers
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import QueryError
from ..documents.models import from_epoch_millis
from ..embeddings.embedder import Embedder
from ..storage.store import DocumentStore, SearchHit


class SearchResult(BaseModel):
    """
    A ranked search match. `id` is the storage key without its namespace
    prefix; `score` is the cosine distance to the query (lower is closer).
    """

    id: str
    title: str
    body: str
    date: Optional[datetime] = None
    image: Optional[Any] = None
    type: Optional[Any] = None
    score: float = Field(..., ge=0.0)

    model_config = ConfigDict(extra="forbid")


class SearchEngine:
    """
    KNN retrieval over the document index.

    Safe for concurrent use: it holds no per-query state, and the store and
    embedder it wraps are shared.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        index: str,
        prefix: str,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.index = index
        self.prefix = prefix[:-1] if prefix.endswith(":") else prefix

    def _strip_prefix(self, key: str) -> str:
        namespace = f"{self.prefix}:"
        return key[len(namespace):] if key.startswith(namespace) else key

    def _to_result(self, hit: SearchHit) -> SearchResult:
        fields = hit.fields
        raw_date = fields.get("date")
        return SearchResult(
            id=self._strip_prefix(hit.key),
            title=fields.get("title", ""),
            body=fields.get("body", ""),
            date=from_epoch_millis(raw_date) if raw_date not in (None, "") else None,
            image=fields.get("image"),
            type=fields.get("type"),
            # cosine distance lies in [0, 2]; clamp float32 noise below zero
            score=max(hit.distance, 0.0),
        )

    async def search(
        self,
        query_text: str,
        size: int,
        offset: int = 0,
    ) -> List[SearchResult]:
        """
        Return up to `size` documents ranked by similarity, skipping the
        first `offset` matches.

        Raises
        ------
        QueryError
            If the query is empty, `size` is not positive or `offset` is negative.
        """
        if not query_text or not query_text.strip():
            raise QueryError("Empty query.")
        if size is None or size <= 0:
            raise QueryError("size must be a positive integer.")
        if offset is None or offset < 0:
            raise QueryError("offset must not be negative.")

        vector = await self.embedder.embed_one(query_text)
        hits = await self.store.knn(self.index, vector, offset + size)

        # Stable: equal distances keep the store's order
        ranked = sorted(hits, key=lambda hit: hit.distance)
        return [self._to_result(hit) for hit in ranked[offset:offset + size]]
