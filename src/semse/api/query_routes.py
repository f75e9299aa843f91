"""
Query Routes

This module defines the semantic search endpoint backed by the Redis vector
index. Each request is handled independently; the only shared resources are
the store connection pool and the embedder held by the SearchEngine.
"""

from fastapi import APIRouter, Depends, status
from typing import List, Annotated

from .models import QueryRequest
from .dependencies import get_search_engine, limit_body_size
from ..search.engine import SearchEngine, SearchResult

router = APIRouter(prefix="/api", tags=["query"])


@router.post(
    "/query",
    response_model=List[SearchResult],
    summary="Vector-based semantic search",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(limit_body_size)],
)
async def query(
    req: QueryRequest,
    engine: Annotated[SearchEngine, Depends(get_search_engine)],
) -> List[SearchResult]:
    """
    Return the `count` documents most similar to `query`, skipping the
    first `start` matches.

    An empty query or a non-positive count raises QueryError, which the
    registered handler turns into a 400 response.
    """
    return await engine.search(req.query, size=req.count, offset=req.start)
