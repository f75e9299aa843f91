from fastapi import HTTPException, Request, status

from ..config import settings
from ..search.engine import SearchEngine
from ..storage.store import DocumentStore


def get_search_engine(request: Request) -> SearchEngine:
    return request.app.state.search_engine


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


async def limit_body_size(request: Request) -> None:
    """Reject request bodies above the configured maximum."""
    body = await request.body()
    if len(body) > settings.max_post_body_length:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Request body exceeds {settings.max_post_body_length} bytes",
        )
