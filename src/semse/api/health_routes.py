from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_store
from .models import HealthResponse
from ..config import settings
from ..core.errors import StorageError
from ..storage.store import DocumentStore

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(store: Annotated[DocumentStore, Depends(get_store)]) -> HealthResponse:
    try:
        info = await store.describe_index(settings.document_index)
    except StorageError:
        info = None
    return HealthResponse(
        status="ok" if info is not None else "degraded",
        index=settings.document_index,
    )
