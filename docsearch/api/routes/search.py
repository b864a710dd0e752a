"""Search and context endpoints."""

import time

from fastapi import APIRouter, Depends

from docsearch.api.dependencies import get_service
from docsearch.api.schemas import (
    ContextRequest,
    ContextResponse,
    SearchRequest,
    SearchResponse,
    SearchResultModel,
)
from docsearch.service import DocumentSearchService

router = APIRouter(tags=["search"])


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    service: DocumentSearchService = Depends(get_service),
) -> SearchResponse:
    """Semantic search over indexed chunks.

    Returns chunks ranked by similarity. Typed errors (invalid input,
    embedding failures) are mapped to HTTP codes by the app's error handler,
    so an empty ``results`` list always means nothing matched.
    """
    start_time = time.perf_counter()
    results = await service.search(
        request.query,
        limit=request.limit,
        threshold=request.threshold,
        filters=request.filters.to_filter_dict() if request.filters else None,
        metric=request.metric,
    )
    took_ms = int((time.perf_counter() - start_time) * 1000)

    return SearchResponse(
        query=request.query,
        results=[SearchResultModel(**r.to_dict()) for r in results],
        count=len(results),
        took_ms=took_ms,
    )


@router.post("/context", response_model=ContextResponse)
async def context(
    request: ContextRequest,
    service: DocumentSearchService = Depends(get_service),
) -> ContextResponse:
    """Assemble a context window with citations for a downstream LLM."""
    bundle = await service.get_context(
        request.query,
        max_chunks=request.max_chunks,
        threshold=request.threshold,
        filters=request.filters.to_filter_dict() if request.filters else None,
    )
    return ContextResponse(**bundle.to_dict())
