"""Diagnostic endpoints."""

from fastapi import APIRouter, Depends

from docsearch.api.dependencies import get_service
from docsearch.api.schemas import EmbeddingTestResponse, StatsResponse
from docsearch.service import DocumentSearchService

router = APIRouter(tags=["diagnostics"])


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@router.get("/stats", response_model=StatsResponse)
async def stats(service: DocumentSearchService = Depends(get_service)) -> StatsResponse:
    """Aggregate index statistics."""
    index_stats = await service.stats()
    return StatsResponse(**index_stats.to_dict())


@router.get("/embedding/test", response_model=EmbeddingTestResponse)
async def test_embedding(
    service: DocumentSearchService = Depends(get_service),
) -> EmbeddingTestResponse:
    """Check the embedding provider and report its vector dimension."""
    report = await service.test_embedding_service()
    return EmbeddingTestResponse(**report)
