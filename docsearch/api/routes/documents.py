"""Document ingestion and listing endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from docsearch.api.dependencies import get_service
from docsearch.api.schemas import (
    DeleteResponse,
    DocumentListResponse,
    DocumentModel,
    IndexRequest,
    IndexResponse,
)
from docsearch.service import DocumentSearchService

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    document_type: Optional[str] = None,
    category: Optional[str] = None,
    language: Optional[str] = None,
    file_type: Optional[str] = None,
    service: DocumentSearchService = Depends(get_service),
) -> DocumentListResponse:
    """List indexed documents, most recently updated first."""
    filters = {
        key: value
        for key, value in {
            "document_type": document_type,
            "category": category,
            "language": language,
            "file_type": file_type,
        }.items()
        if value
    }
    documents = await service.list_documents(limit=limit, offset=offset, filters=filters or None)
    return DocumentListResponse(
        documents=[DocumentModel(**d.to_dict()) for d in documents],
        count=len(documents),
        limit=limit,
        offset=offset,
    )


@router.get("/{doc_id}", response_model=DocumentModel)
async def get_document(
    doc_id: str,
    service: DocumentSearchService = Depends(get_service),
) -> DocumentModel:
    """Get a single document."""
    document = await service.get_document(doc_id)
    return DocumentModel(**document.to_dict())


@router.post("/index", response_model=IndexResponse)
async def index_documents(
    request: IndexRequest,
    service: DocumentSearchService = Depends(get_service),
) -> IndexResponse:
    """Index a file, a directory, or inline text.

    Directory runs report per-document failures in ``errors``; the request
    itself only fails for invalid input.
    """
    if request.text is not None:
        result = await service.index_text(
            request.text,
            title=request.title,
            metadata=request.metadata,
            force=request.force,
        )
        report = {
            "total": 1,
            "indexed": int(result.status == "indexed"),
            "skipped": int(result.status == "skipped"),
            "failed": 0,
            "chunks_added": result.chunks_added,
            "chunks_deleted": result.chunks_deleted,
            "errors": [],
            "results": [result],
        }
    else:
        report = await service.index_document(request.path, force=request.force)

    return IndexResponse(
        **{key: value for key, value in report.items() if key != "results"},
        results=[r.to_dict() for r in report["results"]],
    )


@router.delete("/{doc_id}", response_model=DeleteResponse)
async def delete_document(
    doc_id: str,
    service: DocumentSearchService = Depends(get_service),
) -> DeleteResponse:
    """Delete a document and all its chunks."""
    removed = await service.remove_document(doc_id)
    return DeleteResponse(doc_id=doc_id, chunks_deleted=removed)
