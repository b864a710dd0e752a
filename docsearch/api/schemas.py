"""Pydantic schemas for API request/response models."""

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

MetadataValue = Union[str, int, float, bool, None, List[str]]


# ========== Request Schemas ==========


class SearchFilterModel(BaseModel):
    """Filter applied before vector ranking."""

    document_ids: Optional[List[str]] = Field(None, description="Restrict to these documents")
    document_type: Optional[str] = Field(None, description="Classified document type")
    category: Optional[str] = Field(None, description="Classified category")
    language: Optional[str] = Field(None, description="Detected language code")
    file_type: Optional[str] = Field(None, description="File extension without dot")
    keywords: List[str] = Field(
        default_factory=list, description="Every keyword must appear in the chunk"
    )
    metadata: Dict[str, MetadataValue] = Field(
        default_factory=dict, description="Metadata containment match"
    )

    def to_filter_dict(self) -> dict:
        return self.model_dump(exclude_none=True, exclude_defaults=True)


class SearchRequest(BaseModel):
    """Request model for /search endpoint."""

    query: str = Field(..., description="Search query")
    limit: Optional[int] = Field(
        None, ge=1, le=100, description="Number of results to return (default: 10)"
    )
    threshold: Optional[float] = Field(
        None, description="Minimum similarity, or maximum distance for l2 (default: 0.1)"
    )
    metric: Optional[Literal["cosine", "l2"]] = Field(None, description="Similarity metric")
    filters: Optional[SearchFilterModel] = Field(None, description="Hybrid search filter")


class ContextRequest(BaseModel):
    """Request model for /context endpoint."""

    query: str = Field(..., description="Query to assemble context for")
    max_chunks: Optional[int] = Field(
        None, ge=1, le=50, description="Maximum chunks in the context (default: 5)"
    )
    threshold: Optional[float] = Field(
        None, description="Minimum similarity (default: 0.7)"
    )
    filters: Optional[SearchFilterModel] = Field(None, description="Hybrid search filter")


class IndexRequest(BaseModel):
    """Request model for /documents/index endpoint.

    Exactly one of ``path`` or ``text`` must be given.
    """

    path: Optional[str] = Field(None, description="File or directory to index")
    text: Optional[str] = Field(None, description="Inline text to index")
    title: Optional[str] = Field(None, description="Title for inline text")
    metadata: Dict[str, MetadataValue] = Field(
        default_factory=dict, description="Metadata for inline text"
    )
    force: bool = Field(default=False, description="Re-index unchanged documents")

    @model_validator(mode="after")
    def path_or_text(self) -> "IndexRequest":
        """Validate that exactly one source is given."""
        if (self.path is None) == (self.text is None):
            raise ValueError("provide exactly one of 'path' or 'text'")
        return self


# ========== Response Schemas ==========


class SearchResultModel(BaseModel):
    """Single search result."""

    document_id: str = Field(..., description="Parent document identifier")
    chunk_id: str = Field(..., description="Unique chunk identifier")
    document_path: str = Field(..., description="Document path")
    document_title: str = Field(..., description="Document title")
    content: str = Field(..., description="Chunk content")
    score: float = Field(..., description="Similarity score (distance for l2)")
    chunk_index: int = Field(..., description="Chunk index within document")


class SearchResponse(BaseModel):
    """Response model for /search endpoint."""

    query: str
    results: List[SearchResultModel] = Field(default_factory=list)
    count: int = Field(..., description="Number of results")
    took_ms: int = Field(..., description="Search latency in milliseconds")


class CitationModel(BaseModel):
    """Citation metadata for a source chunk."""

    document_id: str
    document_title: str
    document_path: str
    chunk_index: int
    score: float


class ContextResponse(BaseModel):
    """Response model for /context endpoint."""

    query: str
    context: str = Field(..., description="Chunks joined as '[n] content'")
    citations: List[CitationModel] = Field(default_factory=list)
    max_chunks: int
    threshold: float


class DocumentTagsModel(BaseModel):
    """Classification tags."""

    document_type: str
    category: str
    language: str
    keywords: List[str] = Field(default_factory=list)
    summary: str = ""
    importance: float = 1.0
    extracted_data: Dict[str, List[str]] = Field(default_factory=dict)


class DocumentModel(BaseModel):
    """Indexed document."""

    id: str
    path: str
    title: str
    file_type: str
    file_size: int
    checksum: str
    signature: str
    metadata: Dict[str, MetadataValue] = Field(default_factory=dict)
    tags: DocumentTagsModel
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DocumentListResponse(BaseModel):
    """Response model for GET /documents."""

    documents: List[DocumentModel] = Field(default_factory=list)
    count: int
    limit: int
    offset: int


class IndexResultModel(BaseModel):
    """Per-document indexing outcome."""

    doc_id: str
    path: str
    title: str
    file_type: str
    file_size: int
    status: Literal["indexed", "skipped", "failed"]
    state: Optional[str] = None
    chunks_added: int = 0
    chunks_deleted: int = 0
    error: Optional[str] = None


class IndexErrorModel(BaseModel):
    doc_id: str
    path: str
    error: str


class IndexResponse(BaseModel):
    """Response model for /documents/index endpoint."""

    total: int
    indexed: int
    skipped: int
    failed: int
    chunks_added: int
    chunks_deleted: int
    errors: List[IndexErrorModel] = Field(default_factory=list)
    results: List[IndexResultModel] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    """Response model for DELETE /documents/{id}."""

    doc_id: str
    chunks_deleted: int


class StatsResponse(BaseModel):
    """Aggregate index statistics."""

    total_documents: int
    total_chunks: int
    average_chunk_size: float = Field(..., description="Average tokens per chunk")
    documents_with_embeddings: int
    total_size: int = Field(..., description="Total source size in bytes")
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_language: Dict[str, int] = Field(default_factory=dict)


class EmbeddingTestResponse(BaseModel):
    """Embedding connectivity report."""

    ok: bool
    provider: str
    model: str
    expected_dimension: int
    actual_dimension: Optional[int] = None
    latency_ms: Optional[int] = None
    error: Optional[str] = None


# ========== Error Schemas ==========


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    cause: Optional[str] = Field(None, description="Underlying error")
