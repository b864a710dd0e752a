"""Transient result types produced per query or per indexing run."""

from __future__ import annotations

from dataclasses import dataclass, asdict, field

from docsearch.domain.state import IndexState


@dataclass(frozen=True, slots=True)
class ScoredChunk:
    """Raw hit returned by a vector index.

    Attributes:
        chunk_id: Chunk identifier
        doc_id: Owning document identifier
        chunk_index: Position within the document
        content: Chunk text
        score: Cosine similarity, or L2 distance for the l2 metric
    """

    chunk_id: str
    doc_id: str
    chunk_index: int
    content: str
    score: float


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A ranked chunk with its document's display metadata."""

    document_id: str
    chunk_id: str
    document_path: str
    document_title: str
    content: str
    score: float
    chunk_index: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class Citation:
    """Source attribution for one chunk in a context bundle."""

    document_id: str
    document_title: str
    document_path: str
    chunk_index: int
    score: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ContextBundle:
    """Concatenated context plus ordered, deduplicated citations.

    Attributes:
        query: Query the context was assembled for
        context: Chunk contents joined in rank order as "[n] content"
        citations: One citation per emitted chunk, in rank order
        max_chunks: Requested chunk budget
        threshold: Similarity threshold used
    """

    query: str
    context: str
    citations: list[Citation] = field(default_factory=list)
    max_chunks: int = 5
    threshold: float = 0.7

    @property
    def is_empty(self) -> bool:
        return not self.citations

    @property
    def document_ids(self) -> list[str]:
        """Distinct cited document ids, in first-cited order."""
        return list(dict.fromkeys(c.document_id for c in self.citations))

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "context": self.context,
            "citations": [c.to_dict() for c in self.citations],
            "max_chunks": self.max_chunks,
            "threshold": self.threshold,
        }


@dataclass(frozen=True, slots=True)
class IndexResult:
    """Per-document outcome of an indexing request."""

    doc_id: str
    path: str
    title: str
    file_type: str
    file_size: int
    status: str
    state: IndexState | None
    chunks_added: int = 0
    chunks_deleted: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value if self.state else None
        return data


@dataclass(frozen=True, slots=True)
class IndexStats:
    """Aggregate counts over the whole index."""

    total_documents: int = 0
    total_chunks: int = 0
    average_chunk_size: float = 0.0
    documents_with_embeddings: int = 0
    total_size: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)
    by_language: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)
