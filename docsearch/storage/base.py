"""Vector index interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Sequence

from docsearch.domain.chunk import Chunk
from docsearch.domain.document import Document
from docsearch.domain.results import IndexStats, ScoredChunk
from docsearch.errors import EmbeddingDimensionMismatchError, IndexWriteError, InvalidInputError
from docsearch.storage.filters import SearchFilter
from docsearch.storage.similarity import Metric


class VectorIndex(ABC):
    """Persistent mapping of chunk identity to (vector, metadata).

    All writers go through ``upsert_chunks`` and ``delete_document``; both
    are atomic, so readers never observe a partial chunk set.
    """

    def __init__(self, dimension: int, metric: Metric | str = Metric.COSINE):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension
        self._metric = Metric.parse(metric)

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def metric(self) -> Metric:
        return self._metric

    async def initialize(self) -> None:
        """Open connections and create storage structures."""

    async def close(self) -> None:
        """Release connections."""

    async def __aenter__(self) -> "VectorIndex":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @abstractmethod
    async def upsert_chunks(self, document: Document, chunks: Sequence[Chunk]) -> int:
        """Replace the document row and its full chunk set atomically.

        Returns:
            Number of chunks that were replaced

        Raises:
            IndexWriteError: If the write fails; nothing is changed
            EmbeddingDimensionMismatchError: If a chunk vector has the wrong length
        """

    @abstractmethod
    async def delete_document(self, doc_id: str) -> int:
        """Remove a document and all its chunks atomically.

        Returns:
            Number of chunks removed

        Raises:
            NotFoundError: If the document does not exist
        """

    @abstractmethod
    async def search(
        self,
        query_vector: Sequence[float],
        limit: int = 10,
        threshold: float | None = None,
        metric: Metric | str | None = None,
        filters: SearchFilter | None = None,
    ) -> List[ScoredChunk]:
        """Return at most ``limit`` hits passing ``threshold``, best first.

        Cosine hits need similarity >= threshold; L2 hits need distance
        <= threshold. Ties keep chunk insertion order. Filters are applied
        before ranking.
        """

    @abstractmethod
    async def get_document(self, doc_id: str) -> Document | None:
        ...

    @abstractmethod
    async def get_document_by_path(self, path: str) -> Document | None:
        ...

    @abstractmethod
    async def get_documents(self, doc_ids: Iterable[str]) -> dict[str, Document]:
        ...

    @abstractmethod
    async def list_documents(
        self,
        limit: int = 50,
        offset: int = 0,
        filters: SearchFilter | None = None,
    ) -> List[Document]:
        """List documents, most recently updated first."""

    @abstractmethod
    async def get_chunks(self, doc_id: str) -> List[Chunk]:
        """Chunks of a document ordered by chunk_index."""

    @abstractmethod
    async def get_chunk(self, chunk_id: str) -> Chunk | None:
        ...

    @abstractmethod
    async def stats(self) -> IndexStats:
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Remove every document and chunk."""

    async def reset(self) -> None:
        """Recreate storage from scratch; backends without a schema just clear."""
        await self.clear()

    def _check_chunk_set(self, document: Document, chunks: Sequence[Chunk]) -> None:
        """Validate a chunk set before any write starts."""
        for position, chunk in enumerate(chunks):
            if chunk.doc_id != document.id:
                raise IndexWriteError(
                    f"Chunk {chunk.chunk_id} belongs to {chunk.doc_id}, not {document.id}"
                )
            if chunk.chunk_index != position:
                raise IndexWriteError(
                    f"Chunk ordinals for {document.id} must be contiguous from 0; "
                    f"got {chunk.chunk_index} at position {position}"
                )
            if chunk.embedding is None:
                raise IndexWriteError(f"Chunk {chunk.chunk_index} of {document.id} has no embedding")
            if len(chunk.embedding) != self._dimension:
                raise EmbeddingDimensionMismatchError(self._dimension, len(chunk.embedding))

    def _check_query(self, query_vector: Sequence[float], limit: int) -> None:
        if limit < 1:
            raise InvalidInputError("limit must be at least 1")
        if len(query_vector) != self._dimension:
            raise EmbeddingDimensionMismatchError(self._dimension, len(query_vector))
