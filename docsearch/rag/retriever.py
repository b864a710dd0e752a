"""Retrieval orchestration for RAG consumers."""

from __future__ import annotations

import logging
import math
from typing import List, Mapping, Sequence

from docsearch.domain.results import ContextBundle, ScoredChunk, SearchResult
from docsearch.embedding.client import EmbeddingClient
from docsearch.errors import InvalidInputError, NotFoundError
from docsearch.rag.context_builder import ContextBuilder
from docsearch.storage.base import VectorIndex
from docsearch.storage.filters import SearchFilter
from docsearch.storage.similarity import Metric

logger = logging.getLogger(__name__)

# Raw search casts a wide net; context assembly only keeps close matches.
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SEARCH_THRESHOLD = 0.1
DEFAULT_CONTEXT_MAX_CHUNKS = 5
DEFAULT_CONTEXT_THRESHOLD = 0.7
DEFAULT_SIMILAR_LIMIT = 5
DEFAULT_SIMILAR_THRESHOLD = 0.5
DEFAULT_WITHIN_DOCUMENT_LIMIT = 5


def _check_query(query) -> str:
    if not isinstance(query, str) or not query.strip():
        raise InvalidInputError("query must not be empty")
    return query.strip()


def _check_limit(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidInputError(f"{name} must be a positive integer")
    return value


def _check_threshold(value: float | None) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidInputError("threshold must be a finite number")
    return float(value)


def _as_filter(filters: SearchFilter | Mapping | None) -> SearchFilter | None:
    if filters is None or isinstance(filters, SearchFilter):
        return filters
    if isinstance(filters, Mapping):
        return SearchFilter.from_dict(dict(filters))
    raise InvalidInputError("filters must be a mapping")


class RetrievalService:
    """Semantic search and context assembly over a vector index.

    Failures of the embedding provider or the index propagate as typed
    errors. An empty result always means nothing matched.
    """

    def __init__(
        self,
        index: VectorIndex,
        embedder: EmbeddingClient,
        context_builder: ContextBuilder | None = None,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        search_threshold: float = DEFAULT_SEARCH_THRESHOLD,
        context_max_chunks: int = DEFAULT_CONTEXT_MAX_CHUNKS,
        context_threshold: float = DEFAULT_CONTEXT_THRESHOLD,
    ):
        """Initialize RetrievalService.

        Args:
            index: Vector index to search
            embedder: Embedding client for query vectors
            context_builder: Builder for context bundles
            search_limit: Default result count for search
            search_threshold: Default minimum similarity for search
            context_max_chunks: Default chunk budget for get_context
            context_threshold: Default minimum similarity for get_context
        """
        self._index = index
        self._embedder = embedder
        self._context_builder = context_builder or ContextBuilder()
        self.search_limit = search_limit
        self.search_threshold = search_threshold
        self.context_max_chunks = context_max_chunks
        self.context_threshold = context_threshold

    async def search(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
        filters: SearchFilter | Mapping | None = None,
        metric: Metric | str | None = None,
    ) -> List[SearchResult]:
        """Search for chunks similar to a query.

        Args:
            query: Free-text query
            limit: Maximum number of results (default 10)
            threshold: Minimum cosine similarity, or maximum L2 distance (default 0.1)
            filters: Metadata/keyword filter applied before ranking
            metric: Similarity metric, the index default when None

        Returns:
            Results ordered best first

        Raises:
            InvalidInputError: If query, limit, threshold or filters are invalid
            EmbeddingUnavailableError: If the query cannot be embedded
            EmbeddingDimensionMismatchError: If the query vector has the wrong length
        """
        query = _check_query(query)
        limit = _check_limit(self.search_limit if limit is None else limit, "limit")
        threshold = _check_threshold(self.search_threshold if threshold is None else threshold)
        search_filter = _as_filter(filters)
        metric = Metric.parse(metric, self._index.metric)

        vector = await self._embedder.embed(query)
        hits = await self._index.search(
            vector, limit=limit, threshold=threshold, metric=metric, filters=search_filter
        )
        results = await self._to_results(hits)

        logger.info(
            "Search for %r returned %d results (threshold %s, limit %d)",
            query[:80],
            len(results),
            threshold,
            limit,
        )
        return results

    async def get_context(
        self,
        query: str,
        max_chunks: int | None = None,
        threshold: float | None = None,
        filters: SearchFilter | Mapping | None = None,
    ) -> ContextBundle:
        """Assemble a context string with citations for a query.

        Args:
            query: Free-text query
            max_chunks: Maximum chunks in the context (default 5)
            threshold: Minimum similarity (default 0.7)
            filters: Metadata/keyword filter applied before ranking

        Returns:
            ContextBundle; ``context`` is empty only when nothing matched
        """
        max_chunks = _check_limit(
            self.context_max_chunks if max_chunks is None else max_chunks, "max_chunks"
        )
        threshold = self.context_threshold if threshold is None else threshold
        results = await self.search(query, limit=max_chunks, threshold=threshold, filters=filters)

        bundle = self._context_builder.build(
            query.strip(), results, max_chunks=max_chunks, threshold=threshold
        )
        if results:
            logger.info(
                "Context for %r built from %d chunks of %d documents",
                query[:80],
                len(bundle.citations),
                len(bundle.document_ids),
            )
        return bundle

    async def find_similar_chunks(
        self,
        chunk_id: str,
        limit: int = DEFAULT_SIMILAR_LIMIT,
        threshold: float = DEFAULT_SIMILAR_THRESHOLD,
    ) -> List[SearchResult]:
        """Find chunks similar to a stored chunk, excluding the chunk itself.

        Raises:
            NotFoundError: If the chunk does not exist
        """
        limit = _check_limit(limit, "limit")
        threshold = _check_threshold(threshold)
        chunk = await self._index.get_chunk(chunk_id)
        if chunk is None or chunk.embedding is None:
            raise NotFoundError("Chunk", chunk_id)

        hits = await self._index.search(chunk.embedding, limit=limit + 1, threshold=threshold)
        hits = [hit for hit in hits if hit.chunk_id != chunk_id][:limit]
        return await self._to_results(hits)

    async def search_within_document(
        self,
        doc_id: str,
        query: str,
        limit: int = DEFAULT_WITHIN_DOCUMENT_LIMIT,
    ) -> List[SearchResult]:
        """Rank the chunks of a single document against a query.

        Raises:
            NotFoundError: If the document does not exist
        """
        query = _check_query(query)
        limit = _check_limit(limit, "limit")
        if await self._index.get_document(doc_id) is None:
            raise NotFoundError("Document", doc_id)

        vector = await self._embedder.embed(query)
        hits = await self._index.search(
            vector, limit=limit, filters=SearchFilter(document_ids=frozenset({doc_id}))
        )
        return await self._to_results(hits)

    async def get_document_context(self, doc_id: str) -> dict:
        """Return a document with its chunks in order.

        Raises:
            NotFoundError: If the document does not exist
        """
        document = await self._index.get_document(doc_id)
        if document is None:
            raise NotFoundError("Document", doc_id)
        chunks = await self._index.get_chunks(doc_id)
        return {"document": document, "chunks": chunks}

    async def _to_results(self, hits: Sequence[ScoredChunk]) -> List[SearchResult]:
        """Attach document title and path to raw hits, keeping rank order."""
        if not hits:
            return []
        documents = await self._index.get_documents({hit.doc_id for hit in hits})

        results = []
        for hit in hits:
            document = documents.get(hit.doc_id)
            if document is None:
                # Deleted between search and lookup.
                continue
            results.append(
                SearchResult(
                    document_id=hit.doc_id,
                    chunk_id=hit.chunk_id,
                    document_path=document.path,
                    document_title=document.title or document.path,
                    content=hit.content,
                    score=hit.score,
                    chunk_index=hit.chunk_index,
                )
            )
        return results
