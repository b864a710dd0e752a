"""Document search facade: ingestion, query and diagnostics in one place."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Mapping

import httpx

from docsearch.domain.document import Document, InlineText, source_from_path
from docsearch.domain.results import ContextBundle, IndexResult, IndexStats, SearchResult
from docsearch.embedding.client import EmbeddingClient, create_embedding_client
from docsearch.errors import InvalidInputError, NotFoundError
from docsearch.pipeline.chunk import ChunkingStrategy
from docsearch.pipeline.config import Config
from docsearch.pipeline.extract import TextExtractor, document_id_for_path
from docsearch.pipeline.index import IndexBuilder
from docsearch.pipeline.incremental import IndexingPipeline
from docsearch.pipeline.index_signature import compute_signature
from docsearch.rag.context_builder import ContextBuilder
from docsearch.rag.retriever import RetrievalService
from docsearch.storage.base import VectorIndex
from docsearch.storage.filters import SearchFilter
from docsearch.storage.memory import InMemoryVectorIndex
from docsearch.storage.similarity import Metric
from docsearch.storage.vectorstore import PgVectorIndex

logger = logging.getLogger(__name__)


class DocumentSearchService:
    """Entry point for the chat/orchestration layer.

    Components are passed in explicitly; ``create_service`` wires them from
    a ``Config``.
    """

    def __init__(
        self,
        index: VectorIndex,
        embedder: EmbeddingClient,
        pipeline: IndexingPipeline,
        builder: IndexBuilder,
        retriever: RetrievalService,
        extractor: TextExtractor,
        docs_dir: str | Path | None = None,
    ):
        self._index = index
        self._embedder = embedder
        self._pipeline = pipeline
        self._builder = builder
        self._retriever = retriever
        self._extractor = extractor
        self._docs_dir = Path(docs_dir).expanduser() if docs_dir else None

    @property
    def index(self) -> VectorIndex:
        return self._index

    @property
    def pipeline(self) -> IndexingPipeline:
        return self._pipeline

    @property
    def retriever(self) -> RetrievalService:
        return self._retriever

    @property
    def extractor(self) -> TextExtractor:
        return self._extractor

    @property
    def docs_dir(self) -> Path | None:
        """Directory watched and rebuilt when no explicit path is given."""
        return self._docs_dir

    async def initialize(self) -> None:
        """Open storage connections."""
        await self._index.initialize()

    async def close(self) -> None:
        """Close storage and network connections."""
        try:
            await self._index.close()
        finally:
            await self._embedder.aclose()

    async def __aenter__(self) -> "DocumentSearchService":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # Ingestion

    async def index_document(self, path: str | Path, force: bool = False) -> dict:
        """Index a file or a directory of files.

        Returns:
            Build statistics with one IndexResult per document under ``results``

        Raises:
            InvalidInputError: If the path is empty or does not exist
        """
        return await self._builder.index_path(path, force=force)

    async def index_text(
        self,
        text: str,
        title: str | None = None,
        metadata: Mapping | None = None,
        force: bool = False,
    ) -> IndexResult:
        """Index caller-supplied text as a single document.

        Raises:
            InvalidInputError: If the text is empty or metadata is malformed
            EmbeddingUnavailableError: If chunks cannot be embedded
            EmbeddingDimensionMismatchError: If vectors have the wrong length
            IndexWriteError: If persisting fails
        """
        extracted = self._extractor.extract_inline(
            InlineText(text=text, name=title, metadata=dict(metadata or {}))
        )
        return await self._pipeline.index_document(extracted, force=force)

    async def remove_document(self, doc_id: str) -> int:
        """Delete a document and its chunks; returns the removed chunk count."""
        return await self._pipeline.remove_document(doc_id)

    async def remove_path(self, path: str | Path) -> int:
        """Delete the document that was indexed from a file path.

        The file itself may already be gone.

        Raises:
            NotFoundError: If no document was indexed from that path
        """
        return await self._pipeline.remove_document(document_id_for_path(Path(path)))

    async def clear(self, reset: bool = False) -> dict:
        """Delete every document and chunk.

        With ``reset`` the storage is recreated instead, which also works for
        an index built for another embedding dimension. Counts are then
        unknown and reported as None.
        """
        if reset:
            await self._index.reset()
            counts = {"documents_deleted": None, "chunks_deleted": None}
        else:
            before = await self._index.stats()
            await self._index.clear()
            counts = {
                "documents_deleted": before.total_documents,
                "chunks_deleted": before.total_chunks,
            }
        self._pipeline.forget_states()
        logger.warning("Index cleared (reset=%s)", reset)
        return {"reset": reset, **counts}

    async def reindex(self, path: str | Path | None = None) -> dict:
        """Clear the index and rebuild it from ``path`` or ``docs_dir``.

        The path is checked before anything is deleted.

        Raises:
            InvalidInputError: If no path is known or it does not exist
        """
        target = path or self._docs_dir
        if target is None:
            raise InvalidInputError("no path given and no documents directory configured")
        source = source_from_path(target)

        cleared = await self.clear()
        stats = await self._builder.index_source(source, force=True)
        stats["cleared"] = cleared
        return stats

    # Query

    async def search(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
        filters: SearchFilter | Mapping | None = None,
        metric: Metric | str | None = None,
    ) -> List[SearchResult]:
        return await self._retriever.search(
            query, limit=limit, threshold=threshold, filters=filters, metric=metric
        )

    async def get_context(
        self,
        query: str,
        max_chunks: int | None = None,
        threshold: float | None = None,
        filters: SearchFilter | Mapping | None = None,
    ) -> ContextBundle:
        return await self._retriever.get_context(
            query, max_chunks=max_chunks, threshold=threshold, filters=filters
        )

    async def find_similar_chunks(self, chunk_id: str, limit: int = 5) -> List[SearchResult]:
        return await self._retriever.find_similar_chunks(chunk_id, limit=limit)

    async def search_within_document(
        self, doc_id: str, query: str, limit: int = 5
    ) -> List[SearchResult]:
        return await self._retriever.search_within_document(doc_id, query, limit=limit)

    async def get_document_context(self, doc_id: str) -> dict:
        return await self._retriever.get_document_context(doc_id)

    # Listing

    async def list_documents(
        self,
        limit: int = 50,
        offset: int = 0,
        filters: SearchFilter | Mapping | None = None,
    ) -> List[Document]:
        if filters is not None and not isinstance(filters, SearchFilter):
            filters = SearchFilter.from_dict(dict(filters))
        return await self._index.list_documents(limit=limit, offset=offset, filters=filters)

    async def get_document(self, doc_id: str) -> Document:
        """Fetch a document.

        Raises:
            NotFoundError: If the document does not exist
        """
        document = await self._index.get_document(doc_id)
        if document is None:
            raise NotFoundError("Document", doc_id)
        return document

    # Diagnostics

    async def stats(self) -> IndexStats:
        return await self._index.stats()

    async def test_embedding_service(self) -> dict:
        return await self._embedder.test_connection()


def create_index(config: Config) -> VectorIndex:
    """Build the configured vector index backend."""
    if config.storage.backend == "memory":
        return InMemoryVectorIndex(config.embedding.dimensions, config.storage.metric)
    return PgVectorIndex(
        database_url=config.get_database_url(),
        dimension=config.embedding.dimensions,
        metric=config.storage.metric,
        table_prefix=config.storage.table_prefix,
        min_size=config.storage.pool_min_size,
        max_size=config.storage.pool_max_size,
    )


def create_service(
    config: Config,
    index: VectorIndex | None = None,
    embedder: EmbeddingClient | None = None,
    http_client: httpx.AsyncClient | None = None,
    show_progress: bool = False,
) -> DocumentSearchService:
    """Wire a DocumentSearchService from configuration.

    Args:
        config: Service configuration
        index: Vector index to use instead of the configured backend
        embedder: Embedding client to use instead of the configured provider
        http_client: HTTP client for the configured embedding provider
        show_progress: Show tqdm progress while indexing directories

    Returns:
        Uninitialized service; call ``initialize()`` or use ``async with``
    """
    index = index or create_index(config)
    embedder = embedder or create_embedding_client(config.embedding, http_client=http_client)

    extractor = TextExtractor(config.indexing.supported_extensions)
    pipeline = IndexingPipeline(
        index=index,
        embedder=embedder,
        chunker=ChunkingStrategy(config.chunking),
        signature=compute_signature(config),
        timeout_seconds=config.indexing.timeout_seconds,
    )
    builder = IndexBuilder(
        pipeline,
        extractor,
        concurrency=config.indexing.concurrency,
        show_progress=show_progress,
    )
    retriever = RetrievalService(
        index,
        embedder,
        context_builder=ContextBuilder(config.retrieval.context_max_chars),
        search_limit=config.retrieval.search_limit,
        search_threshold=config.retrieval.search_threshold,
        context_max_chunks=config.retrieval.context_max_chunks,
        context_threshold=config.retrieval.context_threshold,
    )
    logger.debug(
        "Service wired: backend=%s provider=%s model=%s dim=%d",
        config.storage.backend,
        config.embedding.provider,
        config.embedding.model,
        config.embedding.dimensions,
    )
    return DocumentSearchService(
        index,
        embedder,
        pipeline,
        builder,
        retriever,
        extractor,
        docs_dir=config.indexing.docs_dir,
    )
