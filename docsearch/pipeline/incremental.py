"""Incremental indexing with checksum and signature comparison."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import AsyncIterator

from docsearch.domain.document import Document
from docsearch.domain.results import IndexResult
from docsearch.domain.state import IndexState
from docsearch.embedding.client import EmbeddingClient
from docsearch.errors import DocSearchError
from docsearch.pipeline.chunk import ChunkingStrategy
from docsearch.pipeline.classify import classify
from docsearch.pipeline.extract import ExtractedDocument
from docsearch.storage.base import VectorIndex

logger = logging.getLogger(__name__)


@dataclass
class _DocumentLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class IndexingPipeline:
    """Chunk, embed and persist one document at a time.

    Runs for the same document id serialize on a per-id lock; runs for
    different ids proceed in parallel. A lock lives only while some run
    holds or waits for it. The chunk set is written in a single
    ``upsert_chunks`` call, so a failed, cancelled or timed out run leaves
    the previously committed chunks untouched.
    """

    def __init__(
        self,
        index: VectorIndex,
        embedder: EmbeddingClient,
        chunker: ChunkingStrategy,
        signature: str,
        timeout_seconds: float | None = None,
    ):
        """Initialize the pipeline.

        Args:
            index: Vector index to persist into
            embedder: Embedding client for chunk vectors
            chunker: Chunking strategy
            signature: Index signature of the current chunking/embedding settings
            timeout_seconds: Optional limit for a single document run
        """
        self._index = index
        self._embedder = embedder
        self._chunker = chunker
        self._signature = signature
        self._timeout = timeout_seconds
        self._locks: dict[str, _DocumentLock] = {}
        self._states: dict[str, IndexState] = {}

    @property
    def signature(self) -> str:
        return self._signature

    @property
    def timeout_seconds(self) -> float | None:
        return self._timeout

    def state(self, doc_id: str) -> IndexState | None:
        """Last known state of a document in this process."""
        return self._states.get(doc_id)

    def forget_states(self) -> None:
        """Drop finished states after the index itself was emptied.

        Runs still in progress keep their state so they can finish.
        """
        self._states = {d: s for d, s in self._states.items() if not s.is_terminal}

    @asynccontextmanager
    async def _document_lock(self, doc_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(doc_id)
        if entry is None:
            entry = self._locks[doc_id] = _DocumentLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[doc_id]

    def _advance(self, doc_id: str, target: IndexState) -> None:
        current = self._states.get(doc_id)
        if current is None:
            if target is not IndexState.PENDING:
                raise ValueError(f"Index run for {doc_id} must start in pending state")
            self._states[doc_id] = target
            return
        self._states[doc_id] = current.transition(target)

    async def index_document(self, extracted: ExtractedDocument, force: bool = False) -> IndexResult:
        """Index a document with incremental logic.

        Unchanged documents (same checksum and signature) are skipped unless
        ``force`` is set.

        Raises:
            DocSearchError: Typed failure; the document is left in failed state
            asyncio.CancelledError: The prior state is restored
            asyncio.TimeoutError: The prior state is restored
        """
        doc_id = extracted.document.id

        async with self._document_lock(doc_id):
            previous = self._states.get(doc_id)
            self._advance(doc_id, IndexState.PENDING)
            try:
                if self._timeout:
                    return await asyncio.wait_for(self._run(extracted, force), self._timeout)
                return await self._run(extracted, force)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                logger.warning("Indexing of %s interrupted; committed state kept", doc_id)
                if previous is None:
                    self._states.pop(doc_id, None)
                else:
                    self._states[doc_id] = previous
                raise
            except DocSearchError as e:
                self._states[doc_id] = IndexState.FAILED
                logger.error("Failed to index %s: %s", extracted.document.path, e.message)
                raise
            except Exception:
                self._states[doc_id] = IndexState.FAILED
                logger.exception("Unexpected error indexing %s", extracted.document.path)
                raise

    async def _run(self, extracted: ExtractedDocument, force: bool) -> IndexResult:
        document = extracted.document
        doc_id = document.id

        existing = await self._index.get_document(doc_id)
        if (
            not force
            and existing is not None
            and existing.checksum == document.checksum
            and existing.signature == self._signature
        ):
            self._advance(doc_id, IndexState.INDEXED)
            logger.debug("Skipping unchanged document %s", document.path)
            return self._result(existing, "skipped")

        self._advance(doc_id, IndexState.CHUNKING)
        chunks = self._chunker.split(doc_id, extracted.text)
        tags = classify(document.path, extracted.text, document.file_size, extracted.modified_at)
        document = replace(document, signature=self._signature, tags=tags)

        if chunks:
            self._advance(doc_id, IndexState.EMBEDDING)
            vectors = await self._embedder.embed_batch([chunk.content for chunk in chunks])
            chunks = [chunk.with_embedding(vector) for chunk, vector in zip(chunks, vectors)]

        self._advance(doc_id, IndexState.PERSISTING)
        deleted = await self._index.upsert_chunks(document, chunks)
        self._advance(doc_id, IndexState.INDEXED)

        logger.info(
            "Indexed %s: %d chunks added, %d replaced", document.path, len(chunks), deleted
        )
        return self._result(document, "indexed", chunks_added=len(chunks), chunks_deleted=deleted)

    def _result(self, document: Document, status: str, **counts) -> IndexResult:
        return IndexResult(
            doc_id=document.id,
            path=document.path,
            title=document.title,
            file_type=document.file_type,
            file_size=document.file_size,
            status=status,
            state=self._states[document.id],
            **counts,
        )

    async def remove_document(self, doc_id: str) -> int:
        """Delete a document and its chunks under the document's lock.

        Returns:
            Number of chunks removed

        Raises:
            NotFoundError: If the document does not exist
        """
        async with self._document_lock(doc_id):
            removed = await self._index.delete_document(doc_id)
            self._states.pop(doc_id, None)
        logger.info("Removed document %s (%d chunks)", doc_id, removed)
        return removed
