"""In-process vector index with exact search."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, List, Sequence

import numpy as np

from docsearch.domain.chunk import Chunk
from docsearch.domain.document import Document
from docsearch.domain.results import IndexStats, ScoredChunk
from docsearch.errors import NotFoundError
from docsearch.storage.base import VectorIndex
from docsearch.storage.filters import SearchFilter
from docsearch.storage.similarity import (
    Metric,
    as_matrix,
    rank_order,
    score_matrix,
    threshold_mask,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Block:
    """Chunk set of one document with its embeddings stacked row-wise."""

    chunks: tuple[Chunk, ...]
    seqs: np.ndarray
    matrix: np.ndarray

    def __len__(self) -> int:
        return len(self.chunks)


class InMemoryVectorIndex(VectorIndex):
    """Exact nearest-neighbour index kept in process memory.

    Writers serialize on a lock and publish new state by swapping whole
    dictionaries, so a concurrent search sees either the old or the new
    chunk set of a document, never a mix.
    """

    def __init__(self, dimension: int, metric: Metric | str = Metric.COSINE):
        super().__init__(dimension, metric)
        self._documents: dict[str, Document] = {}
        self._blocks: dict[str, _Block] = {}
        self._seq = itertools.count()
        self._lock = asyncio.Lock()

    async def upsert_chunks(self, document: Document, chunks: Sequence[Chunk]) -> int:
        self._check_chunk_set(document, chunks)
        matrix = as_matrix([chunk.embedding for chunk in chunks], self._dimension)

        async with self._lock:
            now = datetime.now(timezone.utc)
            existing = self._documents.get(document.id)
            stored = replace(
                document,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            seqs = np.fromiter((next(self._seq) for _ in chunks), dtype=np.int64, count=len(chunks))
            block = _Block(chunks=tuple(chunks), seqs=seqs, matrix=matrix)
            replaced = len(self._blocks.get(document.id, ()))

            documents = dict(self._documents)
            documents[document.id] = stored
            blocks = dict(self._blocks)
            blocks[document.id] = block

            self._documents, self._blocks = documents, blocks

        logger.debug("Stored %d chunks for %s (replaced %d)", len(chunks), document.id, replaced)
        return replaced

    async def delete_document(self, doc_id: str) -> int:
        async with self._lock:
            if doc_id not in self._documents:
                raise NotFoundError("Document", doc_id)
            removed = len(self._blocks.get(doc_id, ()))

            documents = dict(self._documents)
            del documents[doc_id]
            blocks = dict(self._blocks)
            blocks.pop(doc_id, None)

            self._documents, self._blocks = documents, blocks
        return removed

    async def search(
        self,
        query_vector: Sequence[float],
        limit: int = 10,
        threshold: float | None = None,
        metric: Metric | str | None = None,
        filters: SearchFilter | None = None,
    ) -> List[ScoredChunk]:
        self._check_query(query_vector, limit)
        metric = Metric.parse(metric, self._metric)
        documents, blocks = self._documents, self._blocks

        hits: list[Chunk] = []
        scores: list[np.ndarray] = []
        seqs: list[np.ndarray] = []
        for doc_id, block in blocks.items():
            if not len(block):
                continue
            if filters is not None and not filters.matches_document(documents[doc_id]):
                continue

            block_scores = score_matrix(metric, query_vector, block.matrix)
            keep = threshold_mask(metric, block_scores, threshold)
            if filters is not None and filters.keywords:
                keep &= np.fromiter(
                    (filters.matches_chunk(c.content) for c in block.chunks),
                    dtype=bool,
                    count=len(block),
                )
            rows = np.flatnonzero(keep)
            hits.extend(block.chunks[i] for i in rows)
            scores.append(block_scores[rows])
            seqs.append(block.seqs[rows])

        if not hits:
            return []

        all_scores = np.concatenate(scores)
        order = rank_order(metric, all_scores, np.concatenate(seqs), limit)
        return [
            ScoredChunk(
                chunk_id=hits[i].chunk_id,
                doc_id=hits[i].doc_id,
                chunk_index=hits[i].chunk_index,
                content=hits[i].content,
                score=float(all_scores[i]),
            )
            for i in order
        ]

    async def get_document(self, doc_id: str) -> Document | None:
        return self._documents.get(doc_id)

    async def get_document_by_path(self, path: str) -> Document | None:
        for document in self._documents.values():
            if document.path == path:
                return document
        return None

    async def get_documents(self, doc_ids: Iterable[str]) -> dict[str, Document]:
        documents = self._documents
        return {doc_id: documents[doc_id] for doc_id in doc_ids if doc_id in documents}

    async def list_documents(
        self,
        limit: int = 50,
        offset: int = 0,
        filters: SearchFilter | None = None,
    ) -> List[Document]:
        documents = [
            d for d in self._documents.values()
            if filters is None or filters.matches_document(d)
        ]
        documents.sort(key=lambda d: (d.updated_at, d.id), reverse=True)
        return documents[offset : offset + limit]

    async def get_chunks(self, doc_id: str) -> List[Chunk]:
        block = self._blocks.get(doc_id)
        return list(block.chunks) if block else []

    async def get_chunk(self, chunk_id: str) -> Chunk | None:
        for block in self._blocks.values():
            for chunk in block.chunks:
                if chunk.chunk_id == chunk_id:
                    return chunk
        return None

    async def stats(self) -> IndexStats:
        documents, blocks = self._documents, self._blocks
        all_chunks = [chunk for block in blocks.values() for chunk in block.chunks]
        total_chunks = len(all_chunks)
        average = (
            sum(c.token_count for c in all_chunks) / total_chunks if total_chunks else 0.0
        )
        return IndexStats(
            total_documents=len(documents),
            total_chunks=total_chunks,
            average_chunk_size=round(average, 2),
            documents_with_embeddings=sum(
                1 for block in blocks.values()
                if any(c.embedding is not None for c in block.chunks)
            ),
            total_size=sum(d.file_size for d in documents.values()),
            by_type=dict(Counter(d.tags.document_type for d in documents.values())),
            by_category=dict(Counter(d.tags.category for d in documents.values())),
            by_language=dict(Counter(d.tags.language for d in documents.values())),
        )

    async def clear(self) -> None:
        async with self._lock:
            self._documents, self._blocks = {}, {}
