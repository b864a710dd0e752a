"""Context building for RAG prompts."""

from __future__ import annotations

from typing import List, Sequence

from docsearch.domain.results import Citation, ContextBundle, SearchResult


class ContextBuilder:
    """Builds a context string with citation markers from ranked results.

    Chunks are emitted in rank order as ``[n] content`` and joined by blank
    lines. A chunk already emitted (same document and chunk index) is not
    repeated. With a ``max_chars`` budget, building stops before the first
    chunk that would exceed it; the top chunk is always emitted so that a
    match never turns into an empty context.

    Attributes:
        max_chars: Maximum characters for the context, or None for no limit
    """

    def __init__(self, max_chars: int | None = None):
        """Initialize ContextBuilder.

        Args:
            max_chars: Maximum context length in characters
        """
        if max_chars is not None and max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars

    def build(
        self,
        query: str,
        results: Sequence[SearchResult],
        max_chunks: int = 5,
        threshold: float = 0.7,
    ) -> ContextBundle:
        """Assemble a context bundle.

        Args:
            query: Query the results were retrieved for
            results: Search results, best first
            max_chunks: Maximum number of chunks to emit
            threshold: Threshold the results were retrieved with

        Returns:
            ContextBundle whose citations match the emitted chunks one to one
        """
        parts: List[str] = []
        citations: List[Citation] = []
        seen: set[tuple[str, int]] = set()
        length = 0

        for result in results:
            if len(citations) >= max_chunks:
                break
            key = (result.document_id, result.chunk_index)
            if key in seen:
                continue

            part = f"[{len(citations) + 1}] {result.content.strip()}"
            added = len(part) + (2 if parts else 0)
            if self.max_chars is not None and parts and length + added > self.max_chars:
                break

            seen.add(key)
            parts.append(part)
            length += added
            citations.append(
                Citation(
                    document_id=result.document_id,
                    document_title=result.document_title,
                    document_path=result.document_path,
                    chunk_index=result.chunk_index,
                    score=result.score,
                )
            )

        return ContextBundle(
            query=query,
            context="\n\n".join(parts),
            citations=citations,
            max_chunks=max_chunks,
            threshold=threshold,
        )
