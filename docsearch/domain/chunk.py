"""Chunk entity for the document search core."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, asdict, field, replace
from typing import Sequence

Vector = tuple[float, ...]


def make_chunk_id(doc_id: str, chunk_index: int, content: str) -> str:
    """Build a stable chunk identifier from its owner, position and text."""
    content_hash = hashlib.sha256(content.encode("utf-8")).hexdigest()
    return hashlib.sha256(f"{doc_id}:{chunk_index}:{content_hash}".encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class Chunk:
    """Immutable chunk entity.

    Represents a bounded slice of a document's text, the unit of embedding
    and retrieval.

    Attributes:
        chunk_id: Stable unique identifier (SHA-256 hash)
        doc_id: Owning document identifier
        chunk_index: 0-based position within the document
        content: Chunk text content
        token_count: Number of tokens in content
        embedding: Vector for content, None until embedded
        metadata: Optional annotations (e.g. keywords)
    """

    chunk_id: str
    doc_id: str
    chunk_index: int
    content: str
    token_count: int = 0
    embedding: Vector | None = None
    metadata: dict = field(default_factory=dict)

    def with_embedding(self, embedding: Sequence[float]) -> "Chunk":
        """Return a copy of this chunk carrying the given vector."""
        return replace(self, embedding=tuple(float(x) for x in embedding))

    def to_dict(self, include_embedding: bool = False) -> dict:
        """Convert chunk to dictionary for serialization."""
        data = asdict(self)
        if include_embedding:
            data["embedding"] = list(self.embedding) if self.embedding is not None else None
        else:
            data.pop("embedding")
        return data
