"""Domain entities for the document search core.

This module contains immutable data structures that represent documents,
chunks and the transient results built from them.
"""

from docsearch.domain.document import (
    Document,
    DocumentTags,
    DocumentSource,
    FilePath,
    DirectoryPath,
    InlineText,
    validate_metadata,
    source_from_path,
)
from docsearch.domain.chunk import Chunk, make_chunk_id
from docsearch.domain.state import IndexState
from docsearch.domain.results import (
    ScoredChunk,
    SearchResult,
    Citation,
    ContextBundle,
    IndexResult,
    IndexStats,
)

__all__ = [
    "Document",
    "DocumentTags",
    "DocumentSource",
    "FilePath",
    "DirectoryPath",
    "InlineText",
    "validate_metadata",
    "source_from_path",
    "Chunk",
    "make_chunk_id",
    "IndexState",
    "ScoredChunk",
    "SearchResult",
    "Citation",
    "ContextBundle",
    "IndexResult",
    "IndexStats",
]
