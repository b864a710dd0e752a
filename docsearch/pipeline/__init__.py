"""Docsearch pipeline components.

The indexing pipeline and builder live in ``docsearch.pipeline.incremental``
and ``docsearch.pipeline.index``; they depend on the embedding package, which
itself imports the configuration from here.
"""

from docsearch.pipeline.config import ChunkingConfig, Config
from docsearch.pipeline.chunk import ChunkingStrategy, chunk_text, count_tokens
from docsearch.pipeline.classify import classify
from docsearch.pipeline.extract import ExtractedDocument, TextExtractor
from docsearch.pipeline.index_signature import compute_signature

__all__ = [
    # Configuration
    "ChunkingConfig",
    "Config",
    # Pipeline components
    "ChunkingStrategy",
    "ExtractedDocument",
    "TextExtractor",
    # Functions
    "chunk_text",
    "classify",
    "compute_signature",
    "count_tokens",
]
