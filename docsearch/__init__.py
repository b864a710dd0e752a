"""Document retrieval and semantic search core."""

__version__ = "0.1.0"

# Domain entities
from docsearch.domain.document import Document
from docsearch.domain.chunk import Chunk
from docsearch.domain.results import ContextBundle, SearchResult

# Errors
from docsearch.errors import (
    DocSearchError,
    EmbeddingDimensionMismatchError,
    EmbeddingUnavailableError,
    IndexWriteError,
    InvalidInputError,
    NotFoundError,
)

# Pipeline components
from docsearch.pipeline.config import Config

# Facade
from docsearch.service import DocumentSearchService, create_service

# CLI
from docsearch.cli import main

__all__ = [
    # Domain
    "Document",
    "Chunk",
    "ContextBundle",
    "SearchResult",
    # Errors
    "DocSearchError",
    "EmbeddingDimensionMismatchError",
    "EmbeddingUnavailableError",
    "IndexWriteError",
    "InvalidInputError",
    "NotFoundError",
    # Configuration
    "Config",
    # Facade
    "DocumentSearchService",
    "create_service",
    # CLI
    "main",
]
