"""Retrieval and context assembly."""

from docsearch.rag.context_builder import ContextBuilder
from docsearch.rag.retriever import (
    DEFAULT_CONTEXT_MAX_CHUNKS,
    DEFAULT_CONTEXT_THRESHOLD,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SEARCH_THRESHOLD,
    RetrievalService,
)

__all__ = [
    "ContextBuilder",
    "RetrievalService",
    "DEFAULT_SEARCH_LIMIT",
    "DEFAULT_SEARCH_THRESHOLD",
    "DEFAULT_CONTEXT_MAX_CHUNKS",
    "DEFAULT_CONTEXT_THRESHOLD",
]
