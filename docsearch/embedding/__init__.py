"""Embedding clients."""

from docsearch.embedding.client import (
    EmbeddingClient,
    HTTPEmbeddingClient,
    OllamaEmbeddingClient,
    OpenAIEmbeddingClient,
    GeminiEmbeddingClient,
    create_embedding_client,
)

__all__ = [
    "EmbeddingClient",
    "HTTPEmbeddingClient",
    "OllamaEmbeddingClient",
    "OpenAIEmbeddingClient",
    "GeminiEmbeddingClient",
    "create_embedding_client",
]
