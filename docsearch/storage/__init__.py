"""Vector index storage for the document search core."""

from docsearch.storage.base import VectorIndex
from docsearch.storage.filters import SearchFilter
from docsearch.storage.memory import InMemoryVectorIndex
from docsearch.storage.similarity import Metric, cosine_similarity, l2_distance
from docsearch.storage.vectorstore import PgVectorIndex

__all__ = [
    "VectorIndex",
    "SearchFilter",
    "InMemoryVectorIndex",
    "PgVectorIndex",
    "Metric",
    "cosine_similarity",
    "l2_distance",
]
