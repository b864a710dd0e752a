"""Pytest configuration and shared fixtures."""

import re
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from docsearch.domain.chunk import Chunk, make_chunk_id  # noqa: E402
from docsearch.domain.document import Document  # noqa: E402
from docsearch.embedding.client import EmbeddingClient  # noqa: E402
from docsearch.pipeline.config import ChunkingConfig, Config  # noqa: E402
from docsearch.service import create_service  # noqa: E402
from docsearch.storage.memory import InMemoryVectorIndex  # noqa: E402

DIMENSION = 1024

_WORD_RE = re.compile(r"\w+")


# Word -> bucket, shared by every fake client in the session so that distinct
# words never collide below DIMENSION words.
_VOCABULARY: dict = {}


def word_embedding(text: str, dimension: int = DIMENSION) -> list:
    """Deterministic bag-of-words vector: one bucket per distinct word."""
    vector = [0.0] * dimension
    for word in _WORD_RE.findall(text.lower()):
        bucket = _VOCABULARY.setdefault(word, len(_VOCABULARY)) % dimension
        vector[bucket] += 1.0
    return vector


class FakeEmbeddingClient(EmbeddingClient):
    """Offline embedding client with deterministic vectors.

    Args:
        dimension: Dimension the client reports
        output_dimension: Length of the vectors it actually returns
        error: Exception raised by every request, if set
    """

    provider = "fake"

    def __init__(self, dimension=DIMENSION, output_dimension=None, error=None, batch_size=32):
        super().__init__("fake-embed", dimension, batch_size=batch_size)
        self.output_dimension = output_dimension or dimension
        self.error = error
        self.calls = []
        self.closed = False

    async def _embed_raw(self, texts):
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        return [word_embedding(text, self.output_dimension) for text in texts]

    async def aclose(self):
        self.closed = True


def make_document(doc_id="doc-1", path=None, title="Test Document", **kwargs) -> Document:
    """Build a Document with sensible defaults."""
    return Document(
        id=doc_id,
        path=path or f"/docs/{doc_id}.txt",
        title=title,
        file_type=kwargs.pop("file_type", "txt"),
        file_size=kwargs.pop("file_size", 100),
        checksum=kwargs.pop("checksum", f"checksum-{doc_id}"),
        **kwargs,
    )


def make_chunks(doc_id, contents, vectors=None, dimension=DIMENSION):
    """Build embedded chunks; vectors default to the word embedding."""
    chunks = []
    for i, content in enumerate(contents):
        vector = vectors[i] if vectors is not None else word_embedding(content, dimension)
        chunks.append(
            Chunk(
                chunk_id=make_chunk_id(doc_id, i, content),
                doc_id=doc_id,
                chunk_index=i,
                content=content,
                token_count=len(content.split()),
                embedding=tuple(float(x) for x in vector),
            )
        )
    return chunks


async def store_document(index, doc_id, contents, title=None, vectors=None, **kwargs):
    """Write a document with the given chunk texts straight into an index."""
    document = make_document(doc_id, title=title or f"Title {doc_id}", **kwargs)
    await index.upsert_chunks(document, make_chunks(doc_id, contents, vectors, index.dimension))
    return document


@pytest.fixture
def config():
    """Config for an in-memory index and small chunks."""
    return Config.from_dict(
        {
            "chunking": {"chunk_size": 40, "chunk_overlap": 8, "min_chunk_size": 5},
            "embedding": {"provider": "ollama", "model": "fake-embed", "dimensions": DIMENSION},
            "storage": {"backend": "memory"},
        }
    )


@pytest.fixture
def chunking_config():
    return ChunkingConfig(chunk_size=20, chunk_overlap=5, min_chunk_size=3)


@pytest.fixture
def embedder():
    return FakeEmbeddingClient()


@pytest.fixture
def memory_index():
    return InMemoryVectorIndex(DIMENSION)


@pytest.fixture
def service(config, memory_index, embedder):
    """Fully wired service over the in-memory index and fake embedder."""
    return create_service(config, index=memory_index, embedder=embedder)


@pytest.fixture
def docs_dir(tmp_path):
    """Directory with a few supported documents, one hidden and one unsupported."""
    root = tmp_path / "documents"
    (root / "nested").mkdir(parents=True)
    (root / ".hidden").mkdir()

    (root / "notes.txt").write_text(
        "Fitzer GmbH delivered the drone parts on time. The invoice follows next week.",
        encoding="utf-8",
    )
    (root / "guide.md").write_text(
        "# Setup guide\n\nInstall the package and configure the database connection.",
        encoding="utf-8",
    )
    (root / "nested" / "data.json").write_text(
        '{"customer": "Fitzer", "status": "paid"}', encoding="utf-8"
    )
    (root / ".hidden" / "secret.txt").write_text("hidden content", encoding="utf-8")
    (root / "image.xyz").write_text("not a document", encoding="utf-8")
    return root
