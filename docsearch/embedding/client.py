"""Async embedding clients for Ollama, OpenAI and Gemini."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from typing import List, Sequence

import httpx

from docsearch.domain.chunk import Vector
from docsearch.errors import (
    DocSearchError,
    EmbeddingDimensionMismatchError,
    EmbeddingUnavailableError,
    InvalidInputError,
)
from docsearch.pipeline.config import EmbeddingConfig

logger = logging.getLogger(__name__)


class EmbeddingClient(ABC):
    """Base class for embedding providers.

    Subclasses implement ``_embed_raw`` for a single request. Batching,
    ordering and output validation live here, so every provider returns
    vectors of exactly ``dimension`` floats in input order or raises.
    """

    provider = "base"

    def __init__(
        self,
        model: str,
        dimension: int,
        batch_size: int = 32,
        max_concurrency: int = 4,
    ):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._model = model
        self._dimension = dimension
        self._batch_size = max(1, batch_size)
        self._max_concurrency = max(1, max_concurrency)

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> Vector:
        """Embed a single text.

        Raises:
            InvalidInputError: If text is empty
            EmbeddingUnavailableError: If the provider fails or answers malformed output
            EmbeddingDimensionMismatchError: If the vector has the wrong length
        """
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[Vector]:
        """Embed texts, returning one vector per text in the same order.

        Texts are sent in groups of ``batch_size``; groups run concurrently,
        at most ``max_concurrency`` at a time. The first failing group
        cancels the others.
        """
        texts = list(texts)
        for i, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise InvalidInputError(f"Cannot embed empty text (position {i})")
        if not texts:
            return []

        batches = [
            texts[i : i + self._batch_size] for i in range(0, len(texts), self._batch_size)
        ]
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run(batch: List[str]) -> List[Vector]:
            async with semaphore:
                raw = await self._embed_raw(batch)
            return self._validate(raw, len(batch))

        tasks = [asyncio.ensure_future(run(batch)) for batch in batches]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        vectors: List[Vector] = []
        for batch_vectors in results:
            vectors.extend(batch_vectors)
        logger.debug("Embedded %d texts in %d batches", len(vectors), len(batches))
        return vectors

    @abstractmethod
    async def _embed_raw(self, texts: List[str]) -> list:
        """Send one request and return the provider's raw list of vectors."""

    def _validate(self, raw, expected_count: int) -> List[Vector]:
        """Check count, element types and dimensionality of provider output."""
        if not isinstance(raw, list) or len(raw) != expected_count:
            got = len(raw) if isinstance(raw, list) else type(raw).__name__
            raise EmbeddingUnavailableError(
                f"{self.provider} returned {got} embeddings for {expected_count} inputs"
            )

        vectors: List[Vector] = []
        for vector in raw:
            if not isinstance(vector, list) or not all(
                isinstance(x, (int, float)) and not isinstance(x, bool) for x in vector
            ):
                raise EmbeddingUnavailableError(f"{self.provider} returned a malformed embedding")
            if len(vector) != self._dimension:
                raise EmbeddingDimensionMismatchError(self._dimension, len(vector))
            if not all(math.isfinite(x) for x in vector):
                raise EmbeddingUnavailableError(f"{self.provider} returned non-finite values")
            vectors.append(tuple(float(x) for x in vector))
        return vectors

    async def test_connection(self, query: str = "test") -> dict:
        """Embed a sample text and report connectivity and dimension.

        Never raises for provider failures; the error is part of the report.
        """
        report = {
            "ok": False,
            "provider": self.provider,
            "model": self._model,
            "expected_dimension": self._dimension,
            "actual_dimension": None,
            "latency_ms": None,
            "error": None,
        }
        start = time.perf_counter()
        try:
            vector = await self.embed(query)
        except EmbeddingDimensionMismatchError as e:
            report["actual_dimension"] = e.actual
            report["error"] = e.message
        except DocSearchError as e:
            report["error"] = e.message
        else:
            report["ok"] = True
            report["actual_dimension"] = len(vector)
        report["latency_ms"] = int((time.perf_counter() - start) * 1000)

        if not report["ok"]:
            logger.error("Embedding service connection test failed: %s", report["error"])
        return report

    async def aclose(self) -> None:
        """Release network resources."""

    async def __aenter__(self) -> "EmbeddingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class HTTPEmbeddingClient(EmbeddingClient):
    """Embedding client backed by an httpx.AsyncClient."""

    default_base_url = ""
    requires_api_key = False

    def __init__(
        self,
        model: str,
        dimension: int,
        base_url: str = "",
        api_key: str = "",
        timeout: float = 60.0,
        batch_size: int = 32,
        max_concurrency: int = 4,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the HTTP client.

        Args:
            model: Provider model name
            dimension: Expected vector length
            base_url: API root (provider default when empty)
            api_key: API key, where the provider needs one
            timeout: Request timeout in seconds
            batch_size: Texts per request
            max_concurrency: Concurrent requests per embed_batch call
            http_client: Pre-built client (tests inject one with a MockTransport)
        """
        super().__init__(model, dimension, batch_size, max_concurrency)
        if self.requires_api_key and not api_key:
            raise ValueError(f"{self.provider} API key is required when using {self.provider} embeddings")
        self._base_url = (base_url or self.default_base_url).rstrip("/")
        self._api_key = api_key
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def _post(self, url: str, payload: dict, headers: dict | None = None) -> dict:
        try:
            response = await self._client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise EmbeddingUnavailableError(
                f"{self.provider} API error: {e.response.status_code} - {e.response.text[:200]}",
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingUnavailableError(
                f"{self.provider} API unreachable at {url}: {e}", cause=e
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise EmbeddingUnavailableError(
                f"{self.provider} API returned invalid JSON", cause=e
            ) from e
        if not isinstance(data, dict):
            raise EmbeddingUnavailableError(f"{self.provider} API returned unexpected response")
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class OllamaEmbeddingClient(HTTPEmbeddingClient):
    """Ollama embeddings via ``/api/embed`` (batched ``input``)."""

    provider = "ollama"
    default_base_url = "http://localhost:11434"

    async def _embed_raw(self, texts: List[str]) -> list:
        data = await self._post(
            f"{self._base_url}/api/embed",
            {"model": self._model, "input": texts},
        )
        if "embeddings" not in data:
            raise EmbeddingUnavailableError(f"Ollama API returned unexpected response: {data}")
        return data["embeddings"]


class OpenAIEmbeddingClient(HTTPEmbeddingClient):
    """OpenAI-compatible ``/embeddings`` endpoint."""

    provider = "openai"
    default_base_url = "https://api.openai.com/v1"
    requires_api_key = True

    async def _embed_raw(self, texts: List[str]) -> list:
        data = await self._post(
            f"{self._base_url}/embeddings",
            {"input": texts, "model": self._model, "dimensions": self._dimension},
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        items = data.get("data")
        if not isinstance(items, list):
            raise EmbeddingUnavailableError(f"OpenAI API returned unexpected response: {data}")
        try:
            ordered = sorted(items, key=lambda item: item["index"])
            return [item["embedding"] for item in ordered]
        except (KeyError, TypeError) as e:
            raise EmbeddingUnavailableError("OpenAI API returned malformed items", cause=e) from e


class GeminiEmbeddingClient(HTTPEmbeddingClient):
    """Google Gemini embeddings via ``batchEmbedContents``."""

    provider = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com"
    requires_api_key = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if not self._model.startswith("models/"):
            self._model = f"models/{self._model}"

    async def _embed_raw(self, texts: List[str]) -> list:
        url = f"{self._base_url}/v1beta/{self._model}:batchEmbedContents?key={self._api_key}"

        requests = []
        for text in texts:
            requests.append({
                "model": self._model,
                "content": {"parts": [{"text": text}]},
                "outputDimensionality": self._dimension,
            })

        data = await self._post(url, {"requests": requests})
        if "embeddings" not in data:
            raise EmbeddingUnavailableError(f"Gemini API returned unexpected response: {data}")
        try:
            return [embedding["values"] for embedding in data["embeddings"]]
        except (KeyError, TypeError) as e:
            raise EmbeddingUnavailableError("Gemini API returned malformed embeddings", cause=e) from e


_PROVIDERS: dict[str, type[HTTPEmbeddingClient]] = {
    "ollama": OllamaEmbeddingClient,
    "openai": OpenAIEmbeddingClient,
    "gemini": GeminiEmbeddingClient,
}


def create_embedding_client(
    config: EmbeddingConfig,
    http_client: httpx.AsyncClient | None = None,
) -> EmbeddingClient:
    """Create an embedding client from configuration.

    Raises:
        ValueError: If the provider is not supported or is missing an API key
    """
    provider = (config.provider or "").lower()
    client_cls = _PROVIDERS.get(provider)
    if client_cls is None:
        raise ValueError(
            f"Unsupported embedding provider: {config.provider}. "
            f"Supported: {', '.join(sorted(_PROVIDERS))}"
        )

    return client_cls(
        model=config.model,
        dimension=config.dimensions,
        base_url=config.base_url,
        api_key=config.api_key,
        timeout=config.timeout,
        batch_size=config.batch_size,
        max_concurrency=config.max_concurrency,
        http_client=http_client,
    )
