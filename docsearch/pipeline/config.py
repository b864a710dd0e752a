"""Service configuration."""

from dataclasses import dataclass, field
import os
import re

import yaml


def _expand_env_var(value: str) -> str:
    """Expand environment variables in the form ${VAR:-default}.

    Args:
        value: String possibly containing ${VAR:-default}

    Returns:
        Expanded string with environment variable or default value
    """
    if not isinstance(value, str):
        return value

    # Match ${VAR:-default}, ${VAR-default} or ${VAR}
    pattern = r"\$\{([^:}-]+)(?::?-([^}]*))?\}"

    def replace_env(match):
        var_name = match.group(1)
        default_value = match.group(2) or ""
        return os.environ.get(var_name, default_value)

    return re.sub(pattern, replace_env, value)


def _expand_env(value):
    """Recursively expand env vars in strings inside dicts/lists."""
    if isinstance(value, str):
        return _expand_env_var(value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class ChunkingConfig:
    """Chunking configuration. All sizes are in tokens."""

    chunk_size: int = 256
    chunk_overlap: int = 32
    min_chunk_size: int = 24

    def validate(self) -> None:
        """Reject inconsistent chunk sizes.

        Raises:
            ValueError: If a size is non-positive or overlap/min exceed chunk_size
        """
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.chunk_overlap < 0:
            raise ValueError("chunk_overlap must not be negative")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        if self.min_chunk_size < 0 or self.min_chunk_size > self.chunk_size:
            raise ValueError("min_chunk_size must be between 0 and chunk_size")


@dataclass
class EmbeddingConfig:
    """Embedding provider configuration."""

    provider: str = "ollama"
    model: str = "nomic-embed-text"
    base_url: str = ""
    api_key: str = ""
    dimensions: int = 768
    batch_size: int = 32
    max_concurrency: int = 4
    timeout: float = 60.0


@dataclass
class StorageConfig:
    """Vector index storage configuration."""

    backend: str = "postgres"
    metric: str = "cosine"
    table_prefix: str = "docsearch"
    pool_min_size: int = 1
    pool_max_size: int = 10


@dataclass
class RetrievalConfig:
    """Retrieval defaults.

    Raw search and context assembly use different thresholds. Both are policy
    values carried over from the deployed service, not derived from data.
    """

    search_limit: int = 10
    search_threshold: float = 0.1
    context_max_chunks: int = 5
    context_threshold: float = 0.7
    context_max_chars: int | None = None


@dataclass
class IndexingConfig:
    """Ingestion configuration."""

    docs_dir: str = "./documents"
    concurrency: int = 4
    timeout_seconds: float | None = None
    supported_extensions: list[str] = field(
        default_factory=lambda: [
            ".txt", ".md", ".markdown", ".json", ".csv", ".html", ".htm", ".pdf", ".docx",
        ]
    )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    json: bool = False


@dataclass
class Config:
    """Main configuration class."""

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    indexing: IndexingConfig = field(default_factory=IndexingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Database connection (support both URL and individual params)
    database_url: str = ""
    postgres_host: str = ""
    postgres_port: int = 5432
    postgres_user: str = ""
    postgres_password: str = ""
    postgres_db: str = ""

    def get_database_url(self) -> str:
        """Get database connection URL.

        Uses postgres_* parameters if available, otherwise falls back to database_url.

        Returns:
            PostgreSQL connection URL
        """
        if self.postgres_host and self.postgres_user and self.postgres_db:
            port = self.postgres_port or 5432
            return f"postgresql://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{port}/{self.postgres_db}"

        return self.database_url

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load configuration from YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Create config from dictionary."""
        data = _expand_env(data)

        chunking_data = data.get("chunking", {})
        chunking = ChunkingConfig(
            chunk_size=int(chunking_data.get("chunk_size", 256)),
            chunk_overlap=int(chunking_data.get("chunk_overlap", 32)),
            min_chunk_size=int(chunking_data.get("min_chunk_size", 24)),
        )
        chunking.validate()

        embedding_data = data.get("embedding", {})
        provider = embedding_data.get("provider", "ollama")
        if provider not in ("ollama", "openai", "gemini"):
            raise ValueError(
                f"Unsupported embedding provider: {provider}. Supported: ollama, openai, gemini"
            )
        api_key = embedding_data.get("api_key", "")
        if not api_key:
            api_key = os.environ.get(f"{provider.upper()}_API_KEY", "")
        embedding = EmbeddingConfig(
            provider=provider,
            model=embedding_data.get("model", "nomic-embed-text"),
            base_url=embedding_data.get("base_url", ""),
            api_key=api_key,
            dimensions=int(embedding_data.get("dimensions", 768)),
            batch_size=int(embedding_data.get("batch_size", 32)),
            max_concurrency=int(embedding_data.get("max_concurrency", 4)),
            timeout=float(embedding_data.get("timeout", 60.0)),
        )

        storage_data = data.get("storage", {})
        postgres_data = storage_data.get("postgres", {})
        storage = StorageConfig(
            backend=storage_data.get("backend", "postgres"),
            metric=storage_data.get("metric", "cosine"),
            table_prefix=storage_data.get("table_prefix", "docsearch"),
            pool_min_size=int(storage_data.get("pool_min_size", 1)),
            pool_max_size=int(storage_data.get("pool_max_size", 10)),
        )
        if storage.backend not in ("postgres", "memory"):
            raise ValueError(f"Unsupported storage backend: {storage.backend}")
        if storage.metric not in ("cosine", "l2"):
            raise ValueError(f"Unsupported similarity metric: {storage.metric}")

        retrieval_data = data.get("retrieval", {})
        context_max_chars = retrieval_data.get("context_max_chars")
        retrieval = RetrievalConfig(
            search_limit=int(retrieval_data.get("search_limit", 10)),
            search_threshold=float(retrieval_data.get("search_threshold", 0.1)),
            context_max_chunks=int(retrieval_data.get("context_max_chunks", 5)),
            context_threshold=float(retrieval_data.get("context_threshold", 0.7)),
            context_max_chars=int(context_max_chars) if context_max_chars else None,
        )

        indexing_data = data.get("indexing", {})
        timeout_seconds = indexing_data.get("timeout_seconds")
        indexing = IndexingConfig(
            docs_dir=indexing_data.get("docs_dir", "./documents"),
            concurrency=int(indexing_data.get("concurrency", 4)),
            timeout_seconds=float(timeout_seconds) if timeout_seconds else None,
        )
        if indexing_data.get("supported_extensions"):
            indexing.supported_extensions = [
                ext.lower() for ext in indexing_data["supported_extensions"]
            ]

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "INFO"),
            json=_as_bool(logging_data.get("json", False)),
        )

        database_url = storage_data.get("database_url", "")
        if not database_url:
            database_url = os.environ.get("DATABASE_URL", "")

        postgres_port = postgres_data.get("port") or os.environ.get("POSTGRES_PORT", "5432")

        return cls(
            chunking=chunking,
            embedding=embedding,
            storage=storage,
            retrieval=retrieval,
            indexing=indexing,
            logging=logging_config,
            database_url=database_url,
            postgres_host=postgres_data.get("host") or os.environ.get("POSTGRES_HOST", ""),
            postgres_port=int(postgres_port),
            postgres_user=postgres_data.get("user") or os.environ.get("POSTGRES_USER", ""),
            postgres_password=postgres_data.get("password") or os.environ.get("POSTGRES_PASSWORD", ""),
            postgres_db=postgres_data.get("database") or os.environ.get("POSTGRES_DB", ""),
        )

    @classmethod
    def from_env(cls) -> "Config":
        """Load config from environment variables."""
        provider = os.environ.get("EMBEDDING_PROVIDER", "ollama")
        timeout_seconds = os.environ.get("INDEX_TIMEOUT_SECONDS")
        return cls.from_dict(
            {
                "chunking": {
                    "chunk_size": os.environ.get("DOCUMENT_CHUNK_SIZE", "256"),
                    "chunk_overlap": os.environ.get("DOCUMENT_CHUNK_OVERLAP", "32"),
                    "min_chunk_size": os.environ.get("DOCUMENT_MIN_CHUNK_SIZE", "24"),
                },
                "embedding": {
                    "provider": provider,
                    "model": os.environ.get("EMBEDDING_MODEL", "nomic-embed-text"),
                    "base_url": os.environ.get("EMBEDDING_API_URL", ""),
                    "api_key": os.environ.get("EMBEDDING_API_KEY", ""),
                    "dimensions": os.environ.get("EMBEDDING_DIMENSIONS", "768"),
                },
                "storage": {
                    "backend": os.environ.get("VECTOR_BACKEND", "postgres"),
                    "metric": os.environ.get("VECTOR_METRIC", "cosine"),
                    "database_url": os.environ.get("DATABASE_URL", ""),
                },
                "indexing": {
                    "docs_dir": os.environ.get("DOCUMENT_WATCH_PATH", "./documents"),
                    "timeout_seconds": timeout_seconds,
                },
                "logging": {
                    "level": os.environ.get("LOG_LEVEL", "INFO"),
                    "json": os.environ.get("LOG_JSON", "false"),
                },
            }
        )
