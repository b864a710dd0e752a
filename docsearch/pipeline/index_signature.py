"""Index signature utilities for rebuild detection."""

import hashlib
import json

from docsearch.pipeline.config import Config


def compute_signature(config: Config) -> str:
    """Compute a stable signature of the settings that shape a chunk set.

    Two runs with the same source content and the same signature produce the
    same chunks and vectors, so the second run may be skipped.
    """
    payload = {
        "embedding": {
            "provider": config.embedding.provider,
            "model": config.embedding.model,
            "dimensions": config.embedding.dimensions,
        },
        "chunking": {
            "chunk_size": config.chunking.chunk_size,
            "chunk_overlap": config.chunking.chunk_overlap,
            "min_chunk_size": config.chunking.min_chunk_size,
        },
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()
