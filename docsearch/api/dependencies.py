"""FastAPI dependencies for dependency injection."""

import asyncio
import logging
import os
from functools import lru_cache
from pathlib import Path

from docsearch.pipeline.config import Config
from docsearch.service import DocumentSearchService, create_service

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"


@lru_cache
def get_config() -> Config:
    """Get cached configuration.

    Reads ``DOCSEARCH_CONFIG`` or the packaged config.yaml, falling back to
    environment variables when no file exists.

    Returns:
        Configuration object
    """
    config_path = Path(os.environ.get("DOCSEARCH_CONFIG", DEFAULT_CONFIG_PATH))
    if config_path.exists():
        return Config.from_yaml(str(config_path))
    return Config.from_env()


# ========== Service Dependency ==========

_service_instance: DocumentSearchService | None = None
_service_lock = asyncio.Lock()


async def get_service() -> DocumentSearchService:
    """Get the shared DocumentSearchService, initializing it on first use.

    Returns:
        Initialized service instance
    """
    global _service_instance

    if _service_instance is None:
        async with _service_lock:
            if _service_instance is None:
                service = create_service(get_config())
                await service.initialize()
                _service_instance = service
                logger.info("Document search service initialized")

    return _service_instance


async def close_service() -> None:
    """Close the shared service, if one was created."""
    global _service_instance

    if _service_instance is not None:
        service, _service_instance = _service_instance, None
        await service.close()
