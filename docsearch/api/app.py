"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docsearch.api.dependencies import close_service, get_config
from docsearch.api.routes import documents, search, system
from docsearch.errors import (
    DocSearchError,
    EmbeddingDimensionMismatchError,
    EmbeddingUnavailableError,
    IndexWriteError,
    InvalidInputError,
    NotFoundError,
)
from docsearch.logging_config import configure_logging

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInputError: 400,
    NotFoundError: 404,
    EmbeddingUnavailableError: 503,
    EmbeddingDimensionMismatchError: 502,
    IndexWriteError: 500,
}


def status_for(error: DocSearchError) -> int:
    """HTTP status code for a typed error."""
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Storage and the embedding client are initialized lazily on the first
    request, so the API starts even while downstream services are down.
    """
    config = get_config()
    configure_logging(config.logging.level, config.logging.json)
    logger.info("Document search API started")

    yield

    logger.info("Shutting down document search API...")
    await close_service()
    logger.info("Document search API shutdown complete")


async def docsearch_error_handler(request: Request, exc: DocSearchError) -> JSONResponse:
    """Translate typed errors into JSON error responses."""
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Document Search API",
        description="Semantic document search and context assembly for RAG",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3001",
            "http://localhost:3000",
            "http://127.0.0.1:3001",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DocSearchError, docsearch_error_handler)

    # Include routers
    app.include_router(search.router)
    app.include_router(documents.router)
    app.include_router(system.router)

    return app
