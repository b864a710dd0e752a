"""Index building - orchestrates extraction and incremental indexing."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List

from tqdm import tqdm

from docsearch.domain.document import (
    DocumentSource,
    FilePath,
    InlineText,
    source_from_path,
)
from docsearch.domain.results import IndexResult
from docsearch.domain.state import IndexState
from docsearch.errors import DocSearchError
from docsearch.pipeline.extract import (
    ExtractedDocument,
    TextExtractor,
    document_id_for_path,
)
from docsearch.pipeline.incremental import IndexingPipeline

logger = logging.getLogger(__name__)


class IndexBuilder:
    """Main index builder orchestrator."""

    def __init__(
        self,
        pipeline: IndexingPipeline,
        extractor: TextExtractor,
        concurrency: int = 4,
        show_progress: bool = True,
    ):
        """Initialize index builder.

        Args:
            pipeline: Per-document indexing pipeline
            extractor: Text extractor for file and inline sources
            concurrency: Documents indexed at the same time
            show_progress: Show a tqdm progress bar
        """
        self._pipeline = pipeline
        self._extractor = extractor
        self._concurrency = max(1, concurrency)
        self._show_progress = show_progress

    async def index_path(self, path: str | Path, force: bool = False) -> dict:
        """Index a file or every supported file below a directory.

        Raises:
            InvalidInputError: If the path is empty or does not exist
        """
        return await self.index_source(source_from_path(path), force=force)

    async def index_source(self, source: DocumentSource, force: bool = False) -> dict:
        """Index all documents of a source.

        Per-document failures are collected in ``errors`` and never abort
        the other documents.

        Args:
            source: File, directory or inline text source
            force: Re-index even when checksum and signature are unchanged

        Returns:
            Build statistics dict with per-document ``results``
        """
        sources = self._extractor.resolve(source)
        semaphore = asyncio.Semaphore(self._concurrency)

        with tqdm(
            total=len(sources),
            desc="Indexing",
            disable=not self._show_progress or len(sources) < 2,
        ) as progress:

            async def run(item: FilePath | InlineText) -> IndexResult:
                async with semaphore:
                    try:
                        return await self._index_one(item, force)
                    finally:
                        progress.update(1)

            results: List[IndexResult] = list(await asyncio.gather(*(run(s) for s in sources)))

        stats = {
            "total": len(results),
            "indexed": 0,
            "skipped": 0,
            "failed": 0,
            "chunks_added": 0,
            "chunks_deleted": 0,
            "errors": [],
            "results": results,
        }
        for result in results:
            stats[result.status] += 1
            stats["chunks_added"] += result.chunks_added
            stats["chunks_deleted"] += result.chunks_deleted
            if result.status == "failed":
                stats["errors"].append({
                    "doc_id": result.doc_id,
                    "path": result.path,
                    "error": result.error or "unknown error",
                })

        logger.info(
            "Indexing finished: %d total, %d indexed, %d skipped, %d failed",
            stats["total"],
            stats["indexed"],
            stats["skipped"],
            stats["failed"],
        )
        return stats

    async def _index_one(self, source: FilePath | InlineText, force: bool) -> IndexResult:
        extracted: ExtractedDocument | None = None
        try:
            extracted = await self._extractor.extract(source)
            return await self._pipeline.index_document(extracted, force=force)
        except asyncio.TimeoutError:
            # The pipeline restored the prior state; report that, not FAILED.
            error = f"indexing timed out after {self._pipeline.timeout_seconds}s"
            logger.warning("Document failed: %s (%s)", error, source)
            state = self._pipeline.state(extracted.document.id) if extracted else None
            return self._failed(source, error, extracted, state)
        except DocSearchError as e:
            logger.warning("Document failed: %s", e.message)
            return self._failed(source, e.message, extracted)
        except Exception as e:
            logger.exception("Unexpected error while indexing %s", source)
            return self._failed(source, str(e) or type(e).__name__, extracted)

    @staticmethod
    def _failed(
        source: FilePath | InlineText,
        error: str,
        extracted: ExtractedDocument | None = None,
        state: IndexState | None = IndexState.FAILED,
    ) -> IndexResult:
        if extracted is not None:
            document = extracted.document
            return IndexResult(
                doc_id=document.id,
                path=document.path,
                title=document.title,
                file_type=document.file_type,
                file_size=document.file_size,
                status="failed",
                state=state,
                error=error,
            )
        if isinstance(source, FilePath):
            path = source.path
            return IndexResult(
                doc_id=document_id_for_path(path),
                path=str(path),
                title=path.stem,
                file_type=path.suffix.lower().lstrip(".") or "unknown",
                file_size=path.stat().st_size if path.is_file() else 0,
                status="failed",
                state=state,
                error=error,
            )
        return IndexResult(
            doc_id="",
            path=f"inline:{source.name or ''}",
            title=source.name or "Untitled",
            file_type="text",
            file_size=len(source.text.encode("utf-8")),
            status="failed",
            state=state,
            error=error,
        )
