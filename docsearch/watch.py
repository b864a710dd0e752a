"""Keep the index in sync with a documents directory."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Tuple

from watchfiles import Change, DefaultFilter, awatch

from docsearch.errors import DocSearchError, NotFoundError
from docsearch.pipeline.extract import TextExtractor
from docsearch.service import DocumentSearchService

logger = logging.getLogger(__name__)


class DocumentFilter(DefaultFilter):
    """Pass only supported, non-hidden files below the watched root."""

    def __init__(self, root: Path, extractor: TextExtractor):
        super().__init__()
        self._root = root
        self._extractor = extractor

    def __call__(self, change: Change, path: str) -> bool:
        if not super().__call__(change, path):
            return False
        candidate = Path(path)
        try:
            relative = candidate.relative_to(self._root)
        except ValueError:
            return False
        if any(part.startswith(".") for part in relative.parts):
            return False
        return self._extractor.is_supported(candidate)


class DirectoryWatcher:
    """Index files as they appear or change and drop them when deleted.

    Events for the same path within one batch are collapsed: whatever is on
    disk when the batch is handled wins, so an editor's delete-then-write
    save reindexes the file instead of removing it.
    """

    def __init__(
        self,
        service: DocumentSearchService,
        root: str | Path,
        debounce_ms: int = 1600,
    ):
        """Initialize the watcher.

        Args:
            service: Service whose index is kept in sync
            root: Directory to watch; created if missing
            debounce_ms: Quiet period before a batch of changes is handled
        """
        self._service = service
        self._root = Path(root).expanduser().resolve()
        self._debounce_ms = debounce_ms
        self._filter = DocumentFilter(self._root, service.extractor)

    @property
    def root(self) -> Path:
        return self._root

    async def run(
        self,
        stop_event: asyncio.Event | None = None,
        initial_scan: bool = True,
    ) -> None:
        """Watch until ``stop_event`` is set or the task is cancelled.

        Args:
            stop_event: Event that ends the watch loop
            initial_scan: Index the directory once before watching
        """
        self._root.mkdir(parents=True, exist_ok=True)

        if initial_scan:
            stats = await self._service.index_document(self._root)
            logger.info(
                "Initial scan of %s: %d indexed, %d skipped, %d failed",
                self._root,
                stats["indexed"],
                stats["skipped"],
                stats["failed"],
            )

        logger.info("Watching %s for document changes", self._root)
        async for changes in awatch(
            self._root,
            watch_filter=self._filter,
            debounce=self._debounce_ms,
            stop_event=stop_event,
        ):
            await self.handle_changes(changes)
        logger.info("Stopped watching %s", self._root)

    async def handle_changes(self, changes: Iterable[Tuple[Change, str]]) -> dict:
        """Apply one batch of file system changes to the index.

        Returns:
            Paths that were indexed, removed or failed
        """
        summary: dict = {"indexed": [], "removed": [], "failed": []}

        for path in sorted({Path(p) for change, p in changes if self._filter(change, p)}):
            try:
                if path.is_file():
                    stats = await self._service.index_document(path)
                    if stats["failed"]:
                        summary["failed"].append(str(path))
                    else:
                        summary["indexed"].append(str(path))
                else:
                    await self._service.remove_path(path)
                    summary["removed"].append(str(path))
                    logger.info("Removed deleted file %s from the index", path)
            except NotFoundError:
                logger.debug("Deleted file %s was never indexed", path)
            except DocSearchError as e:
                logger.error("Could not sync %s: %s", path, e.message)
                summary["failed"].append(str(path))

        return summary
