"""
Docsearch CLI - index documents and query the vector index.

Usage:
    docsearch index ./documents             # Index a file or directory
    docsearch index ./documents --force     # Re-index unchanged documents
    docsearch search "query" --limit 5      # Semantic search
    docsearch context "query"               # Context window with citations
    docsearch stats                         # Index statistics
    docsearch test-embedding                # Check the embedding provider
    docsearch remove DOC_ID                 # Delete a document
    docsearch watch [PATH]                  # Keep the index in sync with a directory
    docsearch reindex [PATH]                # Clear the index and rebuild it
    docsearch clear --reset                 # Drop and recreate the index storage
    docsearch --config custom.yaml stats    # Use custom config file

Configuration:
    Config file: docsearch/config.yaml (default)
    Environment variables are used as fallback if config file not found

Results are printed to stdout as JSON; progress and errors go to stderr.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from docsearch.errors import DocSearchError
from docsearch.logging_config import configure_logging
from docsearch.pipeline.config import Config
from docsearch.service import DocumentSearchService, create_service
from docsearch.watch import DirectoryWatcher

logger = logging.getLogger(__name__)


def get_default_config_path() -> str:
    """Get default config path inside the package."""
    return str(Path(__file__).parent / "config.yaml")


def load_config(config_path: str | None = None) -> Config:
    """Load config from YAML file or environment variables.

    Args:
        config_path: Path to YAML config file. If None, uses default path.

    Returns:
        Config object
    """
    if config_path is None:
        config_path = os.environ.get("DOCSEARCH_CONFIG") or get_default_config_path()

    # Try YAML config first
    if os.path.exists(config_path):
        logger.debug("Loading config from: %s", config_path)
        return Config.from_yaml(config_path)

    # Fallback to environment variables
    logger.debug("Config file not found: %s; loading from environment", config_path)
    return Config.from_env()


def print_header(text: str):
    """Print section header."""
    print(f"\n{'=' * 50}\n{text}\n{'=' * 50}\n", file=sys.stderr)


def emit(data) -> None:
    """Write a JSON document to stdout."""
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def report_build(report: dict) -> int:
    """Emit build statistics and summarize them on stderr."""
    report = dict(report, results=[r.to_dict() for r in report["results"]])
    emit(report)

    print(
        f"✓ Indexed: {report['indexed']}/{report['total']} documents "
        f"(skipped {report['skipped']}, failed {report['failed']})",
        file=sys.stderr,
    )
    for err in report["errors"][:5]:
        print(f"    - {err['path']}: {err['error']}", file=sys.stderr)
    return 1 if report["failed"] else 0


async def cmd_index(service: DocumentSearchService, args: argparse.Namespace) -> int:
    print_header(f"Indexing {args.path}")
    return report_build(await service.index_document(args.path, force=args.force))


async def cmd_reindex(service: DocumentSearchService, args: argparse.Namespace) -> int:
    print_header(f"Rebuilding index from {args.path or service.docs_dir}")
    report = await service.reindex(args.path)
    print(f"✓ Cleared {report['cleared']['documents_deleted']} documents", file=sys.stderr)
    return report_build(report)


async def cmd_search(service: DocumentSearchService, args: argparse.Namespace) -> int:
    results = await service.search(
        args.query, limit=args.limit, threshold=args.threshold, metric=args.metric
    )
    emit({"query": args.query, "count": len(results), "results": [r.to_dict() for r in results]})
    return 0


async def cmd_context(service: DocumentSearchService, args: argparse.Namespace) -> int:
    bundle = await service.get_context(
        args.query, max_chunks=args.max_chunks, threshold=args.threshold
    )
    emit(bundle.to_dict())
    return 0


async def cmd_stats(service: DocumentSearchService, args: argparse.Namespace) -> int:
    emit((await service.stats()).to_dict())
    return 0


async def cmd_test_embedding(service: DocumentSearchService, args: argparse.Namespace) -> int:
    report = await service.test_embedding_service()
    emit(report)
    return 0 if report["ok"] else 1


async def cmd_remove(service: DocumentSearchService, args: argparse.Namespace) -> int:
    removed = await service.remove_document(args.doc_id)
    emit({"doc_id": args.doc_id, "chunks_deleted": removed})
    return 0


async def cmd_clear(service: DocumentSearchService, args: argparse.Namespace) -> int:
    report = await service.clear(reset=args.reset)
    emit(report)
    print("✓ Index reset" if args.reset else "✓ Index cleared", file=sys.stderr)
    return 0


async def cmd_watch(service: DocumentSearchService, args: argparse.Namespace) -> int:
    root = args.path or service.docs_dir
    if root is None:
        print("✗ Error: no directory given and indexing.docs_dir is not set", file=sys.stderr)
        return 1
    watcher = DirectoryWatcher(service, root)
    print_header(f"Watching {watcher.root}")
    print("Press Ctrl+C to stop", file=sys.stderr)
    await watcher.run(initial_scan=not args.no_initial_scan)
    return 0


COMMANDS = {
    "index": cmd_index,
    "search": cmd_search,
    "context": cmd_context,
    "stats": cmd_stats,
    "test-embedding": cmd_test_embedding,
    "remove": cmd_remove,
    "clear": cmd_clear,
    "reindex": cmd_reindex,
    "watch": cmd_watch,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docsearch",
        description="Docsearch - semantic document search and context assembly",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to config YAML file (default: {get_default_config_path()})",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level (e.g. DEBUG)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", help="Index a file or directory")
    index_parser.add_argument("path", help="File or directory to index")
    index_parser.add_argument(
        "--force", action="store_true", help="Re-index documents even if unchanged"
    )

    search_parser = subparsers.add_parser("search", help="Semantic search")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--limit", type=int, default=None, help="Max results (default: 10)")
    search_parser.add_argument(
        "--threshold", type=float, default=None, help="Min similarity (default: 0.1)"
    )
    search_parser.add_argument(
        "--metric", choices=["cosine", "l2"], default=None, help="Similarity metric"
    )

    context_parser = subparsers.add_parser("context", help="Assemble context with citations")
    context_parser.add_argument("query", help="Query")
    context_parser.add_argument(
        "--max-chunks", type=int, default=None, help="Max chunks (default: 5)"
    )
    context_parser.add_argument(
        "--threshold", type=float, default=None, help="Min similarity (default: 0.7)"
    )

    subparsers.add_parser("stats", help="Show index statistics")
    subparsers.add_parser("test-embedding", help="Test the embedding provider")

    remove_parser = subparsers.add_parser("remove", help="Delete a document")
    remove_parser.add_argument("doc_id", help="Document id")

    clear_parser = subparsers.add_parser("clear", help="Delete every document and chunk")
    clear_parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop and recreate storage (needed after changing embedding dimensions)",
    )

    reindex_parser = subparsers.add_parser("reindex", help="Clear the index and rebuild it")
    reindex_parser.add_argument(
        "path", nargs="?", default=None, help="File or directory (default: indexing.docs_dir)"
    )

    watch_parser = subparsers.add_parser("watch", help="Index a directory as it changes")
    watch_parser.add_argument(
        "path", nargs="?", default=None, help="Directory to watch (default: indexing.docs_dir)"
    )
    watch_parser.add_argument(
        "--no-initial-scan", action="store_true", help="Skip indexing existing files first"
    )

    return parser


async def run(args: argparse.Namespace) -> int:
    """Run one command against a freshly initialized service."""
    config = load_config(args.config)
    configure_logging(args.log_level or config.logging.level, config.logging.json)

    if config.storage.backend == "postgres" and not config.get_database_url():
        print("✗ Error: DATABASE_URL not set in config or environment", file=sys.stderr)
        print("  Set storage.database_url in config.yaml or DATABASE_URL env var", file=sys.stderr)
        return 1

    service = create_service(config, show_progress=True)
    if args.command == "clear" and args.reset:
        # Reset must work when initialize would fail on a dimension mismatch.
        try:
            return await cmd_clear(service, args)
        finally:
            await service.close()

    async with service:
        return await COMMANDS[args.command](service, args)


def main(argv: list[str] | None = None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nStopped", file=sys.stderr)
        sys.exit(130)
    except DocSearchError as e:
        emit(e.to_dict())
        print(f"\n✗ Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    except (ValueError, OSError) as e:
        print(f"\n✗ Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"\n✗ Error: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
