"""Text extraction for document sources."""

from __future__ import annotations

import asyncio
import csv
import hashlib
import html
import io
import json
import logging
import re
import uuid
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List

from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from docsearch.domain.document import (
    DirectoryPath,
    Document,
    DocumentSource,
    FilePath,
    InlineText,
    validate_metadata,
)
from docsearch.errors import InvalidInputError

logger = logging.getLogger(__name__)

# Namespace for document ids; ids stay stable across runs and machines.
DOCUMENT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "https://docsearch.local/documents")

DEFAULT_EXTENSIONS = (
    ".txt", ".md", ".markdown", ".json", ".csv", ".html", ".htm", ".pdf", ".docx",
)

_SCRIPT_RE = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True, slots=True)
class ExtractedDocument:
    """A document entity paired with the plain text to chunk.

    Attributes:
        document: Document with identity, checksum and source metadata
        text: Normalized plain text
        modified_at: Source modification time, when known
    """

    document: Document
    text: str
    modified_at: datetime | None = None


def document_id_for_path(path: Path) -> str:
    """Stable document id for a file, derived from its absolute path."""
    return str(uuid.uuid5(DOCUMENT_NAMESPACE, str(path.resolve())))


def document_id_for_text(name: str | None, checksum: str) -> str:
    """Stable document id for inline text, by name or else by content."""
    key = f"inline:{name}" if name else f"inline-sha256:{checksum}"
    return str(uuid.uuid5(DOCUMENT_NAMESPACE, key))


class TextExtractor:
    """Resolve document sources to plain text.

    File parsing is blocking and runs in a worker thread.
    """

    def __init__(self, supported_extensions: Iterable[str] | None = None):
        self._extensions = frozenset(
            ext.lower() for ext in (supported_extensions or DEFAULT_EXTENSIONS)
        )
        self._parsers: dict[str, Callable[[bytes, Path], tuple[str, str, dict]]] = {
            ".txt": self._parse_text,
            ".md": self._parse_text,
            ".markdown": self._parse_text,
            ".json": self._parse_json,
            ".csv": self._parse_csv,
            ".html": self._parse_html,
            ".htm": self._parse_html,
            ".pdf": self._parse_pdf,
            ".docx": self._parse_docx,
        }

    @property
    def supported_extensions(self) -> frozenset[str]:
        return self._extensions

    def is_supported(self, path: Path) -> bool:
        ext = path.suffix.lower()
        return ext in self._extensions and ext in self._parsers

    def discover(self, directory: Path) -> List[Path]:
        """List supported files below a directory, skipping hidden entries.

        Returns:
            Sorted list of file paths
        """
        files = []
        for path in directory.rglob("*"):
            relative = path.relative_to(directory)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if path.is_file() and self.is_supported(path):
                files.append(path)
        return sorted(files)

    def resolve(self, source: DocumentSource) -> List[FilePath | InlineText]:
        """Expand a source into single-document sources."""
        if isinstance(source, DirectoryPath):
            if not source.path.is_dir():
                raise InvalidInputError(f"directory does not exist: {source.path}")
            return [FilePath(path) for path in self.discover(source.path)]
        if isinstance(source, (FilePath, InlineText)):
            return [source]
        raise InvalidInputError(f"Unsupported document source: {type(source).__name__}")

    async def extract(self, source: FilePath | InlineText) -> ExtractedDocument:
        """Extract one document; file sources are parsed off the event loop."""
        if isinstance(source, InlineText):
            return self.extract_inline(source)
        return await asyncio.to_thread(self.extract_file, source.path)

    def extract_inline(self, source: InlineText) -> ExtractedDocument:
        """Build a document from caller-supplied text.

        Raises:
            InvalidInputError: If the text is empty or metadata is malformed
        """
        if not source.text or not source.text.strip():
            raise InvalidInputError("text must not be empty")

        raw = source.text.encode("utf-8")
        checksum = hashlib.sha256(raw).hexdigest()
        name = source.name.strip() if source.name else None
        metadata = validate_metadata(source.metadata)
        metadata.setdefault("source", "inline")

        document = Document(
            id=document_id_for_text(name, checksum),
            path=f"inline:{name}" if name else f"inline:{checksum[:16]}",
            title=name or "Untitled",
            file_type="text",
            file_size=len(raw),
            checksum=checksum,
            metadata=metadata,
        )
        return ExtractedDocument(document=document, text=source.text.strip())

    def extract_file(self, path: Path) -> ExtractedDocument:
        """Read and parse one file.

        Raises:
            InvalidInputError: If the file is missing, unsupported or unparseable
        """
        path = Path(path).expanduser().resolve()
        if not path.is_file():
            raise InvalidInputError(f"file does not exist: {path}")

        ext = path.suffix.lower()
        if not self.is_supported(path):
            raise InvalidInputError(f"Unsupported file type: {ext or path.name}")

        try:
            data = path.read_bytes()
            stat = path.stat()
        except OSError as e:
            raise InvalidInputError(f"Cannot read {path}: {e}", cause=e) from e

        text, title, parse_metadata = self._parsers[ext](data, path)
        modified_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

        metadata = {"source": "file", "modified_at": modified_at.isoformat()}
        metadata.update(parse_metadata)

        document = Document(
            id=document_id_for_path(path),
            path=str(path),
            title=title,
            file_type=ext.lstrip(".") or "unknown",
            file_size=stat.st_size,
            checksum=hashlib.sha256(data).hexdigest(),
            metadata=validate_metadata(metadata),
        )
        logger.debug("Extracted %d characters from %s", len(text), path)
        return ExtractedDocument(document=document, text=text, modified_at=modified_at)

    @staticmethod
    def _decode(data: bytes) -> str:
        return data.decode("utf-8", errors="replace")

    def _parse_text(self, data: bytes, path: Path) -> tuple[str, str, dict]:
        return self._decode(data).strip(), path.stem, {"encoding": "utf-8"}

    def _parse_json(self, data: bytes, path: Path) -> tuple[str, str, dict]:
        try:
            payload = json.loads(self._decode(data))
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"Invalid JSON file {path.name}: {e}", cause=e) from e

        metadata = {}
        if isinstance(payload, dict):
            metadata["json_keys"] = [str(k) for k in payload.keys()]
        return json.dumps(payload, indent=2, ensure_ascii=False), path.stem, metadata

    def _parse_csv(self, data: bytes, path: Path) -> tuple[str, str, dict]:
        rows = [row for row in csv.reader(io.StringIO(self._decode(data))) if any(row)]
        lines = []
        for index, row in enumerate(rows):
            line = ",".join(row)
            lines.append(f"Headers: {line}" if index == 0 else f"Row {index}: {line}")
        return "\n".join(lines), path.stem, {"row_count": max(len(rows) - 1, 0)}

    def _parse_html(self, data: bytes, path: Path) -> tuple[str, str, dict]:
        markup = self._decode(data)
        text = _SCRIPT_RE.sub("", markup)
        text = _STYLE_RE.sub("", text)
        text = _TAG_RE.sub(" ", text)
        text = _SPACE_RE.sub(" ", html.unescape(text)).strip()

        match = _TITLE_RE.search(markup)
        title = html.unescape(match.group(1)).strip() if match else ""
        return text, title or path.stem, {"has_title": bool(title)}

    def _parse_pdf(self, data: bytes, path: Path) -> tuple[str, str, dict]:
        if not data:
            raise InvalidInputError(f"PDF file is empty: {path.name}")
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError, KeyError) as e:
            logger.warning("Skipping unreadable PDF file: %s", path.name)
            raise InvalidInputError(f"PDF parsing failed for {path.name}: {e}", cause=e) from e
        return "\n\n".join(pages).strip(), path.stem, {"pages": len(pages)}

    def _parse_docx(self, data: bytes, path: Path) -> tuple[str, str, dict]:
        try:
            document = DocxDocument(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise InvalidInputError(f"DOCX parsing failed for {path.name}: {e}", cause=e) from e

        paragraphs = [p.text for p in document.paragraphs if p.text]
        return "\n\n".join(paragraphs).strip(), path.stem, {"paragraphs": len(paragraphs)}
