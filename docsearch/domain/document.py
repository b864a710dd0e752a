"""Document entity and document sources."""

from __future__ import annotations

from dataclasses import dataclass, asdict, field
from datetime import datetime
from pathlib import Path
from typing import Mapping, Union

from docsearch.errors import InvalidInputError

MetadataValue = Union[str, int, float, bool, None, list[str]]
Metadata = dict[str, MetadataValue]


def validate_metadata(metadata: Mapping | None) -> Metadata:
    """Check metadata against the bounded value schema.

    Keys must be non-empty strings. Values must be str, int, float, bool,
    None or a list of str.

    Args:
        metadata: Raw mapping (may be None)

    Returns:
        A plain dict copy of the metadata

    Raises:
        InvalidInputError: If a key or value falls outside the schema
    """
    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        raise InvalidInputError(f"metadata must be a mapping, got {type(metadata).__name__}")

    clean: Metadata = {}
    for key, value in metadata.items():
        if not isinstance(key, str) or not key:
            raise InvalidInputError(f"metadata keys must be non-empty strings: {key!r}")
        if value is None or isinstance(value, (str, bool, int, float)):
            clean[key] = value
        elif isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            clean[key] = list(value)
        else:
            raise InvalidInputError(
                f"metadata value for {key!r} has unsupported type {type(value).__name__}"
            )
    return clean


@dataclass(frozen=True, slots=True)
class DocumentTags:
    """Classification tags attached to a document.

    Attributes:
        document_type: Detected type (e.g. "invoice", "contract", "document")
        category: Detected category (e.g. "financial", "legal", "general")
        language: ISO code ("de", "en") or "unknown"
        keywords: Most frequent non-stopword terms
        summary: Short extractive summary
        importance: Ranking weight in [0.1, 2.0]
        extracted_data: Structured values found in the text (dates, amounts, ...)
    """

    document_type: str = "document"
    category: str = "general"
    language: str = "unknown"
    keywords: list[str] = field(default_factory=list)
    summary: str = ""
    importance: float = 1.0
    extracted_data: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict | None) -> "DocumentTags":
        if not data:
            return cls()
        return cls(
            document_type=data.get("document_type", "document"),
            category=data.get("category", "general"),
            language=data.get("language", "unknown"),
            keywords=list(data.get("keywords") or []),
            summary=data.get("summary", ""),
            importance=float(data.get("importance", 1.0)),
            extracted_data=dict(data.get("extracted_data") or {}),
        )


@dataclass(frozen=True, slots=True)
class Document:
    """Immutable document entity.

    A document owns its chunks; deleting it removes all of them.

    Attributes:
        id: Stable document identifier (UUID string)
        path: Source path, or "inline:<name>" for inline text
        title: Document title
        file_type: Extension without dot (e.g. "pdf") or "text" for inline sources
        file_size: Size of the source in bytes
        checksum: SHA-256 of the source bytes, used for change detection
        signature: Hash of the chunking/embedding settings used to index it
        metadata: Typed key-value metadata
        tags: Classification tags
        created_at: Creation timestamp (set by the index)
        updated_at: Last update timestamp (set by the index)
    """

    id: str
    path: str
    title: str
    file_type: str
    file_size: int
    checksum: str
    signature: str = ""
    metadata: Metadata = field(default_factory=dict)
    tags: DocumentTags = field(default_factory=DocumentTags)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        """Convert document to a JSON-serializable dictionary."""
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        """Create document from dictionary.

        Args:
            data: Dictionary with document fields

        Returns:
            Document instance
        """

        def _ts(value):
            if value is None or isinstance(value, datetime):
                return value
            return datetime.fromisoformat(value)

        return cls(
            id=data["id"],
            path=data["path"],
            title=data["title"],
            file_type=data.get("file_type", "unknown"),
            file_size=int(data.get("file_size", 0)),
            checksum=data["checksum"],
            signature=data.get("signature", ""),
            metadata=validate_metadata(data.get("metadata")),
            tags=DocumentTags.from_dict(data.get("tags")),
            created_at=_ts(data.get("created_at")),
            updated_at=_ts(data.get("updated_at")),
        )


# Document sources: a tagged variant resolved by the text extractor.


@dataclass(frozen=True, slots=True)
class FilePath:
    """A single file on disk."""

    path: Path


@dataclass(frozen=True, slots=True)
class DirectoryPath:
    """A directory, walked recursively for supported files."""

    path: Path


@dataclass(frozen=True, slots=True)
class InlineText:
    """Raw text supplied by the caller."""

    text: str
    name: str | None = None
    metadata: Metadata = field(default_factory=dict)


DocumentSource = Union[FilePath, DirectoryPath, InlineText]


def source_from_path(path: str | Path) -> DocumentSource:
    """Classify a filesystem path as a file or directory source.

    Raises:
        InvalidInputError: If the path is empty or does not exist
    """
    if path is None or not str(path).strip():
        raise InvalidInputError("path must not be empty")

    resolved = Path(path).expanduser()
    if resolved.is_dir():
        return DirectoryPath(resolved.resolve())
    if resolved.is_file():
        return FilePath(resolved.resolve())
    raise InvalidInputError(f"path does not exist: {path}")
