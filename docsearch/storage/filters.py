"""Metadata and keyword filters applied before vector ranking."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from docsearch.domain.document import Document, Metadata, validate_metadata
from docsearch.errors import InvalidInputError


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class SearchFilter:
    """Coarse candidate filter for hybrid search.

    Every set field must match. Keywords must each appear in the chunk text
    (case-insensitive). Metadata uses containment: scalars compare equal,
    list values must all be present in the document's list.
    """

    document_ids: frozenset[str] | None = None
    document_type: str | None = None
    category: str | None = None
    language: str | None = None
    file_type: str | None = None
    keywords: tuple[str, ...] = ()
    metadata: Metadata = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict | None) -> "SearchFilter | None":
        """Build a filter from a JSON-like dict; returns None when empty."""
        if not data:
            return None
        unknown = set(data) - {
            "document_ids", "document_type", "category", "language",
            "file_type", "keywords", "metadata",
        }
        if unknown:
            raise InvalidInputError(f"Unknown filter fields: {', '.join(sorted(unknown))}")

        ids = data.get("document_ids")
        keywords = data.get("keywords") or ()
        if isinstance(keywords, str):
            keywords = (keywords,)
        search_filter = cls(
            document_ids=frozenset(ids) if ids else None,
            document_type=data.get("document_type"),
            category=data.get("category"),
            language=data.get("language"),
            file_type=data.get("file_type"),
            keywords=tuple(k.strip() for k in keywords if k and k.strip()),
            metadata=validate_metadata(data.get("metadata")),
        )
        return None if search_filter.is_empty else search_filter

    @property
    def is_empty(self) -> bool:
        return not (
            self.document_ids
            or self.document_type
            or self.category
            or self.language
            or self.file_type
            or self.keywords
            or self.metadata
        )

    def matches_document(self, document: Document) -> bool:
        if self.document_ids is not None and document.id not in self.document_ids:
            return False
        if self.document_type and document.tags.document_type != self.document_type:
            return False
        if self.category and document.tags.category != self.category:
            return False
        if self.language and document.tags.language != self.language:
            return False
        if self.file_type and document.file_type != self.file_type:
            return False
        for key, expected in self.metadata.items():
            actual = document.metadata.get(key)
            if isinstance(expected, list):
                if not isinstance(actual, list) or not set(expected) <= set(actual):
                    return False
            elif key not in document.metadata or actual != expected:
                return False
        return True

    def matches_chunk(self, content: str) -> bool:
        lowered = content.lower()
        return all(keyword.lower() in lowered for keyword in self.keywords)

    def to_sql(self, doc_alias: str = "d", chunk_alias: str = "c") -> tuple[list[str], dict]:
        """Translate the filter into WHERE clauses with named parameters."""
        clauses: list[str] = []
        params: dict = {}

        if self.document_ids is not None:
            clauses.append(f"{doc_alias}.id = ANY(%(f_document_ids)s)")
            params["f_document_ids"] = sorted(self.document_ids)
        for name in ("document_type", "category", "language"):
            value = getattr(self, name)
            if value:
                clauses.append(f"{doc_alias}.tags ->> '{name}' = %(f_{name})s")
                params[f"f_{name}"] = value
        if self.file_type:
            clauses.append(f"{doc_alias}.file_type = %(f_file_type)s")
            params["f_file_type"] = self.file_type
        for i, keyword in enumerate(self.keywords):
            clauses.append(f"{chunk_alias}.content ILIKE %(f_kw{i})s")
            params[f"f_kw{i}"] = f"%{_escape_like(keyword)}%"
        if self.metadata:
            clauses.append(f"{doc_alias}.metadata @> %(f_metadata)s::jsonb")
            params["f_metadata"] = json.dumps(self.metadata)

        return clauses, params
