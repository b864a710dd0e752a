"""Token-bounded overlapping chunking."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List

from langchain_text_splitters import RecursiveCharacterTextSplitter

from docsearch.domain.chunk import Chunk, make_chunk_id
from docsearch.pipeline.config import ChunkingConfig

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\S+")


def count_tokens(text: str) -> int:
    """Count whitespace-delimited tokens.

    This is the only token estimate in the package: chunk sizing, the stored
    chunk token counts and the stats average all go through it.
    """
    return len(_TOKEN_RE.findall(text))


@dataclass(frozen=True, slots=True)
class TextSegment:
    """One chunk of raw text before it is bound to a document."""

    content: str
    index: int
    token_count: int


class ChunkingStrategy:
    """Overlapping token windows built with RecursiveCharacterTextSplitter.

    Short trailing fragments are merged into the previous chunk: when the
    last window has fewer than ``min_chunk_size`` tokens, the previous chunk
    is extended to the end of the text and the fragment is removed. The merged
    chunk may exceed ``chunk_size`` by less than ``min_chunk_size`` tokens.
    A document whose only chunk is short keeps that chunk.
    """

    def __init__(self, config: ChunkingConfig | None = None):
        """Initialize chunking strategy."""
        self._config = config or ChunkingConfig()
        self._config.validate()

        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=self._config.chunk_size,
            chunk_overlap=self._config.chunk_overlap,
            length_function=count_tokens,
            separators=["\n\n", "\n", ". ", " ", ""],
            keep_separator="end",
        )

    @property
    def config(self) -> ChunkingConfig:
        return self._config

    def split_text(self, text: str) -> List[TextSegment]:
        """Split text into ordered, overlapping segments."""
        if not text or not text.strip():
            return []

        if count_tokens(text) <= self._config.chunk_size:
            content = text.strip()
            return [TextSegment(content=content, index=0, token_count=count_tokens(content))]

        pieces = [p for p in self._splitter.split_text(text) if p.strip()]
        starts = self._locate(text, pieces, self._config.chunk_overlap)

        if (
            len(pieces) > 1
            and count_tokens(pieces[-1]) < self._config.min_chunk_size
        ):
            logger.debug(
                "Merging trailing fragment of %d tokens into previous chunk",
                count_tokens(pieces[-1]),
            )
            pieces[-2] = text[starts[-2]:].strip()
            pieces.pop()

        return [
            TextSegment(content=piece, index=i, token_count=count_tokens(piece))
            for i, piece in enumerate(pieces)
        ]

    def split(self, doc_id: str, text: str) -> List[Chunk]:
        """Split a document's text into chunks with stable ids."""
        return [
            Chunk(
                chunk_id=make_chunk_id(doc_id, segment.index, segment.content),
                doc_id=doc_id,
                chunk_index=segment.index,
                content=segment.content,
                token_count=segment.token_count,
            )
            for segment in self.split_text(text)
        ]

    @staticmethod
    def _locate(text: str, pieces: List[str], overlap: int) -> List[int]:
        """Find the start offset of each piece in ``text``.

        A piece shares at most ``overlap`` tokens with its predecessor, so it
        cannot start before the predecessor's last ``overlap`` tokens. Searching
        from there keeps repeated passages from matching an earlier copy.
        """
        starts: List[int] = []
        cursor = 0
        for piece in pieces:
            pos = text.find(piece, cursor)
            if pos < 0:
                # Only possible if the splitter rewrote whitespace inside a piece.
                pos = cursor
            starts.append(pos)

            tokens = list(_TOKEN_RE.finditer(piece))
            if overlap == 0:
                cursor = pos + len(piece)
            elif len(tokens) > overlap:
                cursor = pos + tokens[-overlap].start()
            else:
                cursor = pos + 1
        return starts


def chunk_text(text: str, config: ChunkingConfig | None = None) -> List[TextSegment]:
    """Split text into ordered segments with the given configuration."""
    return ChunkingStrategy(config).split_text(text)
