"""Text chunking with overlap for RAG pipeline.

Implements character-based chunking to avoid tokenizer dependencies. Two
strategies share one chunker:

- ``sentence``: a size-driven sliding window whose end snaps back to the
  nearest sentence or line boundary.
- ``paragraph``: paragraphs are accumulated until the next one would overflow
  the chunk size.

Offsets always refer to the normalized text handed to ``chunk_text`` and are
tracked with a running cursor, so ``content == text[char_start:char_end]``
holds even when paragraphs repeat.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import structlog

from aionus import config
from aionus.errors import ConfigurationError

logger = structlog.get_logger()

STRATEGIES = ("sentence", "paragraph")

_WORD = re.compile(r"\S+")

Span = Tuple[int, int]


@dataclass
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


@dataclass(frozen=True)
class BoundaryMarkers:
    """Strings a chunk may end on, strongest first.

    Primary markers close a sentence, secondary markers close a line.
    """

    primary: Tuple[str, ...] = (". ", "! ", "? ", ".\n", "!\n", "?\n")
    secondary: Tuple[str, ...] = ("\n",)


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        strategy: Optional[str] = None,
        boundaries: Optional[BoundaryMarkers] = None,
        separator: Optional[str] = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Target size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)
            strategy: "sentence" or "paragraph" (default from config)
            boundaries: Boundary markers for the sentence window
            separator: Paragraph separator for the paragraph strategy

        Raises:
            ConfigurationError: If the size, overlap or strategy is invalid
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = (
            config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        )
        self.strategy = strategy or config.CHUNK_STRATEGY
        self.boundaries = boundaries or BoundaryMarkers()
        self.separator = separator or config.PARAGRAPH_SEPARATOR

        # Validate parameters
        if self.chunk_size <= 0:
            raise ConfigurationError(
                f"Chunk size must be positive, got {self.chunk_size}"
            )
        if self.chunk_overlap < 0:
            raise ConfigurationError(
                f"Overlap must not be negative, got {self.chunk_overlap}"
            )
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )
        if self.strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Unknown chunking strategy {self.strategy!r}, "
                f"expected one of {', '.join(STRATEGIES)}"
            )

        logger.info(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            strategy=self.strategy,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Normalized text to chunk

        Returns:
            List of TextChunk objects in document order
        """
        if not text or not text.strip():
            return []

        text_length = len(text)

        # Handle text shorter than chunk size
        if text_length <= self.chunk_size:
            logger.debug(
                "text_shorter_than_chunk_size",
                text_length=text_length,
                chunk_size=self.chunk_size,
            )
            spans = [(0, text_length)]
        elif self.strategy == "paragraph":
            spans = self._paragraph_spans(text)
        else:
            spans = self._window_spans(text, 0, text_length)

        chunks = []
        for start, end in spans:
            start, end = _trim_span(text, start, end)
            if start == end:
                continue
            chunks.append(
                TextChunk(
                    content=text[start:end],
                    char_start=start,
                    char_end=end,
                    chunk_index=len(chunks),
                )
            )

        if chunks:
            logger.info(
                "text_chunked",
                text_length=text_length,
                chunk_count=len(chunks),
                avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks),
                strategy=self.strategy,
            )

        return chunks

    def _window_spans(self, text: str, lo: int, hi: int) -> List[Span]:
        """Slide a boundary-snapping window over ``text[lo:hi]``."""
        spans = []
        start = lo

        while start < hi:
            end = min(start + self.chunk_size, hi)

            # Only snap when the window stops short of the region end
            if end < hi:
                end = self._snap_end(text, start, end)

            spans.append((start, end))

            if end >= hi:
                break

            # Cap the overlap at half the emitted span so each step moves
            # forward by at least a quarter of the chunk size.
            overlap = min(self.chunk_overlap, (end - start) // 2)
            start = end - overlap

        return spans

    def _snap_end(self, text: str, start: int, end: int) -> int:
        """Move ``end`` back to just after the boundary nearest to it.

        The boundary is used only if it lies past the middle of the window,
        so short chunks are not shrunk further.
        """
        best_pos = -1
        best_cut = end

        for marker in self.boundaries.primary + self.boundaries.secondary:
            pos = text.rfind(marker, start, end)
            if pos > best_pos:
                best_pos = pos
                best_cut = pos + len(marker)

        if best_pos > start + self.chunk_size // 2:
            return best_cut
        return end

    def _paragraph_spans(self, text: str) -> List[Span]:
        """Accumulate paragraphs into spans no larger than the chunk size.

        A paragraph that is larger than the chunk size on its own is cut with
        the sentence window instead.
        """
        spans = []
        buf_start = None
        buf_end = None

        for para_start, para_end in self._split_paragraphs(text):
            if para_end - para_start > self.chunk_size:
                if buf_start is not None:
                    spans.append((buf_start, buf_end))
                    buf_start = None
                spans.extend(self._window_spans(text, para_start, para_end))
                continue

            if buf_start is None:
                buf_start = para_start
            elif para_end - buf_start > self.chunk_size:
                spans.append((buf_start, buf_end))
                overlap_start = self._overlap_start(text, buf_start, buf_end)
                buf_start = para_start if overlap_start is None else overlap_start

            buf_end = para_end

        if buf_start is not None:
            spans.append((buf_start, buf_end))

        return spans

    def _split_paragraphs(self, text: str) -> List[Span]:
        """Return trimmed spans of the non-blank paragraphs in ``text``."""
        spans = []
        cursor = 0
        sep_len = len(self.separator)

        while True:
            idx = text.find(self.separator, cursor)
            stop = len(text) if idx == -1 else idx
            start, end = _trim_span(text, cursor, stop)
            if start < end:
                spans.append((start, end))
            if idx == -1:
                break
            cursor = idx + sep_len

        return spans

    def _overlap_start(self, text: str, start: int, end: int) -> Optional[int]:
        """Find where the trailing whole words of ``text[start:end]`` begin.

        The words taken span at most ``chunk_overlap`` characters. Returns
        None when no proper suffix of words fits.
        """
        if self.chunk_overlap == 0:
            return None

        limit = end - self.chunk_overlap
        for match in _WORD.finditer(text, start, end):
            if match.start() > start and match.start() >= limit:
                return match.start()
        return None

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
            "strategy": self.strategy,
        }


def _trim_span(text: str, start: int, end: int) -> Span:
    """Shrink a span so it neither starts nor ends on whitespace."""
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


# Singleton instance for convenience
_chunker_instance = None


def get_chunker() -> TextChunker:
    """Get a singleton text chunker instance.

    Returns:
        TextChunker instance with default config
    """
    global _chunker_instance
    if _chunker_instance is None:
        _chunker_instance = TextChunker()
    return _chunker_instance


# Convenience function
def chunk_text(text: str) -> List[TextChunk]:
    """Chunk text using default chunker (convenience function).

    Args:
        text: Text to chunk

    Returns:
        List of TextChunk objects
    """
    chunker = get_chunker()
    return chunker.chunk_text(text)
