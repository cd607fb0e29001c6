"""Text chunking with overlap for the RAG pipeline.

Implements a fixed-width, character-based sliding window. Python strings are
sequences of code points, so a window never splits a multi-byte character.
"""
import math
from typing import List
from dataclasses import dataclass
import structlog

from elearn import config

logger = structlog.get_logger()


@dataclass(frozen=True)
class TextChunk:
    """Represents a chunk of text with position information.

    ``char_start``/``char_end`` are the window offsets in the source text,
    before leading/trailing whitespace was trimmed from ``content``.
    """

    content: str
    char_start: int
    char_end: int
    chunk_index: int


def expected_chunk_count(text_length: int, chunk_size: int, chunk_overlap: int) -> int:
    """Number of windows the sliding walk visits for a text of this length.

    Equals ``ceil((length - overlap) / (size - overlap))`` once the text is
    longer than one window.

    Trimming can only drop windows, so this is an upper bound on the number
    of emitted chunks.
    """
    if text_length <= 0:
        return 0
    if text_length <= chunk_size:
        return 1
    step = chunk_size - chunk_overlap
    return math.ceil((text_length - chunk_overlap) / step)


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)

        Raises:
            ValueError: If the size is not positive or the overlap is not in
                ``[0, chunk_size)``
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = (
            config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        )

        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise ValueError(f"Overlap must not be negative, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )

    @property
    def step(self) -> int:
        return self.chunk_size - self.chunk_overlap

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        The window start advances by ``chunk_size - chunk_overlap`` until a
        window reaches the end of the text. Each window is stripped and windows that
        are empty after stripping are dropped, so ``chunk_index`` stays
        contiguous over the emitted chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects in sequence order
        """
        if not text:
            return []

        text_length = len(text)
        chunks = []
        start = 0

        while start < text_length:
            end = min(start + self.chunk_size, text_length)
            content = text[start:end].strip()

            if content:
                chunks.append(
                    TextChunk(
                        content=content,
                        char_start=start,
                        char_end=end,
                        chunk_index=len(chunks),
                    )
                )

            # Any later window would lie inside this one's overlap tail
            if end >= text_length:
                break

            start += self.step

        logger.debug(
            "text_chunked",
            text_length=text_length,
            chunk_count=len(chunks),
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

        return chunks

    def chunk(self, text: str) -> List[str]:
        """Split text and return only the chunk strings."""
        return [c.content for c in self.chunk_text(text)]

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
                "overlap": self.chunk_overlap,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def chunk_text(
    text: str,
    chunk_size: int = None,
    chunk_overlap: int = None,
) -> List[str]:
    """Chunk text with a throwaway chunker (convenience function)."""
    return TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap).chunk(text)
