"""Text chunking for document processing."""

import logging
import re
from typing import List

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to a single space and trim the ends."""
    return _WHITESPACE.sub(" ", text or "").strip()


def chunk_text(
    text: str,
    *,
    chunk_size: int = 1200,
    overlap: int = 150,
    max_chunks: int = 80,
) -> List[str]:
    """
    Split text into overlapping fixed-size chunks.

    Boundaries are computed over the whitespace-normalized text. Chunk ``i``
    starts at ``i * (chunk_size - overlap)``; the overlap keeps a fact that
    straddles a boundary intact in at least one chunk.

    Documents longer than ``max_chunks`` chunks keep only their first
    ``max_chunks`` chunks; the tail is not indexed.

    Args:
        text: Raw document text
        chunk_size: Maximum characters per chunk
        overlap: Characters shared by consecutive chunks
        max_chunks: Hard cap on chunks per document

    Returns:
        List of text chunks, empty when the cleaned text is empty
    """
    if chunk_size <= 0 or max_chunks <= 0:
        raise ValueError("chunk_size and max_chunks must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(f"overlap must be in [0, {chunk_size}), got {overlap}")

    cleaned = normalize_whitespace(text)
    if not cleaned:
        return []

    step = chunk_size - overlap
    chunks = []
    start = 0
    while True:
        chunks.append(cleaned[start:start + chunk_size])
        if start + chunk_size >= len(cleaned):
            break
        if len(chunks) == max_chunks:
            logger.debug(
                f"[CHUNKER] Truncated at {max_chunks} chunks, "
                f"dropping {len(cleaned) - (start + chunk_size)} trailing chars"
            )
            break
        start += step

    return chunks
