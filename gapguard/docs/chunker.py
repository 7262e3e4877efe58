"""Document chunker - deterministic overlapping windows over normalized text."""

import re

_WHITESPACE = re.compile(r"\s+")
_SENTENCE_TERMINATORS = ".?!"


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE.sub(" ", text).strip()


def _last_sentence_end(text: str, end: int) -> int:
    """Index of the last sentence terminator at or before ``end`` (-1 if none)."""
    return max(text.rfind(terminator, 0, end + 1) for terminator in _SENTENCE_TERMINATORS)


def chunk_text(
    text: str,
    *,
    chunk_size: int = 1000,
    overlap: int = 100,
    min_chunk_chars: int = 20,
) -> list[tuple[int, str]]:
    """Chunk document text into ordered, overlapping segments.

    Pure function with no I/O or randomness.

    Args:
        text: Raw extracted document text
        chunk_size: Target characters per chunk (default 1000)
        overlap: Characters shared between consecutive windows (default 100)
        min_chunk_chars: Windowed chunks of this length or shorter are dropped

    Returns:
        List of (chunk_index, chunk_text) tuples where:
        - chunk_index is 0-based, strictly increasing, without gaps
        - chunk_text is trimmed, non-empty text
        - A chunk may exceed chunk_size by one character when the cut lands
          just after a terminator sitting exactly at the window end

    Strategy:
        1. Collapse whitespace; text that fits in one window is the only chunk
        2. Otherwise cut each window at the last sentence terminator past the
           window midpoint, else the last space past the midpoint, else at
           chunk_size
        3. Step back by ``overlap`` for the next window, always advancing
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    if not text:
        return []

    clean = normalize_whitespace(text)
    if not clean:
        return []

    if len(clean) <= chunk_size:
        return [(0, clean)]

    midpoint = chunk_size * 0.5
    pieces: list[str] = []
    start = 0

    while start < len(clean):
        end = start + chunk_size

        if end < len(clean):
            sentence_end = _last_sentence_end(clean, end)
            if sentence_end > start + midpoint:
                end = sentence_end + 1
            else:
                last_space = clean.rfind(" ", 0, end + 1)
                if last_space > start + midpoint:
                    end = last_space

        pieces.append(clean[start:end].strip())

        start = max(start + 1, end - overlap)

    kept = [piece for piece in pieces if len(piece) > min_chunk_chars]
    return list(enumerate(kept))
