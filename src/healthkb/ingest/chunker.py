"""Fixed-size character chunker."""

from __future__ import annotations

from healthkb.db.models import Chunk

DEFAULT_CHUNK_SIZE = 1_000


class FixedSizeChunker:
    """Split text into consecutive, non-overlapping windows of ``chunk_size``.

    Windows are taken verbatim: no stripping, no overlap, so joining the
    chunk texts in ``chunk_index`` order gives back the input exactly.
    Only the final window may be shorter than ``chunk_size``.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.chunk_size = chunk_size

    def split(self, text: str) -> list[str]:
        size = self.chunk_size
        return [text[i : i + size] for i in range(0, len(text), size)]

    def chunk(self, content: str, source_id: int | None = None) -> list[Chunk]:
        """Return sequentially indexed Chunks for *content* (empty text → [])."""
        return [
            Chunk(content=part, chunk_index=i, source_id=source_id)
            for i, part in enumerate(self.split(content))
        ]


def truncate(content: str, max_chars: int) -> str:
    """Hard-cap *content* at *max_chars* characters; the tail is dropped."""
    if max_chars < 1:
        raise ValueError("max_chars must be >= 1")
    return content[:max_chars] if len(content) > max_chars else content
