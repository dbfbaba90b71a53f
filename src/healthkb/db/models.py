"""Domain models for the knowledge store."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Source:
    url: str
    title: str
    content: str
    fetched_at: str | None = None
    id: int | None = None  # set after insert


@dataclass
class Chunk:
    content: str
    chunk_index: int
    source_id: int | None = None
    id: int | None = None  # set after insert; also the chunks_fts rowid


@dataclass
class SearchHit:
    """A chunk returned by full-text search, with its source for attribution.

    ``score`` is the raw FTS5 bm25() value: lower (more negative) is better.
    """

    chunk: Chunk
    source_title: str
    source_url: str
    score: float
