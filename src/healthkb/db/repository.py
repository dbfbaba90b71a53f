"""Repository pattern for all knowledge store operations.

Single interface for: sources, chunks, and FTS5 search.
"""

from __future__ import annotations

import re
import sqlite3

from healthkb.db.models import Chunk, SearchHit, Source


class SourceExistsError(Exception):
    """Raised when a source with the same URL is already stored."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Source already exists: {url}")
        self.url = url


class Repository:
    """Data access layer for sources, chunks and full-text search.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see healthkb.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def add_source_with_chunks(self, source: Source, chunks: list[Chunk]) -> int:
        """Insert *source* and its *chunks* in one transaction.

        Chunks are written with their FTS5 rows. Either everything is stored
        or nothing is: a failed chunk insert rolls back the source row too.

        Args:
            source: Source to persist (``id`` is ignored and assigned here).
            chunks: Chunks of the source, ``source_id`` is filled in here.

        Returns:
            The new source id.

        Raises:
            SourceExistsError: If a source with ``source.url`` already exists.
            sqlite3.Error: On any other write failure.
        """
        try:
            with self._conn:
                cur = self._conn.execute(
                    """
                    INSERT INTO sources (url, title, content, fetched_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (source.url, source.title, source.content, source.fetched_at),
                )
                source_id = cur.lastrowid
                for chunk in chunks:
                    chunk.source_id = source_id
                    chunk.id = self._insert_chunk(chunk)
        except sqlite3.IntegrityError as exc:
            if "sources.url" in str(exc):
                raise SourceExistsError(source.url) from exc
            raise
        source.id = source_id
        return source_id

    def get_source(self, source_id: int) -> Source | None:
        """Return a source by id, or None if not found."""
        row = self._conn.execute(
            "SELECT id, url, title, content, fetched_at FROM sources WHERE id = ?",
            (source_id,),
        ).fetchone()
        return _row_to_source(row) if row else None

    def get_source_by_url(self, url: str) -> Source | None:
        """Return a source by its URL, or None if not found.

        Args:
            url: The URL the source was fetched from.

        Returns:
            Source instance or None.
        """
        row = self._conn.execute(
            "SELECT id, url, title, content, fetched_at FROM sources WHERE url = ?",
            (url,),
        ).fetchone()
        return _row_to_source(row) if row else None

    def list_sources(self) -> list[Source]:
        """Return all sources ordered by fetch time (oldest first)."""
        rows = self._conn.execute(
            "SELECT id, url, title, content, fetched_at FROM sources ORDER BY fetched_at, id"
        ).fetchall()
        return [_row_to_source(r) for r in rows]

    def count_sources(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM sources").fetchone()[0]

    def last_fetched_at(self) -> str | None:
        """Return the most recent ``fetched_at`` timestamp, or None if empty."""
        return self._conn.execute("SELECT MAX(fetched_at) FROM sources").fetchone()[0]

    def delete_source(self, source_id: int) -> None:
        """Delete a source, its chunks (cascade) and their FTS5 rows."""
        with self._conn:
            self._conn.execute(
                "DELETE FROM chunks_fts WHERE rowid IN (SELECT id FROM chunks WHERE source_id = ?)",
                (source_id,),
            )
            self._conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def get_chunks_by_source(self, source_id: int) -> list[Chunk]:
        """Return the chunks of *source_id* in ascending ``chunk_index`` order."""
        rows = self._conn.execute(
            """
            SELECT id, source_id, content, chunk_index
            FROM chunks WHERE source_id = ? ORDER BY chunk_index
            """,
            (source_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self, source_id: int | None = None) -> int:
        """Return the number of chunks, optionally restricted to one source."""
        if source_id is None:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE source_id = ?", (source_id,)
        ).fetchone()[0]

    def _insert_chunk(self, chunk: Chunk) -> int:
        """Insert chunk + sync FTS5 index. Caller owns the transaction."""
        cur = self._conn.execute(
            "INSERT INTO chunks (source_id, content, chunk_index) VALUES (?, ?, ?)",
            (chunk.source_id, chunk.content, chunk.chunk_index),
        )
        rowid = cur.lastrowid
        # Keep FTS5 in sync with explicit rowid mapping
        self._conn.execute(
            "INSERT INTO chunks_fts(rowid, content) VALUES (?, ?)", (rowid, chunk.content)
        )
        return rowid

    # ------------------------------------------------------------------
    # FTS5 / BM25 search
    # ------------------------------------------------------------------

    def search_fts(self, query: str, limit: int = 5) -> list[SearchHit]:
        """BM25 full-text search over chunk content, best match first.

        Each query word is quoted and the words are OR-joined, so free text
        from a chat message never hits FTS5 query syntax.
        """
        fts_query = to_fts_query(query)
        if not fts_query:
            return []
        rows = self._conn.execute(
            """
            SELECT c.id, c.source_id, c.content, c.chunk_index,
                   s.title AS source_title, s.url AS source_url,
                   bm25(chunks_fts) AS score
            FROM chunks_fts
            JOIN chunks c ON c.id = chunks_fts.rowid
            JOIN sources s ON s.id = c.source_id
            WHERE chunks_fts MATCH ?
            ORDER BY score
            LIMIT ?
            """,
            (fts_query, limit),
        ).fetchall()
        return [
            SearchHit(
                chunk=_row_to_chunk(r),
                source_title=r["source_title"],
                source_url=r["source_url"],
                score=r["score"],
            )
            for r in rows
        ]


def to_fts_query(text: str) -> str:
    """Turn free text into an FTS5 query: quoted words joined with OR."""
    words = re.findall(r"\w+", text)
    return " OR ".join(f'"{w}"' for w in words)


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        content=row["content"],
        fetched_at=row["fetched_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        source_id=row["source_id"],
        content=row["content"],
        chunk_index=row["chunk_index"],
    )
