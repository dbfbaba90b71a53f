"""Full-text retrieval of context chunks for a chat message."""

from __future__ import annotations

import logging

from healthkb.db.models import SearchHit
from healthkb.db.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


class Retriever:
    """BM25 search over stored chunks, each hit attributed to its source."""

    def __init__(self, repo: Repository, top_k: int = DEFAULT_TOP_K) -> None:
        if top_k < 1:
            raise ValueError("top_k must be >= 1")
        self.repo = repo
        self.top_k = top_k

    def search(self, query: str, limit: int | None = None) -> list[SearchHit]:
        """Return up to *limit* (default ``top_k``) hits, best first."""
        return self.repo.search_fts(query, limit=self.top_k if limit is None else limit)

    def retrieve_context(self, query: str) -> list[SearchHit]:
        """Best-effort search: any failure is logged and yields no context."""
        try:
            hits = self.search(query)
        except Exception as exc:
            logger.warning("Context search failed, answering without context: %s", exc)
            return []
        logger.debug("Found %d relevant chunks", len(hits))
        return hits
