"""Build configured Ingestor / Responder instances for the CLI and server."""

from __future__ import annotations

from collections.abc import Callable

from healthkb.config import HealthKBConfig
from healthkb.db.repository import Repository
from healthkb.ingest.pipeline import Fetcher, IngestOutcome, Ingestor
from healthkb.ingest.web import PageFetcher
from healthkb.rag.responder import Responder, ResponderConfig
from healthkb.rag.retriever import Retriever


def build_fetcher(cfg: HealthKBConfig) -> PageFetcher:
    return PageFetcher(
        user_agent=cfg.ingest.user_agent,
        timeout=cfg.ingest.timeout_seconds,
        max_bytes=cfg.ingest.max_bytes,
        max_redirects=cfg.ingest.max_redirects,
    )


def build_ingestor(
    repo: Repository,
    cfg: HealthKBConfig,
    fetcher: Fetcher | None = None,
    on_outcome: Callable[[IngestOutcome], None] | None = None,
) -> Ingestor:
    return Ingestor(
        repo,
        fetcher or build_fetcher(cfg),
        chunk_size=cfg.ingest.chunk_size,
        max_content_chars=cfg.ingest.max_content_chars,
        delay_seconds=cfg.ingest.delay_seconds,
        on_outcome=on_outcome,
    )


def build_responder(repo: Repository | None, cfg: HealthKBConfig) -> Responder:
    """Responder over *repo*; with no repo it answers without context."""
    retriever = Retriever(repo, top_k=cfg.chat.top_k) if repo is not None else None
    return Responder(
        retriever,
        ResponderConfig(
            model=cfg.chat.model,
            temperature=cfg.chat.temperature,
            max_tokens=cfg.chat.max_tokens,
            timeout_seconds=cfg.chat.timeout_seconds,
        ),
    )
