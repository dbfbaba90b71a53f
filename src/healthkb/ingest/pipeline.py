"""Batch ingestion of catalog URLs into the knowledge store.

For every URL, strictly in order and one at a time:

  1. skip it if a source with that URL is already stored;
  2. fetch the page;
  3. extract the title and plain text;
  4. truncate the text to ``max_content_chars``;
  5. store the source and its fixed-size chunks in one transaction;
  6. pause ``delay_seconds`` before the next fetch.

A failure in any step is recorded as that URL's outcome and the batch moves
on. A unique-URL conflict at insert time (another run stored the URL between
the check and the insert) counts as a skip.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from healthkb.db.models import Source
from healthkb.db.repository import Repository, SourceExistsError
from healthkb.ingest.chunker import DEFAULT_CHUNK_SIZE, FixedSizeChunker, truncate
from healthkb.ingest.extract import extract
from healthkb.ingest.web import FetchedPage, PageFetcher

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTENT_CHARS = 50_000
DEFAULT_DELAY_SECONDS = 0.5


class Fetcher(Protocol):
    def fetch(self, url: str) -> FetchedPage: ...


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class IngestOutcome:
    """Result of ingesting a single URL."""

    url: str
    status: OutcomeStatus
    title: str | None = None
    chunk_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "status": self.status.value,
            "title": self.title,
            "chunkCount": self.chunk_count,
            "error": self.error,
        }


@dataclass
class IngestReport:
    """Per-URL outcomes of one ``ingest_all`` run, in input order."""

    outcomes: list[IngestOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return self._count(OutcomeStatus.SUCCESS)

    @property
    def error_count(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def skipped_count(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def message(self) -> str:
        return (
            f"Parsing complete: {self.success_count} successful, "
            f"{self.error_count} failed"
        )

    def failures(self) -> list[IngestOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.FAILED]

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)


class Ingestor:
    """Populate the knowledge store from a list of URLs, once per URL.

    Args:
        repo: Repository over an open knowledge store.
        fetcher: Object with ``fetch(url) -> FetchedPage``; defaults to
            a PageFetcher with its default limits.
        chunk_size: Characters per chunk.
        max_content_chars: Hard cap on stored content length.
        delay_seconds: Pause between consecutive fetches.
        sleep: Sleep function, injectable for tests.
        on_outcome: Called with each IngestOutcome as soon as it is known.
    """

    def __init__(
        self,
        repo: Repository,
        fetcher: Fetcher | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_content_chars: int = DEFAULT_MAX_CONTENT_CHARS,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        on_outcome: Callable[[IngestOutcome], None] | None = None,
    ) -> None:
        if max_content_chars < 1:
            raise ValueError("max_content_chars must be >= 1")
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.repo = repo
        self.fetcher = fetcher or PageFetcher()
        self.chunker = FixedSizeChunker(chunk_size)
        self.max_content_chars = max_content_chars
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._on_outcome = on_outcome

    def ingest_all(self, urls: Iterable[str]) -> IngestReport:
        """Ingest *urls* sequentially and return the per-URL report."""
        urls = list(urls)
        logger.info("Starting to parse %d knowledge sources...", len(urls))

        report = IngestReport()
        fetched_before = False
        for url in urls:
            outcome = self._check_stored(url)
            if outcome is None:
                if fetched_before and self.delay_seconds:
                    self._sleep(self.delay_seconds)
                fetched_before = True
                outcome = self.ingest_one(url)

            report.outcomes.append(outcome)
            if self._on_outcome is not None:
                self._on_outcome(outcome)

        logger.info("%s (%d skipped)", report.message, report.skipped_count)
        return report

    def _check_stored(self, url: str) -> IngestOutcome | None:
        """SKIPPED if *url* is already stored, FAILED if the lookup errors, else None."""
        try:
            existing = self.repo.get_source_by_url(url)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            logger.error("Error checking %s: %s", url, reason)
            return IngestOutcome(url=url, status=OutcomeStatus.FAILED, error=reason)
        if existing is None:
            return None
        logger.info("Skipping (already exists): %s", url)
        return IngestOutcome(url=url, status=OutcomeStatus.SKIPPED)

    def ingest_one(self, url: str) -> IngestOutcome:
        """Fetch, extract, chunk and store a single URL not yet in the store.

        Never raises: any failure becomes a FAILED outcome.
        """
        logger.info("Fetching: %s", url)
        try:
            page = self.fetcher.fetch(url)
            doc = extract(page)
            content = truncate(doc.content, self.max_content_chars)
            chunks = self.chunker.chunk(content)
            source = Source(
                url=url,
                title=doc.title,
                content=content,
                fetched_at=datetime.now(timezone.utc).isoformat(),
            )
            self.repo.add_source_with_chunks(source, chunks)
        except SourceExistsError:
            logger.info("Skipping (stored concurrently): %s", url)
            return IngestOutcome(url=url, status=OutcomeStatus.SKIPPED, error="already exists")
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            logger.error("Error parsing %s: %s", url, reason)
            return IngestOutcome(url=url, status=OutcomeStatus.FAILED, error=reason)

        logger.info("Parsed: %s (%d chunks)", doc.title, len(chunks))
        return IngestOutcome(
            url=url,
            status=OutcomeStatus.SUCCESS,
            title=doc.title,
            chunk_count=len(chunks),
        )
