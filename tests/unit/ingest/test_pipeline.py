"""Tests for the Ingestor batch pipeline (fake fetcher, real store)."""

from __future__ import annotations

import sqlite3
from unittest.mock import patch

import pytest

from healthkb.db.models import Chunk, Source
from healthkb.db.repository import Repository, SourceExistsError
from healthkb.ingest.pipeline import (
    IngestOutcome,
    IngestReport,
    Ingestor,
    OutcomeStatus,
)
from healthkb.ingest.web import FetchedPage, FetchError


def _html(title: str, body: str) -> bytes:
    return f"<html><head><title>{title}</title></head><body><p>{body}</p></body></html>".encode()


class FakeFetcher:
    """Serves canned pages; unknown URLs fail with HTTP 404."""

    def __init__(self, pages: dict[str, bytes], events: list | None = None) -> None:
        self.pages = pages
        self.calls: list[str] = []
        self.events = events if events is not None else []

    def fetch(self, url: str) -> FetchedPage:
        self.calls.append(url)
        self.events.append(("fetch", url))
        if url not in self.pages:
            raise FetchError("HTTP 404", status=404)
        return FetchedPage(url=url, body=self.pages[url])


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


def _ingestor(repo, fetcher, events=None, **kwargs):
    events = events if events is not None else []
    kwargs.setdefault("delay_seconds", 0.5)
    return Ingestor(
        repo,
        fetcher,
        sleep=lambda s: events.append(("sleep", s)),
        **kwargs,
    )


A = "https://a.example/page"
B = "https://b.example/page"
C = "https://c.example/page"


# ------------------------------------------------------------------
# Happy path
# ------------------------------------------------------------------


def test_single_page_stored(repo):
    fetcher = FakeFetcher({A: _html("T", "Hello world")})
    report = _ingestor(repo, fetcher).ingest_all([A])

    assert report.success_count == 1
    assert report.error_count == 0
    source = repo.get_source_by_url(A)
    assert source.title == "T"
    assert source.content == "Hello world"
    assert source.fetched_at
    chunks = repo.get_chunks_by_source(source.id)
    assert [(c.chunk_index, c.content) for c in chunks] == [(0, "Hello world")]


def test_outcome_details(repo):
    fetcher = FakeFetcher({A: _html("T", "Hello world")})
    report = _ingestor(repo, fetcher).ingest_all([A])
    outcome = report.outcomes[0]
    assert outcome == IngestOutcome(url=A, status=OutcomeStatus.SUCCESS, title="T", chunk_count=1)
    assert outcome.to_dict() == {
        "url": A,
        "status": "success",
        "title": "T",
        "chunkCount": 1,
        "error": None,
    }


def test_report_message(repo):
    fetcher = FakeFetcher({A: _html("A", "a"), B: _html("B", "b")})
    report = _ingestor(repo, fetcher).ingest_all([A, B, C])
    assert report.message == "Parsing complete: 2 successful, 1 failed"


# ------------------------------------------------------------------
# Deduplication
# ------------------------------------------------------------------


def test_second_run_is_idempotent(repo):
    fetcher = FakeFetcher({A: _html("A", "a"), B: _html("B", "b")})
    _ingestor(repo, fetcher).ingest_all([A, B])
    fetcher.calls.clear()

    report = _ingestor(repo, fetcher).ingest_all([A, B])

    assert report.success_count == 0
    assert report.skipped_count == 2
    assert fetcher.calls == []
    assert repo.count_sources() == 2


def test_duplicate_url_in_same_batch(repo):
    fetcher = FakeFetcher({A: _html("A", "a")})
    report = _ingestor(repo, fetcher).ingest_all([A, A])

    assert [o.status for o in report.outcomes] == [OutcomeStatus.SUCCESS, OutcomeStatus.SKIPPED]
    assert fetcher.calls == [A]
    assert repo.count_sources() == 1


def test_concurrent_insert_counts_as_skip(repo):
    fetcher = FakeFetcher({A: _html("A", "a")})
    with patch.object(repo, "add_source_with_chunks", side_effect=SourceExistsError(A)):
        report = _ingestor(repo, fetcher).ingest_all([A])

    assert report.skipped_count == 1
    assert report.error_count == 0
    assert report.outcomes[0].error == "already exists"


def test_race_with_real_store(repo):
    """Another writer stores the URL between the check and our insert."""
    fetcher = FakeFetcher({A: _html("A", "ours")})
    ingestor = _ingestor(repo, fetcher)
    repo.add_source_with_chunks(
        Source(url=A, title="theirs", content="theirs", fetched_at="2024-01-01"),
        [Chunk(content="theirs", chunk_index=0)],
    )

    outcome = ingestor.ingest_one(A)

    assert outcome.status is OutcomeStatus.SKIPPED
    assert repo.get_source_by_url(A).title == "theirs"
    assert repo.count_chunks() == 1


# ------------------------------------------------------------------
# Failures
# ------------------------------------------------------------------


def test_http_404_recorded_and_batch_continues(repo):
    fetcher = FakeFetcher({B: _html("B", "b")})
    report = _ingestor(repo, fetcher).ingest_all([A, B])

    assert report.error_count == 1
    assert report.success_count == 1
    failed = report.failures()[0]
    assert failed.url == A
    assert failed.error == "HTTP 404"
    assert repo.get_source_by_url(A) is None


def test_empty_page_is_failure(repo):
    fetcher = FakeFetcher({A: b"<html><body></body></html>"})
    report = _ingestor(repo, fetcher).ingest_all([A])
    assert report.error_count == 1
    assert "No text content" in report.outcomes[0].error


def test_store_failure_leaves_nothing_behind(repo):
    fetcher = FakeFetcher({A: _html("A", "x" * 2500)})
    original_insert = repo._insert_chunk
    calls = []

    def failing_insert(chunk):
        calls.append(chunk.chunk_index)
        if chunk.chunk_index == 2:
            raise RuntimeError("disk full")
        return original_insert(chunk)

    with patch.object(repo, "_insert_chunk", side_effect=failing_insert):
        report = _ingestor(repo, fetcher).ingest_all([A])

    assert calls == [0, 1, 2]
    assert report.outcomes[0].status is OutcomeStatus.FAILED
    assert report.outcomes[0].error == "disk full"
    assert repo.get_source_by_url(A) is None
    assert repo.count_chunks() == 0


def test_failed_url_retried_on_next_run(repo):
    fetcher = FakeFetcher({})
    _ingestor(repo, fetcher).ingest_all([A])
    fetcher.pages[A] = _html("A", "now available")

    report = _ingestor(repo, fetcher).ingest_all([A])

    assert report.success_count == 1


def test_exception_without_message_uses_type_name(repo):
    class Boom:
        def fetch(self, url):
            raise ConnectionResetError()

    outcome = _ingestor(repo, Boom()).ingest_one(A)
    assert outcome.error == "ConnectionResetError"


# ------------------------------------------------------------------
# Truncation and chunking
# ------------------------------------------------------------------


def test_content_at_limit_kept_whole(repo):
    fetcher = FakeFetcher({A: _html("A", "a" * 50_000)})
    _ingestor(repo, fetcher).ingest_all([A])
    source = repo.get_source_by_url(A)
    assert len(source.content) == 50_000
    assert repo.count_chunks(source.id) == 50


def test_content_over_limit_truncated(repo):
    fetcher = FakeFetcher({A: _html("A", "a" * 50_000 + "b")})
    _ingestor(repo, fetcher).ingest_all([A])
    source = repo.get_source_by_url(A)
    assert len(source.content) == 50_000
    assert "b" not in source.content
    assert repo.count_chunks(source.id) == 50


def test_chunks_reconstruct_content(repo):
    words = " ".join(f"word{i}" for i in range(700))
    fetcher = FakeFetcher({A: _html("A", words)})
    report = _ingestor(repo, fetcher).ingest_all([A])

    source = repo.get_source_by_url(A)
    chunks = repo.get_chunks_by_source(source.id)
    assert "".join(c.content for c in chunks) == source.content
    assert all(len(c.content) == 1000 for c in chunks[:-1])
    assert 1 <= len(chunks[-1].content) <= 1000
    assert report.outcomes[0].chunk_count == len(chunks)


def test_custom_limits(repo):
    fetcher = FakeFetcher({A: _html("A", "abcdefghij")})
    _ingestor(repo, fetcher, chunk_size=3, max_content_chars=8).ingest_all([A])
    source = repo.get_source_by_url(A)
    chunks = repo.get_chunks_by_source(source.id)
    assert source.content == "abcdefgh"
    assert [c.content for c in chunks] == ["abc", "def", "gh"]


# ------------------------------------------------------------------
# Pacing
# ------------------------------------------------------------------


def test_delay_between_fetches_only(repo):
    events: list = []
    fetcher = FakeFetcher({A: _html("A", "a"), B: _html("B", "b")}, events=events)
    _ingestor(repo, fetcher, events).ingest_all([A, B, C])

    assert events == [
        ("fetch", A),
        ("sleep", 0.5),
        ("fetch", B),
        ("sleep", 0.5),
        ("fetch", C),
    ]


def test_no_delay_for_skipped_urls(repo):
    events: list = []
    fetcher = FakeFetcher({A: _html("A", "a"), B: _html("B", "b")}, events=events)
    _ingestor(repo, fetcher).ingest_all([A])
    events.clear()

    _ingestor(repo, fetcher, events).ingest_all([A, B])

    assert events == [("fetch", B)]


def test_zero_delay_never_sleeps(repo):
    events: list = []
    fetcher = FakeFetcher({A: _html("A", "a"), B: _html("B", "b")}, events=events)
    _ingestor(repo, fetcher, events, delay_seconds=0).ingest_all([A, B])
    assert ("sleep", 0) not in events
    assert [e for e in events if e[0] == "sleep"] == []


def test_fetches_are_sequential(repo):
    active = []
    peak = []

    class Tracking(FakeFetcher):
        def fetch(self, url):
            active.append(url)
            peak.append(len(active))
            try:
                return super().fetch(url)
            finally:
                active.remove(url)

    fetcher = Tracking({A: _html("A", "a"), B: _html("B", "b"), C: _html("C", "c")})
    _ingestor(repo, fetcher).ingest_all([A, B, C])
    assert max(peak) == 1
    assert fetcher.calls == [A, B, C]


# ------------------------------------------------------------------
# Misc
# ------------------------------------------------------------------


def test_on_outcome_called_in_order(repo):
    seen = []
    fetcher = FakeFetcher({A: _html("A", "a")})
    _ingestor(repo, fetcher, on_outcome=lambda o: seen.append((o.url, o.status))).ingest_all(
        [A, B]
    )
    assert seen == [(A, OutcomeStatus.SUCCESS), (B, OutcomeStatus.FAILED)]


def test_empty_url_list(repo):
    report = _ingestor(repo, FakeFetcher({})).ingest_all([])
    assert report == IngestReport()
    assert report.message == "Parsing complete: 0 successful, 0 failed"


@pytest.mark.parametrize(
    "kwargs", [{"max_content_chars": 0}, {"delay_seconds": -1}, {"chunk_size": 0}]
)
def test_invalid_settings(repo, kwargs):
    with pytest.raises(ValueError):
        Ingestor(repo, FakeFetcher({}), **kwargs)


def test_bare_title_and_body_markup(repo):
    url = "https://example.com/a"
    fetcher = FakeFetcher({url: b"<title>A</title><body>Hello   world</body>"})
    _ingestor(repo, fetcher).ingest_all([url])

    source = repo.get_source_by_url(url)
    assert (source.title, source.content) == ("A", "Hello world")
    chunks = repo.get_chunks_by_source(source.id)
    assert [(c.chunk_index, c.content) for c in chunks] == [(0, "Hello world")]


def test_store_lookup_failure_stays_with_its_url(repo):
    fetcher = FakeFetcher({A: _html("A", "a"), B: _html("B", "b")})
    real_lookup = repo.get_source_by_url

    def flaky_lookup(url):
        if url == A:
            raise sqlite3.OperationalError("database is locked")
        return real_lookup(url)

    with patch.object(repo, "get_source_by_url", side_effect=flaky_lookup):
        report = _ingestor(repo, fetcher).ingest_all([A, B])

    assert [o.status for o in report.outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.SUCCESS]
    assert report.outcomes[0].error == "database is locked"
    assert fetcher.calls == [B]
    assert repo.get_source_by_url(B) is not None
