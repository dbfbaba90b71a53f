"""Knowledge ingestion: fetch, extract, chunk and store catalog URLs."""

from healthkb.ingest.chunker import FixedSizeChunker, truncate
from healthkb.ingest.extract import ExtractedDocument, ExtractionError, extract
from healthkb.ingest.pipeline import (
    IngestOutcome,
    IngestReport,
    Ingestor,
    OutcomeStatus,
)
from healthkb.ingest.web import FetchedPage, FetchError, PageFetcher, SsrfError

__all__ = [
    "ExtractedDocument",
    "ExtractionError",
    "FetchError",
    "FetchedPage",
    "FixedSizeChunker",
    "IngestOutcome",
    "IngestReport",
    "Ingestor",
    "OutcomeStatus",
    "PageFetcher",
    "SsrfError",
    "extract",
    "truncate",
]
