"""Plain-text extraction from fetched pages (HTML, plain text, PDF)."""

from __future__ import annotations

import io
from dataclasses import dataclass

import pypdf
from bs4 import BeautifulSoup

from healthkb.ingest.web import FetchedPage

# Elements whose text never belongs in the extracted content.
_DROP_TAGS = ["script", "style", "noscript", "head", "title"]


class ExtractionError(ValueError):
    """Raised when no usable text can be extracted from a page."""


@dataclass
class ExtractedDocument:
    title: str
    content: str


def collapse_whitespace(text: str) -> str:
    """Collapse every run of whitespace to a single space and trim."""
    return " ".join(text.split())


def html_to_document(html: str | bytes, fallback_title: str) -> ExtractedDocument:
    """Extract the ``<title>`` and the flattened body text of *html*.

    Script and style blocks are dropped along with the document head;
    everything else is reduced to its text with whitespace collapsed, so
    headings and lists come out as plain running text.
    Bytes are decoded by BeautifulSoup, which honours ``<meta charset>``.
    """
    soup = BeautifulSoup(html, "html.parser")

    title = fallback_title
    title_tag = soup.find("title")
    if title_tag is not None:
        title_text = collapse_whitespace(title_tag.get_text())
        if title_text:
            title = title_text

    for tag in soup.find_all(_DROP_TAGS):
        tag.decompose()

    return ExtractedDocument(title=title, content=collapse_whitespace(soup.get_text(" ")))


def pdf_to_document(body: bytes, fallback_title: str) -> ExtractedDocument:
    """Extract page text from a PDF; the title comes from document metadata."""
    try:
        reader = pypdf.PdfReader(io.BytesIO(body))
        parts = [page.extract_text() or "" for page in reader.pages]
        meta_title = reader.metadata.title if reader.metadata else None
    except pypdf.errors.PyPdfError as exc:
        raise ExtractionError(f"Unreadable PDF: {exc}") from exc

    title = collapse_whitespace(meta_title) if meta_title else ""
    return ExtractedDocument(
        title=title or fallback_title,
        content=collapse_whitespace(" ".join(parts)),
    )


def extract(page: FetchedPage) -> ExtractedDocument:
    """Dispatch on the page's content type and return title + plain text.

    Raises:
        ExtractionError: If the page yields no text.
    """
    if page.content_type == "application/pdf":
        doc = pdf_to_document(page.body, fallback_title=page.url)
    elif page.content_type == "text/plain":
        doc = ExtractedDocument(title=page.url, content=collapse_whitespace(page.text))
    else:
        markup = page.text if page.charset else page.body
        doc = html_to_document(markup, fallback_title=page.url)

    if not doc.content:
        raise ExtractionError(f"No text content extracted from {page.url}")
    return doc
