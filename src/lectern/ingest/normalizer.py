"""Content normalizer — any source in, length-bounded plain text out.

Sources:
  RawText    → title + content as given
  FileSource → dispatched on media type:
                 application/pdf              → PdfExtractor
                 text/html, xhtml             → WebExtractor (main-content selection)
                 text/*, json, xml, yaml, md  → PlainTextExtractor
  WebPage    → fetched (or pre-rendered HTML) → WebExtractor

Two budgets apply. Persisted content is capped at ``storage_limit``; the text
sent for embedding is the first ``embed_limit`` characters of that. An empty
result raises EmptyContentError, before anything external is called.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import PurePath
from typing import Union

from lectern.config import LimitsCfg
from lectern.db.models import INLINE_ORIGIN
from lectern.errors import EmptyContentError, ExtractionFailure, ValidationFailure
from lectern.ingest.base import BaseExtractor, Extracted
from lectern.ingest.pdf import PdfExtractor
from lectern.ingest.plaintext import PlainTextExtractor
from lectern.ingest.web import WebExtractor

_HTML_TYPES = {"text/html", "application/xhtml+xml"}
_TEXT_APPLICATION_TYPES = {
    "application/json",
    "application/xml",
    "application/x-yaml",
    "application/yaml",
    "application/x-ndjson",
    "application/markdown",
}
_GENERIC_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

# mimetypes does not know these on every platform.
_EXTRA_EXTENSIONS = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".yaml": "application/yaml",
    ".yml": "application/yaml",
    ".rst": "text/x-rst",
    ".log": "text/plain",
}


@dataclass
class RawText:
    """A free-form text block supplied directly by the user."""

    title: str
    content: str


@dataclass
class FileSource:
    """Uploaded bytes with their declared media type.

    Attributes:
        data: File contents.
        media_type: Declared MIME type (may be generic; the filename is then used).
        filename: Original filename — becomes the item title.
        origin: Where the bytes are stored; defaults to *filename*.
    """

    data: bytes
    media_type: str
    filename: str
    origin: str | None = None


@dataclass
class WebPage:
    """A page to scrape. If *html* is given it is used instead of fetching *url*."""

    url: str
    html: bytes | None = None


Source = Union[RawText, FileSource, WebPage]


@dataclass
class NormalizedText:
    title: str
    content: str
    media_type: str
    origin: str
    embed_limit: int

    @property
    def embed_text(self) -> str:
        """The prefix of ``content`` that is sent to the embedding model."""
        return self.content[: self.embed_limit]


class Normalizer:
    """Turn a Source into NormalizedText under the configured limits.

    Pure transformation except for WebPage sources without pre-rendered HTML,
    which are fetched through the WebExtractor.
    """

    def __init__(self, limits: LimitsCfg | None = None) -> None:
        self.limits = limits or LimitsCfg()
        if self.limits.embed_limit > self.limits.storage_limit:
            raise ValueError("embed_limit must not exceed storage_limit")
        storage = self.limits.storage_limit
        self._pdf = PdfExtractor(storage)
        self._web = WebExtractor(storage)
        self._text = PlainTextExtractor(storage)

    def normalize(self, source: Source) -> NormalizedText:
        """Extract and bound the text of *source*.

        Raises:
            ValidationFailure: Missing title on a text block, or missing URL.
            EmptyContentError: Extraction produced no usable text.
            ExtractionFailure: The source could not be read at all.
        """
        if isinstance(source, RawText):
            return self._normalize_raw(source)
        if isinstance(source, FileSource):
            return self._normalize_file(source)
        if isinstance(source, WebPage):
            return self._normalize_page(source)
        raise TypeError(f"Unsupported source type: {type(source).__name__}")

    # ------------------------------------------------------------------
    # Per-source handling
    # ------------------------------------------------------------------

    def _normalize_raw(self, source: RawText) -> NormalizedText:
        title = (source.title or "").strip()
        if not title:
            raise ValidationFailure("Title and content are required.")
        return self._finish(
            Extracted(text=(source.content or "").strip()),
            title=title,
            media_type="text/plain",
            origin=INLINE_ORIGIN,
        )

    def _normalize_file(self, source: FileSource) -> NormalizedText:
        media_type = resolve_media_type(source.media_type, source.filename)
        extractor = self._extractor_for(media_type)
        if extractor is None:
            raise ExtractionFailure(
                f"Unsupported media type '{media_type}' for '{source.filename}'."
            )
        extracted = extractor.extract(source.data)
        return self._finish(
            extracted,
            title=PurePath(source.filename).name or source.filename,
            media_type=media_type,
            origin=source.origin or source.filename,
        )

    def _normalize_page(self, source: WebPage) -> NormalizedText:
        url = (source.url or "").strip()
        if not url:
            raise ValidationFailure("URL is required.")
        if source.html is not None:
            extracted = self._web.extract(source.html)
        else:
            extracted = self._web.extract_url(url)
        return self._finish(
            extracted,
            title=extracted.title or url,
            media_type="text/html",
            origin=url,
        )

    def _extractor_for(self, media_type: str) -> BaseExtractor | None:
        if media_type == "application/pdf":
            return self._pdf
        if media_type in _HTML_TYPES:
            return self._web
        if media_type.startswith("text/") or media_type in _TEXT_APPLICATION_TYPES:
            return self._text
        return None

    def _finish(
        self, extracted: Extracted, title: str, media_type: str, origin: str
    ) -> NormalizedText:
        content = extracted.text[: self.limits.storage_limit]
        if not content:
            raise EmptyContentError(f"Could not extract text from '{title}'.")
        return NormalizedText(
            title=title,
            content=content,
            media_type=media_type,
            origin=origin,
            embed_limit=self.limits.embed_limit,
        )


def resolve_media_type(declared: str | None, filename: str) -> str:
    """Declared type without parameters; guessed from *filename* if generic."""
    media_type = (declared or "").split(";")[0].strip().lower()
    if media_type in _GENERIC_TYPES:
        suffix = PurePath(filename).suffix.lower()
        guessed = _EXTRA_EXTENSIONS.get(suffix) or mimetypes.guess_type(filename)[0]
        media_type = guessed or "application/octet-stream"
    return media_type
