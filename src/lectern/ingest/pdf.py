"""PDF extractor — page-based extraction via pypdf."""

from __future__ import annotations

from io import BytesIO

import pypdf
from pypdf.errors import PdfReadError

from lectern.errors import ExtractionFailure
from lectern.ingest.base import BaseExtractor, Extracted

PAGE_SEPARATOR = "\n\n"


class PdfExtractor(BaseExtractor):
    """Extract text from a PDF page by page.

    Strategy:
    - Read pages in order via ``pypdf.PdfReader``.
    - Join page text with PAGE_SEPARATOR.
    - Stop reading pages once the accumulated text reaches ``storage_limit``,
      then clip to exactly that length.
    - Pages that yield no text (scanned images, etc.) are skipped.
    """

    def extract(self, data: bytes) -> Extracted:
        try:
            reader = pypdf.PdfReader(BytesIO(data))
        except (PdfReadError, ValueError, OSError) as exc:
            raise ExtractionFailure(f"Could not read PDF: {exc}") from exc

        parts: list[str] = []
        length = 0
        for page in reader.pages:
            stripped = (page.extract_text() or "").strip()
            if not stripped:
                continue
            if parts:
                length += len(PAGE_SEPARATOR)
            parts.append(stripped)
            length += len(stripped)
            if length >= self.storage_limit:
                break
        return Extracted(text=self._clip(PAGE_SEPARATOR.join(parts)))
