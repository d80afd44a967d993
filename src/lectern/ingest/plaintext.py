"""Plain text extractor — UTF-8 decode with replacement."""

from __future__ import annotations

from lectern.ingest.base import BaseExtractor, Extracted


class PlainTextExtractor(BaseExtractor):
    """Decode text-like uploads (text/*, JSON, XML, Markdown) as UTF-8.

    Undecodable bytes are replaced rather than rejected; a leading BOM is
    dropped.
    """

    def extract(self, data: bytes) -> Extracted:
        text = data.decode("utf-8", errors="replace").lstrip("\ufeff")
        return Extracted(text=self._clip(text))
