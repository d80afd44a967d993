"""Lectern ingest — text extractors, content normalizer, ingestion pipeline."""

from lectern.ingest.base import BaseExtractor, Extracted
from lectern.ingest.normalizer import (
    FileSource,
    NormalizedText,
    Normalizer,
    RawText,
    WebPage,
)
from lectern.ingest.pdf import PdfExtractor
from lectern.ingest.pipeline import Ingestor
from lectern.ingest.plaintext import PlainTextExtractor
from lectern.ingest.web import WebExtractor

__all__ = [
    "BaseExtractor",
    "Extracted",
    "FileSource",
    "Ingestor",
    "NormalizedText",
    "Normalizer",
    "PdfExtractor",
    "PlainTextExtractor",
    "RawText",
    "WebExtractor",
    "WebPage",
]
