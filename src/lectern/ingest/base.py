"""Base extractor interface for all Lectern media types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class Extracted:
    """Plain text pulled from a source, plus a title if the source carries one."""

    text: str
    title: str | None = None


class BaseExtractor(ABC):
    """Abstract base for all extractors.

    Subclasses implement ``extract()``. Output is stripped of surrounding
    whitespace and then cut to at most ``storage_limit`` characters; extractors
    that read incrementally should stop as soon as the limit is reached.
    """

    def __init__(self, storage_limit: int = 25_000) -> None:
        if storage_limit < 1:
            raise ValueError("storage_limit must be >= 1")
        self.storage_limit = storage_limit

    @abstractmethod
    def extract(self, data: bytes) -> Extracted:
        """Return the text content of *data*.

        Raises:
            lectern.errors.ExtractionFailure: If *data* cannot be read.
        """

    def _clip(self, text: str) -> str:
        return text.strip()[: self.storage_limit]
