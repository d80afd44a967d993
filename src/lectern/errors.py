"""Error taxonomy for the ingestion, retrieval and Q&A core.

Every error carries a short, user-facing message and the exit code the CLI
uses when the error reaches the request boundary. None of them is retried.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator


class LecternError(Exception):
    """Base class for all errors surfaced at the request boundary."""

    exit_code: int = 1
    kind: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ExtractionFailure(LecternError):
    """Content could not be turned into usable text. Raised before any external call."""

    kind = "extraction_failure"


class EmptyContentError(ExtractionFailure):
    """Extraction succeeded but produced no usable text."""


class EmbeddingFailure(LecternError):
    """The embedding call failed or returned no vector. Nothing was persisted."""

    kind = "embedding_failure"


class StoreFailure(LecternError):
    """A persistence or read operation against the store failed."""

    kind = "store_failure"


class NotFound(LecternError):
    """A referenced content item or notebook does not exist."""

    exit_code = 3
    kind = "not_found"


class GenerationFailure(LecternError):
    """The language-model call failed during summarization, analysis or Q&A."""

    kind = "generation_failure"


class ValidationFailure(LecternError):
    """A required input is missing or invalid (empty query, question, title...)."""

    exit_code = 2
    kind = "validation_failure"


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Re-raise sqlite3 errors inside the block as StoreFailure.

    Usage:
        with store_errors("save content item"):
            repo.add_item(item, vec_table)
    """
    try:
        yield
    except sqlite3.Error as exc:
        raise StoreFailure(f"Could not {action}: {exc}") from exc
