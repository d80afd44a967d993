"""Embedding client — normalized text in, fixed-width vector out.

Newlines are flattened to spaces before the text is sent. A successful call is
metered with the embedding model's input rate (embeddings have no output
tokens) and the usage record is returned alongside the vector. Transport and
API failures yield None; callers must not persist anything in that case.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from lectern.config import ConfigError
from lectern.db.models import UsageRecord
from lectern.errors import EmbeddingFailure
from lectern.metering import UsageMeter
from lectern.rag import llm_client

logger = logging.getLogger(__name__)

_NEWLINES_RE = re.compile(r"\r\n|\r|\n")


@dataclass
class Embedding:
    vector: list[float]
    usage: UsageRecord


class EmbeddingClient:
    """Wraps the external embedding API for one configured model.

    Args:
        meter:      Usage meter that records every successful call.
        model:      LiteLLM embedding model string (provider/model format).
        dimensions: Width the store's vector column was created with.
    """

    def __init__(self, meter: UsageMeter, model: str, dimensions: int) -> None:
        self._meter = meter
        self.model = model
        self.dimensions = dimensions

    def embed(self, text: str) -> Embedding | None:
        """Embed *text* (non-empty, already within the embed limit).

        Returns:
            The vector plus its usage record, or None if the call failed.

        Raises:
            ConfigError: If the model returns a vector whose width differs
                from the configured dimensions. The call is metered first.
            MissingApiKeyError: If the API key for the model's provider is not set.
        """
        if not text or not text.strip():
            logger.warning("embed() called with empty text; nothing sent.")
            return None

        llm_client.validate_api_key(self.model)
        try:
            response = llm_client.embed(self.model, prepare_text(text))
        except Exception:
            logger.error("Embedding request to '%s' failed.", self.model, exc_info=True)
            return None

        if not response.vector:
            logger.error("Embedding model '%s' returned no vector.", self.model)
            return None

        usage = self._meter.record(
            self.model,
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=0,
            total_tokens=response.usage.total_tokens or response.usage.prompt_tokens,
        )

        if len(response.vector) != self.dimensions:
            raise ConfigError(
                f"Embedding model '{self.model}' returned {len(response.vector)} dimensions "
                f"but the store expects {self.dimensions}. "
                "Set embedding.dimensions to match the model."
            )
        return Embedding(vector=response.vector, usage=usage)

    def embed_or_raise(self, text: str, purpose: str) -> Embedding:
        """Like embed(), but raise EmbeddingFailure instead of returning None."""
        result = self.embed(text)
        if result is None:
            raise EmbeddingFailure(f"Failed to generate embedding for the {purpose}.")
        return result


def prepare_text(text: str) -> str:
    """Replace literal line breaks with spaces."""
    return _NEWLINES_RE.sub(" ", text)
