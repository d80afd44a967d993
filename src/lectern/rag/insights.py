"""Document insights — summaries and analyses of one stored item via LiteLLM.

Each request is a single metered completion over the item's stored content:

  summary              concise summary                     t=0.3  250 tokens
  table_of_contents    sections / subsections outline      t=0.5  500 tokens
  key_insights         bulleted takeaways                  t=0.5  500 tokens
  reflection_questions 3-5 questions for the reader        t=0.5  500 tokens
  analysis             tone, sentiment, key themes report  t=0.4  600 tokens
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from lectern.db.models import ContentItem, UsageRecord
from lectern.errors import GenerationFailure, ValidationFailure
from lectern.metering import UsageMeter
from lectern.rag import llm_client

logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "openai/gpt-4o-mini"


@dataclass(frozen=True)
class _Prompt:
    system: str
    user_prefix: str
    temperature: float
    max_tokens: int


_SUMMARY = _Prompt(
    system="You are a helpful assistant that summarizes documents concisely.",
    user_prefix="Please provide a concise summary of the following text:\n\n",
    temperature=0.3,
    max_tokens=250,
)

ANALYSES: dict[str, _Prompt] = {
    "table_of_contents": _Prompt(
        system=(
            "Generate a table of contents for the following document. List the main "
            "sections and subsections. If the document is short, create a brief outline."
        ),
        user_prefix="",
        temperature=0.5,
        max_tokens=500,
    ),
    "key_insights": _Prompt(
        system=(
            "Extract the key insights and main takeaways from the following text. "
            "Present them as a bulleted list."
        ),
        user_prefix="",
        temperature=0.5,
        max_tokens=500,
    ),
    "reflection_questions": _Prompt(
        system=(
            "Based on the following text, generate a list of 3-5 thought-provoking "
            "reflection questions that challenge the reader to think more deeply about "
            "the content."
        ),
        user_prefix="",
        temperature=0.5,
        max_tokens=500,
    ),
    "analysis": _Prompt(
        system=(
            "You are a helpful assistant that analyzes text and provides detailed reports "
            "on various aspects such as tone, sentiment, and key themes."
        ),
        user_prefix="Please analyze the following text and provide a detailed report:\n\n",
        temperature=0.4,
        max_tokens=600,
    ),
}


@dataclass
class Insight:
    kind: str
    text: str
    usage: UsageRecord


class DocumentInsights:
    """Generate summaries and analyses for stored content items.

    Args:
        meter: Usage meter that records each completion.
        model: LiteLLM model string used for all insight kinds.
    """

    def __init__(self, meter: UsageMeter, model: str = _DEFAULT_MODEL) -> None:
        self._meter = meter
        self._model = model

    def summarize(self, item: ContentItem) -> Insight:
        return self._run("summary", _SUMMARY, item)

    def analyze(self, item: ContentItem, kind: str) -> Insight:
        """Run the analysis named *kind* (see ``ANALYSES``) over *item*."""
        prompt = ANALYSES.get(kind)
        if prompt is None:
            raise ValidationFailure(
                f"Unknown analysis type '{kind}'. Choose one of: {', '.join(ANALYSES)}."
            )
        return self._run(kind, prompt, item)

    def _run(self, kind: str, prompt: _Prompt, item: ContentItem) -> Insight:
        if not item.content or not item.content.strip():
            raise ValidationFailure(f"Item {item.id} has no content to process.")

        messages = [
            {"role": "system", "content": prompt.system},
            {"role": "user", "content": f"{prompt.user_prefix}{item.content}"},
        ]
        llm_client.validate_api_key(self._model)
        try:
            completion = llm_client.complete(
                self._model,
                messages,
                max_tokens=prompt.max_tokens,
                temperature=prompt.temperature,
            )
        except Exception as exc:
            logger.error("Insight '%s' for item %s failed.", kind, item.id, exc_info=True)
            raise GenerationFailure(f"Failed to generate {kind.replace('_', ' ')}.") from exc

        usage = self._meter.record_usage(self._model, completion.usage)
        text = completion.text.strip()
        if not text:
            raise GenerationFailure(f"The language model returned an empty {kind.replace('_', ' ')}.")
        return Insight(kind=kind, text=text, usage=usage)
