"""Context assembler and answer generator for notebook Q&A.

Pipeline:
  1. Reject a missing notebook or an empty question.
  2. Embed the question. Failure aborts; there is no lexical-only fallback.
  3. Take the notebook's top-k members (k = 5) by cosine distance ascending.
     Similarity shown to the model is ``1 - distance`` as a percentage.
  4. Context = notebook notes, then one block per member:
         Document: <title> (Similarity: <pct>%)
         Content:
         <content>
     blocks separated by ``---``. Stored content is already bounded by the
     storage limit, so no further truncation happens here.
  5. One completion, answering strictly from the context.
  6. Usage is metered before the answer is returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from lectern.db.models import ContentItem, UsageRecord
from lectern.db.repository import Repository
from lectern.errors import GenerationFailure, NotFound, ValidationFailure, store_errors
from lectern.metering import UsageMeter
from lectern.rag import llm_client
from lectern.rag.embedder import EmbeddingClient

logger = logging.getLogger(__name__)

_DELIMITER = "\n\n---\n\n"

ANSWER_SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions based on the provided context. "
    "Synthesize information from all parts of the context to provide a comprehensive "
    "answer. If the answer is not found in the context, say so."
)

_ANSWER_USER_TEMPLATE = (
    "Based on the following context, please answer the question."
    "\n\n---\n\nCONTEXT:\n{context}\n\n---\n\nQUESTION: {question}"
)


@dataclass
class AssemblerConfig:
    generation_model: str = "openai/gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int | None = None
    top_k: int = 5


@dataclass
class ContextDocument:
    item: ContentItem
    similarity: float  # 1 - cosine distance

    @property
    def similarity_pct(self) -> str:
        return f"{self.similarity * 100:.1f}"


@dataclass
class AssembledContext:
    notes: str = ""
    documents: list[ContextDocument] = field(default_factory=list)

    def render(self) -> str:
        parts = [f"Notebook Notes:\n{self.notes}"]
        for doc in self.documents:
            parts.append(
                f"Document: {doc.item.title} (Similarity: {doc.similarity_pct}%)\n"
                f"Content:\n{doc.item.content or ''}"
            )
        return _DELIMITER.join(parts) + _DELIMITER


@dataclass
class Answer:
    text: str
    usage: UsageRecord
    sources: list[ContextDocument] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"answer": self.text}


class NotebookQA:
    """Answer questions grounded in the members of one notebook.

    Args:
        repo:      Open Repository instance.
        embedder:  Embedding client for the question.
        meter:     Usage meter for the completion call.
        vec_table: Name of the vec table matching the embedder's model.
        config:    Generation model and retrieval depth.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingClient,
        meter: UsageMeter,
        vec_table: str,
        config: AssemblerConfig | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._meter = meter
        self._vec_table = vec_table
        self._config = config or AssemblerConfig()

    def answer(self, notebook_id: int, question: str) -> Answer:
        """Answer *question* from the notebook's notes and closest members.

        Raises:
            NotFound: The notebook does not exist.
            ValidationFailure: *question* is empty.
            EmbeddingFailure: The question could not be embedded.
            GenerationFailure: The completion failed or came back empty.
        """
        context = self.assemble(notebook_id, question)
        return self.generate(question, context)

    def assemble(self, notebook_id: int, question: str) -> AssembledContext:
        with store_errors("read the notebook"):
            notebook = self._repo.get_notebook(notebook_id)
        if notebook is None:
            raise NotFound(f"Notebook {notebook_id} not found.")
        if not question or not question.strip():
            raise ValidationFailure("Question is required.")

        embedding = self._embedder.embed_or_raise(question, "question")
        with store_errors("retrieve notebook documents"):
            nearest = self._repo.search_vec(
                self._vec_table,
                embedding.vector,
                limit=self._config.top_k,
                notebook_id=notebook_id,
            )
        documents = [
            ContextDocument(item=item, similarity=1.0 - distance) for item, distance in nearest
        ]
        logger.debug(
            "Notebook %s: %d document(s) in context for question %r.",
            notebook_id,
            len(documents),
            question,
        )
        return AssembledContext(notes=notebook.notes or "", documents=documents)

    def generate(self, question: str, context: AssembledContext) -> Answer:
        model = self._config.generation_model
        messages = [
            {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": _ANSWER_USER_TEMPLATE.format(
                    context=context.render(), question=question
                ),
            },
        ]
        llm_client.validate_api_key(model)
        try:
            completion = llm_client.complete(
                model,
                messages,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
            )
        except Exception as exc:
            logger.error("Completion request to '%s' failed.", model, exc_info=True)
            raise GenerationFailure("Failed to get an answer from the language model.") from exc

        usage = self._meter.record_usage(model, completion.usage)
        text = completion.text.strip()
        if not text:
            raise GenerationFailure("The language model returned an empty answer.")
        return Answer(text=text, usage=usage, sources=context.documents)
