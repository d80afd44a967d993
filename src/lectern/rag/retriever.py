"""Hybrid retriever: BM25 (FTS5) + dense (sqlite-vec), fused via RRF.

Both channels return up to ``candidate_limit`` items (N = 50):
  - dense: cosine distance ascending over the embedded query
  - BM25:  stop-word-filtered, porter-stemmed FTS5 match, best first

Reciprocal Rank Fusion:
  score(d) = 1 / (k + rank_dense) + 1 / (k + rank_bm25)   k = 60
A channel that did not return d contributes 0. Equal scores are ordered by
created_at descending, then id descending.
"""

from __future__ import annotations

from dataclasses import dataclass

from lectern.db.models import ContentItem, ItemHit
from lectern.db.repository import Repository
from lectern.errors import ValidationFailure, store_errors
from lectern.rag.embedder import EmbeddingClient

_RRF_K = 60
_CANDIDATE_LIMIT = 50


@dataclass
class RetrieverConfig:
    """Configuration for the hybrid retriever.

    Attributes:
        candidate_limit: Results taken from each channel before fusion (N).
        rrf_k: RRF smoothing constant (K).
        default_limit: Number of fused results when the caller gives none.
    """

    candidate_limit: int = _CANDIDATE_LIMIT
    rrf_k: int = _RRF_K
    default_limit: int = 10


@dataclass
class _Ranks:
    item: ContentItem
    vector_rank: int | None = None
    lexical_rank: int | None = None


class HybridRetriever:
    """Search the whole corpus, or one notebook, with RRF-fused ranking.

    Args:
        repo:      Open Repository instance.
        embedder:  Embedding client used for the query vector.
        vec_table: Name of the vec table matching the embedder's model.
        config:    Fusion parameters.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingClient,
        vec_table: str,
        config: RetrieverConfig | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._vec_table = vec_table
        self._config = config or RetrieverConfig()

    def search(
        self, query: str, limit: int | None = None, notebook_id: int | None = None
    ) -> list[ItemHit]:
        """Return up to *limit* items, best first.

        Raises:
            ValidationFailure: If *query* is empty or *limit* is not positive.
                Raised before the embedding call.
            EmbeddingFailure: If the query could not be embedded.
        """
        if not query or not query.strip():
            raise ValidationFailure("Search query is required.")
        limit = self._config.default_limit if limit is None else limit
        if limit < 1:
            raise ValidationFailure("Search limit must be at least 1.")

        embedding = self._embedder.embed_or_raise(query, "search query")
        n = self._config.candidate_limit
        with store_errors("search content items"):
            dense = self._repo.search_vec(
                self._vec_table, embedding.vector, limit=n, notebook_id=notebook_id
            )
            bm25 = self._repo.search_fts(query, limit=n, notebook_id=notebook_id)

        return rrf_fuse(dense, bm25, limit=limit, k=self._config.rrf_k)


# ------------------------------------------------------------------
# RRF fusion
# ------------------------------------------------------------------


def rrf_fuse(
    dense_results: list[tuple[ContentItem, float]],
    bm25_results: list[tuple[ContentItem, float]],
    limit: int,
    k: int = _RRF_K,
) -> list[ItemHit]:
    """Combine dense and BM25 ranked lists via Reciprocal Rank Fusion.

    Both inputs must already be ordered best-first; only positions are used,
    never the raw distance or bm25 values.
    """
    ranks: dict[int, _Ranks] = {}
    for position, (item, _) in enumerate(dense_results, start=1):
        if item.id is not None and item.id not in ranks:
            ranks[item.id] = _Ranks(item=item, vector_rank=position)
    for position, (item, _) in enumerate(bm25_results, start=1):
        if item.id is None:
            continue
        entry = ranks.setdefault(item.id, _Ranks(item=item))
        if entry.lexical_rank is None:
            entry.lexical_rank = position

    hits = [
        ItemHit(
            item=entry.item,
            score=_rank_term(entry.vector_rank, k) + _rank_term(entry.lexical_rank, k),
            vector_rank=entry.vector_rank,
            lexical_rank=entry.lexical_rank,
        )
        for entry in ranks.values()
    ]
    # Two stable sorts: tie-breakers first, then the primary key.
    hits.sort(key=lambda h: (h.item.created_at or "", h.item.id or 0), reverse=True)
    hits.sort(key=lambda h: h.score, reverse=True)
    return hits[:limit]


def _rank_term(rank: int | None, k: int) -> float:
    return 0.0 if rank is None else 1.0 / (k + rank)
