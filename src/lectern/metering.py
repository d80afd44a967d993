"""Usage meter: append-only ledger of external-model calls and their cost.

cost = prompt_tokens / 1000 * input_rate + completion_tokens / 1000 * output_rate

Rates come from an immutable PriceTable injected at construction. A model
missing from the table is costed at zero and logged as a configuration gap.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from lectern.config import ModelPrice, PriceTable
from lectern.db.models import UsageRecord, UsageTotals
from lectern.db.repository import Repository
from lectern.errors import store_errors
from lectern.rag.llm_client import TokenUsage

logger = logging.getLogger(__name__)


@dataclass
class UsageReport:
    records: list[UsageRecord] = field(default_factory=list)
    totals: UsageTotals = field(default_factory=UsageTotals)


class UsageMeter:
    """Record token usage for every embedding and completion call.

    Args:
        repo:   Open Repository instance (the ledger lives in usage_records).
        prices: Per-model price table, USD per 1,000 tokens.
    """

    def __init__(self, repo: Repository, prices: PriceTable) -> None:
        self._repo = repo
        self._prices = prices

    def price_for(self, model: str) -> ModelPrice | None:
        return self._prices.get(model)

    def cost(self, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        price = self.price_for(model)
        if price is None:
            logger.warning(
                "No pricing configured for model '%s'; recording its usage at zero cost. "
                "Add it under 'pricing:' in lectern.yaml.",
                model,
            )
            return 0.0
        return (prompt_tokens / 1000) * price.input + (completion_tokens / 1000) * price.output

    def record(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int = 0,
        total_tokens: int | None = None,
    ) -> UsageRecord:
        """Append one usage row and return it (with id and timestamp)."""
        record = UsageRecord(
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=(
                total_tokens if total_tokens is not None else prompt_tokens + completion_tokens
            ),
            cost=self.cost(model, prompt_tokens, completion_tokens),
        )
        with store_errors("record model usage"):
            return self._repo.add_usage(record)

    def record_usage(self, model: str, usage: TokenUsage) -> UsageRecord:
        return self.record(
            model,
            usage.prompt_tokens,
            usage.completion_tokens,
            usage.total_tokens,
        )

    def report(self) -> UsageReport:
        """Full log (newest first) plus aggregate cost and token sums."""
        with store_errors("read the usage log"):
            return UsageReport(records=self._repo.list_usage(), totals=self._repo.usage_totals())
