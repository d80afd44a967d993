"""Domain models for the Lectern database layer."""

from __future__ import annotations

from dataclasses import dataclass, field

# Origin marker for content items created from a free-form text block.
INLINE_ORIGIN = "inline:text"


@dataclass
class ContentItem:
    title: str
    content: str | None
    origin: str
    media_type: str
    id: int | None = None  # assigned on insert; monotonically increasing
    created_at: str | None = None
    updated_at: str | None = None
    embedding: list[float] | None = field(default=None, repr=False, compare=False)

    @property
    def is_local_file(self) -> bool:
        """True when the origin is a file path owned by this item."""
        return not (
            self.origin == INLINE_ORIGIN
            or self.origin.startswith(("http://", "https://"))
        )


@dataclass
class Notebook:
    title: str
    notes: str = ""
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    items: list[ContentItem] = field(default_factory=list)


@dataclass
class UsageRecord:
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    id: int | None = None
    created_at: str | None = None


@dataclass
class UsageTotals:
    total_cost: float = 0.0
    total_tokens: int = 0


@dataclass
class ItemHit:
    """One fused search result: the item plus its score and per-channel ranks."""

    item: ContentItem
    score: float
    vector_rank: int | None = None
    lexical_rank: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.item.id,
            "title": self.item.title,
            "created_at": self.item.created_at,
            "score": self.score,
        }
