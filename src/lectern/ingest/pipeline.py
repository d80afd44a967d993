"""Ingestion pipeline — normalize → embed → persist, and deletion.

An item is written only after its embedding succeeded, and the row, its FTS
entry and its vector go in together. Anything that fails before that point
leaves the store untouched.
"""

from __future__ import annotations

import logging
from pathlib import Path

from lectern.db.models import ContentItem
from lectern.db.repository import Repository
from lectern.errors import NotFound, store_errors
from lectern.ingest.normalizer import FileSource, Normalizer, RawText, Source, WebPage
from lectern.rag.embedder import EmbeddingClient

logger = logging.getLogger(__name__)


class Ingestor:
    """Create, read and delete content items.

    Args:
        repo:       Open Repository instance.
        normalizer: Normalizer configured with the storage/embed limits.
        embedder:   Embedding client for the configured model.
        vec_table:  Name of the vec table matching the embedder's model.
    """

    def __init__(
        self,
        repo: Repository,
        normalizer: Normalizer,
        embedder: EmbeddingClient,
        vec_table: str,
    ) -> None:
        self._repo = repo
        self._normalizer = normalizer
        self._embedder = embedder
        self._vec_table = vec_table

    def ingest(self, source: Source) -> ContentItem:
        """Normalize *source*, embed it and persist the resulting item.

        Raises:
            ValidationFailure / ExtractionFailure: Before any external call.
            EmbeddingFailure: The embedding call failed; nothing was written.
            StoreFailure: The write failed and was rolled back.
        """
        normalized = self._normalizer.normalize(source)
        embedding = self._embedder.embed_or_raise(normalized.embed_text, "content")

        item = ContentItem(
            title=normalized.title,
            content=normalized.content,
            origin=normalized.origin,
            media_type=normalized.media_type,
            embedding=embedding.vector,
        )
        with store_errors("save the content item"):
            self._repo.add_item(item, self._vec_table)
            stored = self._repo.get_item(item.id)
        logger.info(
            "Ingested item %s '%s' (%d chars, %s).",
            item.id,
            item.title,
            len(normalized.content),
            normalized.media_type,
        )
        return stored or item

    def ingest_text(self, title: str, content: str) -> ContentItem:
        return self.ingest(RawText(title=title, content=content))

    def ingest_file(
        self, data: bytes, media_type: str, filename: str, origin: str | None = None
    ) -> ContentItem:
        return self.ingest(
            FileSource(data=data, media_type=media_type, filename=filename, origin=origin)
        )

    def ingest_url(self, url: str) -> ContentItem:
        return self.ingest(WebPage(url=url))

    def get(self, item_id: int) -> ContentItem:
        """Return the item with *item_id*. Raises NotFound if it does not exist."""
        with store_errors("read the content item"):
            item = self._repo.get_item(item_id)
        if item is None:
            raise NotFound(f"Content item {item_id} not found.")
        return item

    def list_recent(self, limit: int | None = None) -> list[ContentItem]:
        with store_errors("list content items"):
            return self._repo.list_items(limit)

    def delete(self, item_id: int) -> ContentItem:
        """Delete an item and, best-effort, the file it was ingested from.

        The database row is removed first. A failure to remove the file is
        logged and does not undo the deletion.
        """
        with store_errors("delete the content item"):
            item = self._repo.delete_item(item_id)
        if item is None:
            raise NotFound(f"Content item {item_id} not found.")

        if item.is_local_file:
            path = Path(item.origin)
            try:
                path.unlink()
            except FileNotFoundError:
                logger.warning("File for item %s already gone: %s", item_id, path)
            except OSError:
                logger.error("Could not remove file %s for item %s.", path, item_id, exc_info=True)

        logger.info("Deleted item %s '%s'.", item_id, item.title)
        return item
