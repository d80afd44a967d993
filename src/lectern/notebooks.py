"""Notebook management: CRUD plus membership of content items.

Membership changes and the notebook's ``updated_at`` touch are committed
together. Deleting a notebook removes its membership rows, never the items.
"""

from __future__ import annotations

import logging
import sqlite3

from lectern.db.models import Notebook
from lectern.db.repository import Repository
from lectern.errors import NotFound, ValidationFailure, store_errors

logger = logging.getLogger(__name__)


class NotebookService:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def create(self, title: str, notes: str = "") -> Notebook:
        title = (title or "").strip()
        if not title:
            raise ValidationFailure("Notebook title is required.")
        with store_errors("create the notebook"):
            notebook = self._repo.add_notebook(title, notes or "")
        logger.info("Created notebook %s '%s'.", notebook.id, notebook.title)
        return notebook

    def list(self) -> list[Notebook]:
        """All notebooks, most recently updated first."""
        with store_errors("list notebooks"):
            return self._repo.list_notebooks()

    def get(self, notebook_id: int) -> Notebook:
        """The notebook with its members (newest first). Raises NotFound."""
        with store_errors("read the notebook"):
            notebook = self._repo.get_notebook(notebook_id)
            if notebook is not None:
                notebook.items = self._repo.list_members(notebook_id)
        if notebook is None:
            raise NotFound(f"Notebook {notebook_id} not found.")
        return notebook

    def update(
        self, notebook_id: int, title: str | None = None, notes: str | None = None
    ) -> Notebook:
        if title is None and notes is None:
            raise ValidationFailure("Nothing to update: give a new title and/or notes.")
        if title is not None and not title.strip():
            raise ValidationFailure("Notebook title must not be empty.")
        with store_errors("update the notebook"):
            notebook = self._repo.update_notebook(
                notebook_id, title.strip() if title is not None else None, notes
            )
        if notebook is None:
            raise NotFound(f"Notebook {notebook_id} not found.")
        return notebook

    def delete(self, notebook_id: int) -> None:
        with store_errors("delete the notebook"):
            deleted = self._repo.delete_notebook(notebook_id)
        if not deleted:
            raise NotFound(f"Notebook {notebook_id} not found.")
        logger.info("Deleted notebook %s.", notebook_id)

    def add_item(self, notebook_id: int, item_id: int) -> Notebook:
        """Add an item to a notebook and return the refreshed notebook.

        Raises:
            NotFound: Unknown notebook or item.
            ValidationFailure: The item is already in the notebook.
        """
        with store_errors("add the item to the notebook"):
            if self._repo.get_notebook(notebook_id) is None:
                raise NotFound(f"Notebook {notebook_id} not found.")
            if self._repo.get_item(item_id) is None:
                raise NotFound(f"Content item {item_id} not found.")
            if self._repo.is_member(notebook_id, item_id):
                raise ValidationFailure(
                    f"Item {item_id} is already in notebook {notebook_id}."
                )
            try:
                self._repo.add_member(notebook_id, item_id)
            except sqlite3.IntegrityError as exc:
                raise ValidationFailure(
                    f"Item {item_id} is already in notebook {notebook_id}."
                ) from exc
        return self.get(notebook_id)

    def remove_item(self, notebook_id: int, item_id: int) -> Notebook:
        """Remove an item from a notebook. Raises NotFound if it is not a member."""
        with store_errors("remove the item from the notebook"):
            if self._repo.get_notebook(notebook_id) is None:
                raise NotFound(f"Notebook {notebook_id} not found.")
            removed = self._repo.remove_member(notebook_id, item_id)
        if not removed:
            raise NotFound(f"Item {item_id} is not in notebook {notebook_id}.")
        return self.get(notebook_id)
