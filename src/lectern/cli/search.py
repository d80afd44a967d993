"""lectern search — hybrid (dense + BM25) search over all content items.

Results are ordered by RRF score; equal scores list the newer item first.
``--json`` prints ``[{id, title, created_at, score}, ...]``.
"""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from lectern.cli.context import DbOption, open_services
from lectern.cli.errors import handle_errors

console = Console()


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query.")],
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", help="Maximum results (default: retrieval.search_limit)."),
    ] = None,
    notebook: Annotated[
        int | None,
        typer.Option("--notebook", help="Only search members of this notebook."),
    ] = None,
    db: DbOption = None,
    json_: Annotated[bool, typer.Option("--json", help="Print results as JSON.")] = False,
) -> None:
    """Search content items by meaning and by keyword."""
    with handle_errors(json_), open_services(db) as svc:
        if notebook is not None:
            svc.notebooks().get(notebook)
        hits = svc.retriever().search(query, limit=limit, notebook_id=notebook)

    if json_:
        typer.echo(json.dumps([hit.to_dict() for hit in hits]))
        return

    if not hits:
        console.print(f"[yellow]No results for[/] '{query}'.")
        return

    table = Table(title=f"Results for '{query}'", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("ID", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Vector", justify="right")
    table.add_column("Keyword", justify="right")
    table.add_column("Created")
    for position, hit in enumerate(hits, start=1):
        table.add_row(
            str(position),
            str(hit.item.id),
            hit.item.title,
            f"{hit.score:.5f}",
            str(hit.vector_rank or "-"),
            str(hit.lexical_rank or "-"),
            hit.item.created_at or "",
        )
    console.print(table)
