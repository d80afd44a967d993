"""lectern notebook — notebooks and grounded Q&A over their members.

Commands:
  lectern notebook create TITLE [--notes N]
  lectern notebook list
  lectern notebook show ID
  lectern notebook update ID [--title T] [--notes N]
  lectern notebook delete ID [--yes]
  lectern notebook add ID ITEM_ID
  lectern notebook remove ID ITEM_ID
  lectern notebook ask ID QUESTION [--sources]
"""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from lectern.cli.context import DbOption, open_services
from lectern.cli.errors import handle_errors
from lectern.db.models import Notebook

console = Console()

notebook_app = typer.Typer(
    name="notebook",
    help="Manage notebooks and ask questions about their documents.",
    add_completion=False,
)

JsonOption = Annotated[bool, typer.Option("--json", help="Print JSON.")]
NotebookId = Annotated[int, typer.Argument(help="Notebook id.")]
ItemId = Annotated[int, typer.Argument(help="Content item id.")]


@notebook_app.command("create")
def notebook_create_cmd(
    title: Annotated[str, typer.Argument(help="Notebook title.")],
    notes: Annotated[str, typer.Option("--notes", help="Initial notes (Markdown).")] = "",
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """Create a notebook."""
    with handle_errors(json_), open_services(db) as svc:
        notebook = svc.notebooks().create(title, notes)
    if json_:
        typer.echo(json.dumps(_notebook_dict(notebook)))
        return
    console.print(f"[green]✓[/] Created notebook [bold]{notebook.title}[/] (id {notebook.id})")


@notebook_app.command("list")
def notebook_list_cmd(db: DbOption = None, json_: JsonOption = False) -> None:
    """List notebooks, most recently updated first."""
    with handle_errors(json_), open_services(db) as svc:
        notebooks = svc.notebooks().list()

    if json_:
        typer.echo(json.dumps([_notebook_dict(n) for n in notebooks]))
        return
    if not notebooks:
        console.print(
            "[yellow]No notebooks yet.[/]\n"
            "  Run:  lectern notebook create \"My notebook\""
        )
        return

    table = Table(title="Notebooks", show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Updated")
    for notebook in notebooks:
        table.add_row(str(notebook.id), notebook.title, notebook.updated_at or "")
    console.print(table)


@notebook_app.command("show")
def notebook_show_cmd(
    notebook_id: NotebookId, db: DbOption = None, json_: JsonOption = False
) -> None:
    """Show a notebook's notes and member documents."""
    with handle_errors(json_), open_services(db) as svc:
        notebook = svc.notebooks().get(notebook_id)
    _print_notebook(notebook, json_)


@notebook_app.command("update")
def notebook_update_cmd(
    notebook_id: NotebookId,
    title: Annotated[str | None, typer.Option("--title", help="New title.")] = None,
    notes: Annotated[str | None, typer.Option("--notes", help="New notes (Markdown).")] = None,
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """Rename a notebook or replace its notes."""
    with handle_errors(json_), open_services(db) as svc:
        notebook = svc.notebooks().update(notebook_id, title=title, notes=notes)
    if json_:
        typer.echo(json.dumps(_notebook_dict(notebook)))
        return
    console.print(f"[green]✓[/] Updated notebook [bold]{notebook.title}[/] (id {notebook.id})")


@notebook_app.command("delete")
def notebook_delete_cmd(
    notebook_id: NotebookId,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: DbOption = None,
) -> None:
    """Delete a notebook. Its documents are kept."""
    with handle_errors(), open_services(db) as svc:
        service = svc.notebooks()
        notebook = service.get(notebook_id)
        if not yes and not typer.confirm(
            f"Delete notebook '{notebook.title}' ({len(notebook.items)} documents)?",
            default=False,
        ):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)
        service.delete(notebook_id)
    console.print(f"[green]✓[/] Deleted notebook: {notebook.title}")


@notebook_app.command("add")
def notebook_add_cmd(
    notebook_id: NotebookId, item_id: ItemId, db: DbOption = None, json_: JsonOption = False
) -> None:
    """Add a content item to a notebook."""
    with handle_errors(json_), open_services(db) as svc:
        notebook = svc.notebooks().add_item(notebook_id, item_id)
    if json_:
        typer.echo(json.dumps(_notebook_dict(notebook, members=True)))
        return
    console.print(f"[green]✓[/] Added item {item_id} to [bold]{notebook.title}[/]")


@notebook_app.command("remove")
def notebook_remove_cmd(
    notebook_id: NotebookId, item_id: ItemId, db: DbOption = None, json_: JsonOption = False
) -> None:
    """Remove a content item from a notebook (the item itself is kept)."""
    with handle_errors(json_), open_services(db) as svc:
        notebook = svc.notebooks().remove_item(notebook_id, item_id)
    if json_:
        typer.echo(json.dumps(_notebook_dict(notebook, members=True)))
        return
    console.print(f"[green]✓[/] Removed item {item_id} from [bold]{notebook.title}[/]")


@notebook_app.command("ask")
def notebook_ask_cmd(
    notebook_id: NotebookId,
    question: Annotated[str, typer.Argument(help="Question to answer from the notebook.")],
    sources: Annotated[
        bool, typer.Option("--sources", help="List the documents used as context.")
    ] = False,
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """Answer a question using only the notebook's notes and documents."""
    with handle_errors(json_), open_services(db) as svc:
        answer = svc.qa().answer(notebook_id, question)

    if json_:
        typer.echo(json.dumps(answer.to_dict()))
        return

    console.print(Panel(Markdown(answer.text), title="Answer", expand=False))
    if sources:
        for doc in answer.sources:
            console.print(f"  • {doc.item.title} [dim](id {doc.item.id}, {doc.similarity_pct}%)[/]")
    console.print(f"[dim]{answer.usage.total_tokens} tokens, ${answer.usage.cost:.6f}[/]")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _notebook_dict(notebook: Notebook, members: bool = False) -> dict:
    data = {
        "id": notebook.id,
        "title": notebook.title,
        "notes": notebook.notes,
        "created_at": notebook.created_at,
        "updated_at": notebook.updated_at,
    }
    if members:
        data["items"] = [
            {"id": i.id, "title": i.title, "created_at": i.created_at} for i in notebook.items
        ]
    return data


def _print_notebook(notebook: Notebook, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps(_notebook_dict(notebook, members=True)))
        return

    console.print(f"[bold]{notebook.title}[/]  [dim](id {notebook.id}, updated {notebook.updated_at})[/]")
    if notebook.notes:
        console.print(Panel(Markdown(notebook.notes), title="Notes", expand=False))
    if not notebook.items:
        console.print(
            "  [yellow]No documents.[/]\n"
            f"  Run:  lectern notebook add {notebook.id} ITEM_ID"
        )
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Type")
    table.add_column("Created")
    for item in notebook.items:
        table.add_row(str(item.id), item.title, item.media_type, item.created_at or "")
    console.print(table)
