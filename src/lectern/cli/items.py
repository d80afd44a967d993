"""lectern items — inspect, remove and analyse stored content items.

Commands:
  lectern items list [--limit N]          most recently created first
  lectern items show ID                   metadata + stored content
  lectern items remove ID [--yes]         delete row, FTS entry, vectors, memberships
                                          and (best-effort) the uploaded file
  lectern items summarize ID              concise summary
  lectern items analyze ID --type KIND    table_of_contents | key_insights |
                                          reflection_questions | analysis
"""

from __future__ import annotations

import json
from contextlib import nullcontext
from enum import Enum
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from lectern.cli.context import DbOption, open_services
from lectern.cli.errors import handle_errors
from lectern.rag.insights import Insight

console = Console()

items_app = typer.Typer(
    name="items",
    help="List, show, remove, summarize or analyze content items.",
    add_completion=False,
)

JsonOption = Annotated[bool, typer.Option("--json", help="Print JSON instead of a table.")]


class AnalysisType(str, Enum):
    table_of_contents = "table_of_contents"
    key_insights = "key_insights"
    reflection_questions = "reflection_questions"
    analysis = "analysis"


@items_app.command("list")
def items_list_cmd(
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Maximum items to show.")] = 50,
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """List content items, newest first."""
    with handle_errors(json_), open_services(db) as svc:
        items = svc.ingestor().list_recent(limit)

    if json_:
        typer.echo(
            json.dumps(
                [
                    {
                        "id": i.id,
                        "title": i.title,
                        "media_type": i.media_type,
                        "origin": i.origin,
                        "created_at": i.created_at,
                    }
                    for i in items
                ]
            )
        )
        return

    if not items:
        console.print(
            "[yellow]No content items yet.[/]\n"
            "  Run:  lectern ingest text --title T --content C"
        )
        return

    table = Table(title="Content Items", show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Type")
    table.add_column("Chars", justify="right")
    table.add_column("Created")
    for item in items:
        table.add_row(
            str(item.id),
            item.title,
            item.media_type,
            f"{len(item.content or ''):,}",
            item.created_at or "",
        )
    console.print(table)


@items_app.command("show")
def items_show_cmd(
    item_id: Annotated[int, typer.Argument(help="Content item id.")],
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """Show one item with its stored content."""
    with handle_errors(json_), open_services(db) as svc:
        item = svc.ingestor().get(item_id)

    if json_:
        typer.echo(
            json.dumps(
                {
                    "id": item.id,
                    "title": item.title,
                    "content": item.content,
                    "media_type": item.media_type,
                    "origin": item.origin,
                    "created_at": item.created_at,
                    "updated_at": item.updated_at,
                }
            )
        )
        return

    console.print(f"[bold]{item.title}[/]  [dim](id {item.id}, {item.media_type})[/]")
    console.print(f"  Origin:  {item.origin}")
    console.print(f"  Created: {item.created_at}\n")
    console.print(item.content or "(no content)", markup=False, highlight=False)


@items_app.command("remove")
def items_remove_cmd(
    item_id: Annotated[int, typer.Argument(help="Content item id.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: DbOption = None,
) -> None:
    """Remove an item, its index entries, memberships and uploaded file."""
    with handle_errors(), open_services(db) as svc:
        ingestor = svc.ingestor()
        item = ingestor.get(item_id)

        console.print(f"\nRemove item: [bold]{item.title}[/] (id {item.id})")
        console.print(f"  Origin: {item.origin}")
        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        ingestor.delete(item_id)
    console.print(f"\n[green]✓[/] Removed: {item.title}")


@items_app.command("summarize")
def items_summarize_cmd(
    item_id: Annotated[int, typer.Argument(help="Content item id.")],
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """Generate a concise summary of an item."""
    with handle_errors(json_), open_services(db) as svc:
        item = svc.ingestor().get(item_id)
        with console.status("Summarizing…") if not json_ else nullcontext():
            insight = svc.insights().summarize(item)
    _print_insight(item.title, insight, json_)


@items_app.command("analyze")
def items_analyze_cmd(
    item_id: Annotated[int, typer.Argument(help="Content item id.")],
    kind: Annotated[
        AnalysisType,
        typer.Option("--type", "-t", help="Kind of analysis to generate."),
    ] = AnalysisType.analysis,
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """Generate a table of contents, key insights, reflection questions or an analysis."""
    with handle_errors(json_), open_services(db) as svc:
        item = svc.ingestor().get(item_id)
        with console.status("Analyzing…") if not json_ else nullcontext():
            insight = svc.insights().analyze(item, kind.value)
    _print_insight(item.title, insight, json_)


def _print_insight(title: str, insight: Insight, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps({insight.kind: insight.text}))
        return
    heading = insight.kind.replace("_", " ").title()
    console.print(Panel(Markdown(insight.text), title=f"{heading}: {title}", expand=False))
    console.print(
        f"[dim]{insight.usage.total_tokens} tokens, ${insight.usage.cost:.6f}[/]"
    )
