"""lectern usage — model usage ledger and cost totals."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from lectern.cli.context import DbOption, open_services
from lectern.cli.errors import handle_errors

console = Console()


def usage_cmd(
    db: DbOption = None,
    json_: Annotated[bool, typer.Option("--json", help="Print the report as JSON.")] = False,
) -> None:
    """Show every recorded model call (newest first) with total cost and tokens."""
    with handle_errors(json_), open_services(db) as svc:
        report = svc.meter.report()

    if json_:
        typer.echo(
            json.dumps(
                {
                    "logs": [
                        {
                            "id": r.id,
                            "model": r.model,
                            "prompt_tokens": r.prompt_tokens,
                            "completion_tokens": r.completion_tokens,
                            "total_tokens": r.total_tokens,
                            "cost": r.cost,
                            "created_at": r.created_at,
                        }
                        for r in report.records
                    ],
                    "total_cost": report.totals.total_cost,
                    "total_tokens": report.totals.total_tokens,
                }
            )
        )
        return

    if not report.records:
        console.print("[yellow]No model usage recorded yet.[/]")
        return

    table = Table(title="Model Usage", show_header=True, header_style="bold")
    table.add_column("When")
    table.add_column("Model", style="bold")
    table.add_column("Prompt", justify="right")
    table.add_column("Completion", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Cost (USD)", justify="right")
    for r in report.records:
        table.add_row(
            r.created_at or "",
            r.model,
            f"{r.prompt_tokens:,}",
            f"{r.completion_tokens:,}",
            f"{r.total_tokens:,}",
            f"{r.cost:.6f}",
        )
    console.print(table)
    console.print(
        f"\n  Total: [bold]{report.totals.total_tokens:,}[/] tokens, "
        f"[bold]${report.totals.total_cost:.6f}[/]"
    )
