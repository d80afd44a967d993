"""Lectern CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from lectern.cli.ingest import ingest_app
from lectern.cli.items import items_app
from lectern.cli.notebook import notebook_app
from lectern.cli.search import search_cmd
from lectern.cli.usage import usage_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("lectern")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lectern {_installed_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # litellm and httpx are chatty at DEBUG/INFO.
    for name in ("LiteLLM", "litellm", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


app = typer.Typer(
    name="lectern",
    help=(
        "Lectern — ingest documents, search them, and ask grounded questions.\n\n"
        "  lectern ingest    Add files, web pages or text.\n"
        "  lectern search    Hybrid (semantic + keyword) search.\n"
        "  lectern notebook  Group documents and ask questions about them."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Lectern — retrieval-augmented knowledge base CLI."""
    _configure_logging(verbose)


app.add_typer(ingest_app, name="ingest")
app.add_typer(items_app, name="items")
app.add_typer(notebook_app, name="notebook")
app.command("search")(search_cmd)
app.command("usage")(usage_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Lectern version."""
    typer.echo(f"lectern {_installed_version()}")


if __name__ == "__main__":
    app()
