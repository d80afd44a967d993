"""lectern ingest — add content to the knowledge base.

Commands:
  lectern ingest file PATH [--media-type T]   copy into uploads_dir, then ingest
  lectern ingest url URL                      scrape (SSRF-guarded), then ingest
  lectern ingest text --title T --content C   free-form text block (--file - reads stdin)

Every path runs normalize → embed → persist. Nothing is written when
extraction or embedding fails; an uploaded copy is removed again.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import secrets
import shutil
import sys
from contextlib import nullcontext
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from lectern.cli.context import DbOption, open_services
from lectern.cli.errors import handle_errors
from lectern.db.models import ContentItem
from lectern.errors import ExtractionFailure, ValidationFailure

console = Console()
logger = logging.getLogger(__name__)

ingest_app = typer.Typer(
    name="ingest",
    help="Ingest files, web pages, or text blocks.",
    add_completion=False,
)

JsonOption = Annotated[bool, typer.Option("--json", help="Print the created item as JSON.")]


@ingest_app.command("file")
def ingest_file_cmd(
    path: Annotated[Path, typer.Argument(help="File to ingest (PDF, HTML, text, Markdown, JSON...).")],
    media_type: Annotated[
        str | None,
        typer.Option("--media-type", "-t", help="Override the detected media type."),
    ] = None,
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """Copy a file into the uploads directory and ingest it."""
    with handle_errors(json_), open_services(db) as svc:
        if not path.is_file():
            raise ValidationFailure(f"File not found: '{path}'.")
        declared = media_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"

        stored = _copy_upload(path, Path(svc.config.storage.uploads_dir))
        try:
            item = svc.ingestor().ingest_file(
                data=stored.read_bytes(),
                media_type=declared,
                filename=path.name,
                origin=str(stored),
            )
        except BaseException:
            stored.unlink(missing_ok=True)
            raise
        _print_item(item, json_)


@ingest_app.command("url")
def ingest_url_cmd(
    url: Annotated[str, typer.Argument(help="http(s) URL of the page to scrape.")],
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """Scrape a web page and ingest its main content."""
    with handle_errors(json_), open_services(db) as svc:
        with console.status(f"Fetching {url}…") if not json_ else nullcontext():
            item = svc.ingestor().ingest_url(url)
        _print_item(item, json_)


@ingest_app.command("text")
def ingest_text_cmd(
    title: Annotated[str, typer.Option("--title", help="Title of the text block.")],
    content: Annotated[
        str | None, typer.Option("--content", "-c", help="Text to ingest.")
    ] = None,
    file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="Read the text from a file ('-' for stdin)."),
    ] = None,
    db: DbOption = None,
    json_: JsonOption = False,
) -> None:
    """Ingest a free-form text block."""
    with handle_errors(json_):
        if content is not None and file is not None:
            raise ValidationFailure("Use either --content or --file, not both.")
        if file == "-":
            content = sys.stdin.read()
        elif file is not None:
            try:
                content = Path(file).read_text(encoding="utf-8")
            except OSError as exc:
                raise ValidationFailure(f"Could not read '{file}': {exc.strerror}") from exc
        if not content or not content.strip() or not title.strip():
            raise ValidationFailure("Title and content are required.")

        with open_services(db) as svc:
            item = svc.ingestor().ingest_text(title, content)
        _print_item(item, json_)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _copy_upload(path: Path, uploads_dir: Path) -> Path:
    """Copy *path* into *uploads_dir* under a random hex name, keeping the suffix."""
    uploads_dir.mkdir(parents=True, exist_ok=True)
    target = uploads_dir / f"{secrets.token_hex(16)}{path.suffix.lower()}"
    try:
        shutil.copyfile(path, target)
    except OSError as exc:
        raise ExtractionFailure(f"Could not store upload '{path.name}': {exc.strerror}") from exc
    logger.debug("Stored upload %s as %s", path, target)
    return target


def _print_item(item: ContentItem, json_output: bool) -> None:
    if json_output:
        typer.echo(
            json.dumps(
                {
                    "id": item.id,
                    "title": item.title,
                    "media_type": item.media_type,
                    "origin": item.origin,
                    "created_at": item.created_at,
                    "length": len(item.content or ""),
                }
            )
        )
        return
    console.print(
        f"[green]✓[/] Ingested [bold]{item.title}[/] "
        f"(id {item.id}, {len(item.content or ''):,} chars, {item.media_type})"
    )
