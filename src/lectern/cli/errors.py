"""Lectern rich error messages — actionable feedback at the request boundary.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it, where there is one

Usage:
    from lectern.cli.errors import handle_errors
    with handle_errors(json_output=json_):
        ...
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Iterator

import typer
from rich.console import Console

from lectern.config import ConfigError
from lectern.errors import LecternError
from lectern.rag.llm_client import MissingApiKeyError

console = Console()


def err_no_api_key(provider: str, env_var: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_config(message: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Check lectern.yaml and ~/.lectern/config.yaml."
    )


def err_not_found(message: str) -> str:
    return (
        f"[yellow]Not found:[/] {message}\n"
        "  Run:  lectern items list  or  lectern notebook list  to see what exists."
    )


def err_lectern(exc: LecternError) -> str:
    return f"[red]Error:[/] {exc.message}"


@contextmanager
def handle_errors(json_output: bool = False) -> Iterator[None]:
    """Map core errors to a printed message and a process exit code.

    LecternError subclasses exit with their own ``exit_code`` (validation 2,
    not found 3, everything else 1). Configuration and missing-key errors
    exit with 1. With *json_output*, the message is printed as ``{"error": ...}``.
    """
    try:
        yield
    except LecternError as exc:
        if json_output:
            typer.echo(json.dumps({"error": exc.message}))
        elif exc.exit_code == 3:
            console.print(err_not_found(exc.message))
        else:
            console.print(err_lectern(exc))
        raise typer.Exit(exc.exit_code) from exc
    except ConfigError as exc:
        if json_output:
            typer.echo(json.dumps({"error": str(exc)}))
        else:
            console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    except MissingApiKeyError as exc:
        if json_output:
            typer.echo(json.dumps({"error": str(exc)}))
        else:
            console.print(err_no_api_key(exc.provider, exc.env_var))
        raise typer.Exit(1) from exc
