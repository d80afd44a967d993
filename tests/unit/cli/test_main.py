"""Tests for the lectern entry point and error mapping."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
import yaml
from typer.testing import CliRunner

from lectern.cli.errors import err_config, err_no_api_key, err_not_found, handle_errors
from lectern.cli.main import app
from lectern.config import ConfigError
from lectern.errors import (
    EmbeddingFailure,
    NotFound,
    StoreFailure,
    ValidationFailure,
)
from lectern.rag.llm_client import MissingApiKeyError

runner = CliRunner()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("ingest", "items", "notebook", "search", "usage"):
        assert command in result.output


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("lectern ")


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "lectern" in result.output


def test_invalid_config_exits_1(project: Path) -> None:
    (project / "lectern.yaml").write_text(
        yaml.dump({"retrieval": {"rrf_k": 0}}), encoding="utf-8"
    )
    result = runner.invoke(app, ["items", "list"])
    assert result.exit_code == 1
    assert "rrf_k" in result.output


def test_dimension_change_exits_1(project: Path) -> None:
    assert runner.invoke(app, ["items", "list"]).exit_code == 0
    (project / "lectern.yaml").write_text(
        yaml.dump({"embedding": {"dimensions": 8}, "storage": {"db_path": str(project / "kb.db")}}),
        encoding="utf-8",
    )
    result = runner.invoke(app, ["items", "list", "--json"])
    assert result.exit_code == 1
    assert "dimensions" in json.loads(result.stdout)["error"]


def test_db_option_overrides_config(project: Path) -> None:
    other = project / "other.db"
    result = runner.invoke(app, ["items", "list", "--db", str(other)])
    assert result.exit_code == 0
    assert other.exists()


# ---------------------------------------------------------------------------
# handle_errors
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("exc,code", [
    (ValidationFailure("bad input"), 2),
    (NotFound("missing"), 3),
    (EmbeddingFailure("no vector"), 1),
    (StoreFailure("disk full"), 1),
    (ConfigError("broken"), 1),
    (MissingApiKeyError("openai", "OPENAI_API_KEY"), 1),
])
def test_handle_errors_exit_codes(exc, code) -> None:
    with pytest.raises(typer.Exit) as exc_info:
        with handle_errors():
            raise exc
    assert exc_info.value.exit_code == code


def test_handle_errors_json(capsys) -> None:
    with pytest.raises(typer.Exit):
        with handle_errors(json_output=True):
            raise NotFound("Notebook 3 not found.")
    assert json.loads(capsys.readouterr().out) == {"error": "Notebook 3 not found."}


def test_handle_errors_leaves_other_exceptions() -> None:
    with pytest.raises(KeyError):
        with handle_errors():
            raise KeyError("x")


def test_handle_errors_does_not_treat_os_errors_as_missing_keys() -> None:
    with pytest.raises(PermissionError):
        with handle_errors():
            raise PermissionError("denied")


# ---------------------------------------------------------------------------
# Message helpers
# ---------------------------------------------------------------------------


def test_err_no_api_key_names_env_var() -> None:
    message = err_no_api_key("anthropic", "ANTHROPIC_API_KEY")
    assert "'anthropic'" in message
    assert "export ANTHROPIC_API_KEY=" in message


def test_missing_key_message_uses_error_env_var(capsys) -> None:
    with pytest.raises(typer.Exit):
        with handle_errors():
            raise MissingApiKeyError("together", "TOGETHERAI_API_KEY")
    assert "TOGETHERAI_API_KEY" in capsys.readouterr().out


def test_err_config_points_to_files() -> None:
    assert "lectern.yaml" in err_config("bad")


def test_err_not_found_suggests_listing() -> None:
    assert "lectern items list" in err_not_found("Item 1 not found.")
