"""Fixtures for CLI tests: an isolated project directory and config."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """Run the CLI from *tmp_path* with a 4-dimension embedding config.

    The global config is pointed at a missing file so the developer's
    ~/.lectern/config.yaml never leaks into a test.
    """
    (tmp_path / "lectern.yaml").write_text(
        yaml.dump(
            {
                "embedding": {"dimensions": 4},
                "storage": {
                    "db_path": str(tmp_path / "kb.db"),
                    "uploads_dir": str(tmp_path / "uploads"),
                },
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("lectern.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in ("LECTERN_EMBEDDING_MODEL", "LECTERN_GENERATION_MODEL", "LECTERN_DB"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path
