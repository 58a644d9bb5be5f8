"""Tests for the folio command line."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from folio import config as folio_config
from folio.cli import app
from folio.notebook.cell import CellKind, new_cell
from folio.notebook.store import PageStore

runner = CliRunner()


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(folio_config, "_config_dir", lambda: tmp_path / ".folio")
    return tmp_path / ".folio"


def test_new_and_show(home: Path) -> None:
    created = runner.invoke(app, ["new", "proj", "intro", "--starter"])
    assert created.exit_code == 0, created.output
    assert (home / "pages" / "proj" / "intro.json").exists()

    shown = runner.invoke(app, ["show", "proj", "intro"])
    assert shown.exit_code == 0
    assert "markdown" in shown.output
    assert "code" in shown.output


def test_show_missing_page(home: Path) -> None:
    result = runner.invoke(app, ["show", "proj", "missing"])
    assert result.exit_code == 1
    assert "NOT_FOUND" in result.output


def test_check(home: Path, tmp_path: Path) -> None:
    clean = tmp_path / "clean.py"
    clean.write_text("sum([1, 2, 3])\n")
    dirty = tmp_path / "dirty.py"
    dirty.write_text("while True:\n    pass\n")

    assert runner.invoke(app, ["check", str(clean)]).exit_code == 0
    rejected = runner.invoke(app, ["check", str(dirty)])
    assert rejected.exit_code == 1
    assert "DENIED_UNCONDITIONAL_LOOP" in rejected.output


def test_exec(home: Path, tmp_path: Path) -> None:
    script = tmp_path / "script.py"
    script.write_text('print("hi")\n6 * 7\n')
    result = runner.invoke(app, ["exec", str(script)])
    assert result.exit_code == 0, result.output
    assert "42" in result.output
    assert "hi" in result.output


def test_run_page(home: Path) -> None:
    runner.invoke(app, ["new", "proj", "calc"])
    store = PageStore(home / "pages")
    document = store.load("proj", "calc").data
    assert document is not None
    cell = new_cell(CellKind.CODE)
    cell.content = "2 ** 10"
    document.cells.append(cell)
    store.save("proj", "calc", document)

    result = runner.invoke(app, ["run", "proj", "calc"])
    assert result.exit_code == 0, result.output
    saved = store.load("proj", "calc").data
    assert saved is not None
    assert [c.kind for c in saved.cells] == ["code", "output"]
    assert saved.cells[1].output is not None
    assert saved.cells[1].output.kind == "success"
