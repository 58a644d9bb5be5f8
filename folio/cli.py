"""CLI entry points: `folio new`, `show`, `check`, `exec` and `run`."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from folio.config import ensure_dirs, load_config, pages_dir
from folio.core import DispatchError, Result
from folio.notebook.cell import CellKind
from folio.notebook.controller import create_controller
from folio.notebook.document import Document
from folio.notebook.starter import starter_document
from folio.notebook.store import PageStore
from folio.sandbox.broker import ExecutionBroker
from folio.sandbox.outcome import ErrorOutcome, ExecutionOutcome, SuccessOutcome
from folio.sandbox.validator import validate_source

app = typer.Typer(name="folio", help="Notebook documents with sandboxed code cells.")
console = Console()


@app.callback()
def main_options(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def _store() -> PageStore:
    ensure_dirs()
    return PageStore(pages_dir())


def _print_diagnostics(result: Result[object]) -> None:
    for d in result.diagnostics:
        console.print(f"[red]{d.code}:[/red] {escape(d.message)}")
        if d.hint:
            console.print(f"  Hint: {d.hint}")


def _print_outcome(outcome: ExecutionOutcome) -> None:
    for record in getattr(outcome, "console", []):
        args = " ".join(str(a) for a in record.args)
        style = {"error": "red", "warn": "yellow", "info": "cyan"}.get(record.level, "dim")
        console.print(f"[{style}]{record.level:>5}[/{style}] {escape(args)}")
    if isinstance(outcome, SuccessOutcome):
        console.print(f"[green]=>[/green] {escape(repr(outcome.return_value))}")
    elif isinstance(outcome, ErrorOutcome):
        console.print(f"[red]{outcome.error_kind} error:[/red] {escape(outcome.message)}")
    else:
        console.print(f"[yellow]Timed out after {outcome.timeout_seconds}s[/yellow]")


def _load(store: PageStore, project: str, page: str) -> Document:
    result = store.load(project, page)
    if not result.ok or result.data is None:
        _print_diagnostics(result)
        raise typer.Exit(1)
    return result.data


@app.command()
def new(
    project: str = typer.Argument(help="Project id"),
    page: str = typer.Argument(help="Page id"),
    starter: bool = typer.Option(False, "--starter", help="Start from the welcome page"),
) -> None:
    """Create and save an empty page."""
    store = _store()
    if starter:
        document = starter_document(project, page)
    else:
        document = Document(project_id=project, page_id=page, title=page)
    result = store.save(project, page, document)
    if not result.ok:
        _print_diagnostics(result)
        raise typer.Exit(1)
    console.print(f"[green]Created {project}/{page}[/green] ({len(document.cells)} cells)")


@app.command()
def show(
    project: str = typer.Argument(help="Project id"),
    page: str = typer.Argument(help="Page id"),
) -> None:
    """List the cells of a page."""
    document = _load(_store(), project, page)
    t = Table(title=f"{document.title} ({project}/{page})", show_lines=False)
    t.add_column("#", justify="right")
    t.add_column("Id", style="cyan")
    t.add_column("Kind", style="green")
    t.add_column("Content")
    for cell in document.cells:
        first_line = cell.content.strip().splitlines()[0] if cell.content.strip() else ""
        if cell.kind == CellKind.OUTPUT and cell.output is not None:
            first_line = f"{cell.output.kind} (from {cell.source_cell_id})"
        t.add_row(str(cell.position), cell.id, cell.kind, escape(first_line[:70]))
    console.print(t)


@app.command()
def check(path: Path = typer.Argument(help="Python file to scan", exists=True, dir_okay=False)) -> None:
    """Scan a file for patterns the sandbox refuses to run."""
    config = load_config()
    result = validate_source(path.read_text(), max_length=config.execution.max_source_length)
    if result.ok:
        console.print("[green]No violations[/green]")
        return
    _print_diagnostics(result)
    raise typer.Exit(1)


@app.command(name="exec")
def exec_file(path: Path = typer.Argument(help="Python file to run", exists=True, dir_okay=False)) -> None:
    """Validate a file and run it in an isolated context."""
    config = load_config()
    source = path.read_text()
    validation = validate_source(source, max_length=config.execution.max_source_length)
    if not validation.ok:
        _print_diagnostics(validation)
        raise typer.Exit(1)
    broker = ExecutionBroker(
        timeout_seconds=config.execution.timeout_seconds,
        memory_limit_mb=config.execution.memory_limit_mb,
    )
    try:
        outcome = asyncio.run(broker.execute(source))
    except DispatchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    _print_outcome(outcome)
    if not isinstance(outcome, SuccessOutcome):
        raise typer.Exit(1)


@app.command()
def run(
    project: str = typer.Argument(help="Project id"),
    page: str = typer.Argument(help="Page id"),
) -> None:
    """Execute every code cell of a page in order and save the result."""
    store = _store()
    document = _load(store, project, page)
    asyncio.run(_run_page(store, document))


async def _run_page(store: PageStore, document: Document) -> None:
    controller = create_controller(load_config(), document, store=store)
    code_ids = [c.id for c in document.cells if c.kind == CellKind.CODE]
    for cell_id in code_ids:
        console.print(f"[bold]Running {cell_id}[/bold]")
        result = await controller.execute(cell_id)
        if result.data is None:
            _print_diagnostics(result)
            continue
        _print_outcome(result.data)
    await controller.aclose()
    saved = controller.save()
    if not saved.ok:
        _print_diagnostics(saved)
        raise typer.Exit(1)
    console.print(f"[green]Saved {document.project_id}/{document.page_id}[/green]")


def main() -> None:
    app()
