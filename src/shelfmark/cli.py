"""Command line interface for shelfmark."""

from __future__ import annotations

import errno
import logging
import os
import sys
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

import typer
from rich.console import Console
from rich.filesize import decimal
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from shelfmark.bibliographic.overlay import ClassificationOverlay
from shelfmark.bibliographic.pica import PicaReader
from shelfmark.config import Shelf
from shelfmark.errors import ShelfmarkError
from shelfmark.index.consistency import VerifyMode, clean as clean_shelf
from shelfmark.index.consistency import status as shelf_status
from shelfmark.index.consistency import verify as verify_shelf
from shelfmark.index.indexer import IndexBuilder
from shelfmark.index.storage import CatalogStore, write_csv
from shelfmark.index.summary import summarize
from shelfmark.parallel import PoolKind, WorkerPool

console = Console()
err_console = Console(stderr=True)
app = typer.Typer(help="shelfmark - curate catalogs of plain-text document collections")

LOGGER = logging.getLogger(__name__)

POOL_KIND: PoolKind = "process"

T = TypeVar("T")

JOBS_OPTION = typer.Option(None, "--jobs", "-j", min=0, help="Number of worker processes (default: all cores)")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose logging")
QUIET_OPTION = typer.Option(False, "--quiet", "-q", help="Only report warnings and errors")


class ModeChoice(str, Enum):
    PERMISSIVE = "permissive"
    STRICT = "strict"
    PEDANTIC = "pedantic"


def _setup_logging(verbose: bool, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


@contextmanager
def _fatal_errors() -> Iterator[None]:
    """Turn library errors into a single message and exit code 1."""
    try:
        yield
    except ShelfmarkError as exc:
        err_console.print(f"[bold red]error:[/bold red] {escape(str(exc))}", highlight=False)
        raise typer.Exit(code=1) from exc


def _make_pool(jobs: Optional[int], shelf: Shelf) -> WorkerPool:
    return WorkerPool(jobs or shelf.num_jobs, kind=POOL_KIND)


def _discover() -> Shelf:
    return Shelf.discover(Path.cwd())


def _with_progress(description: str, quiet: bool, task: Callable[[Callable[[int, int], None]], T]) -> T:
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=err_console,
        disable=quiet,
        transient=True,
    ) as progress:
        task_id = progress.add_task(description, total=None)

        def update(completed: int, total: int) -> None:
            progress.update(task_id, completed=completed, total=total)

        return task(update)


def _is_broken_pipe(exc: BaseException) -> bool:
    return isinstance(exc, BrokenPipeError) or (
        isinstance(exc, OSError) and exc.errno == errno.EPIPE
    )


def _detach_stdout() -> None:
    # Python flushes stdout at exit; point it at devnull so the closed pipe
    # doesn't raise a second time.
    try:
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
    except (OSError, ValueError):
        pass


@app.command()
def init(
    name: Optional[str] = typer.Argument(None, help="Name of the shelf (default: directory name)"),
    path: Path = typer.Option(Path("."), "--path", help="Root directory of the new shelf"),
) -> None:
    """Create a new shelf with a config file and an empty data directory."""
    with _fatal_errors():
        shelf = Shelf.create(path, name)
    console.print(f"Initialized shelf '{shelf.name}' in [bold]{shelf.root}[/bold]")


@app.command()
def index(
    dump: Optional[Path] = typer.Argument(
        None, help="PICA+ dump used to refine kinds and subjects", exists=True, dir_okay=False
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the catalog to FILE"),
    stdout: bool = typer.Option(False, "--stdout", help="Write the catalog as CSV to stdout"),
    jobs: Optional[int] = JOBS_OPTION,
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Create a catalog of all documents of the shelf."""
    if stdout and output is not None:
        raise typer.BadParameter("--stdout conflicts with --output")
    _setup_logging(verbose, quiet or stdout)

    with _fatal_errors():
        shelf = _discover()
        overlay = ClassificationOverlay.from_config(shelf.config)
        if dump is not None:
            reader = PicaReader(dump, lenient=True)
            overlay.load(reader)
            if reader.skipped:
                LOGGER.warning("Skipped %d invalid record(s) in %s", reader.skipped, dump)

        with _make_pool(jobs, shelf) as pool:
            builder = IndexBuilder(shelf, pool, overlay=overlay)
            entries = _with_progress("Indexing documents", quiet or stdout, builder.build)

        if stdout:
            try:
                write_csv(entries, sys.stdout.buffer)
                sys.stdout.flush()
            except OSError as exc:
                if not _is_broken_pipe(exc):
                    raise
                _detach_stdout()
            return

        store = CatalogStore(output if output is not None else shelf.catalog_path)
        store.write(entries)

    console.print(
        f"Indexed {len(entries)} documents into [bold]{store.path}[/bold] "
        f"(refined: {builder.stats.refined}, with subject: {builder.stats.with_subject})"
    )


@app.command()
def status(
    jobs: Optional[int] = JOBS_OPTION,
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Show differences between the catalog and the documents on disk."""
    _setup_logging(verbose, quiet)
    with _fatal_errors():
        shelf = _discover()
        entries = CatalogStore(shelf.catalog_path).read()
        with _make_pool(jobs, shelf) as pool:
            report = shelf_status(shelf, entries, pool)

    if not quiet:
        err_console.print(f"shelf '{shelf.name}', version {shelf.config.metadata.version}.\n")
    if report.consistent:
        console.print("OK, index and documents are consistent.")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("status")
    table.add_column("H")
    table.add_column("M")
    table.add_column("S")
    table.add_column("document")

    mark = {True: "✓", False: "✗"}
    for check in report.changed:
        table.add_row(
            "changed", mark[check.hash_ok], mark[check.mtime_ok], mark[check.size_ok], check.path
        )
    for path in report.missing:
        table.add_row("missing", "", "", "", path)
    for path in report.untracked:
        table.add_row("untracked", "", "", "", path)

    console.print(table)


@app.command()
def verify(
    mode: ModeChoice = typer.Option(
        ModeChoice.STRICT, "--mode", "-m", case_sensitive=False, help="Verification strictness"
    ),
    jobs: Optional[int] = JOBS_OPTION,
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Verify that the documents on disk match the catalog."""
    verify_mode = VerifyMode.parse(mode.value)
    _setup_logging(verbose, quiet)
    with _fatal_errors():
        shelf = _discover()
        entries = CatalogStore(shelf.catalog_path).read()
        with _make_pool(jobs, shelf) as pool:
            verified = verify_shelf(shelf, entries, pool, verify_mode)

    if not quiet:
        console.print(f"OK, verified {verified} documents (mode: {verify_mode}).")


@app.command()
def clean(
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation"),
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Delete untracked documents and drop catalog rows of missing documents."""
    _setup_logging(verbose, quiet)
    with _fatal_errors():
        shelf = _discover()
        store = CatalogStore(shelf.catalog_path)
        report = clean_shelf(
            shelf,
            store,
            store.read(),
            confirm=lambda message: typer.confirm(message, default=False),
            force=force,
        )

    if quiet:
        return
    console.print(
        f"Removed {len(report.removed)} untracked document(s), "
        f"dropped {len(report.dropped)} catalog row(s)."
    )


@app.command()
def summary(verbose: bool = VERBOSE_OPTION, quiet: bool = QUIET_OPTION) -> None:
    """Print document counts and sizes per source and kind."""
    _setup_logging(verbose, quiet)
    with _fatal_errors():
        shelf = _discover()
        rows = summarize(CatalogStore(shelf.catalog_path).read())

    if not rows:
        console.print("[yellow]The catalog is empty.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("source", "kind", "docs", "size", "unique"):
        table.add_column(column)
    for row in rows:
        table.add_row(row.source, row.kind, str(row.docs), decimal(row.size), str(row.unique))
    console.print(table)
