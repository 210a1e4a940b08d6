"""pagemind sync: bring the local index up to date with the content provider.

  pagemind sync            one incremental cycle
  pagemind sync --full     one cycle with full reconciliation (detects deletions
                           the change feed missed)
  pagemind sync --watch    keep syncing on the configured cadence until Ctrl-C
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from pagemind.cli import runtime
from pagemind.cli.errors import err_provider_auth
from pagemind.errors import ProviderAuthError
from pagemind.sync.scheduler import SyncScheduler
from pagemind.sync.state import CycleReport

console = Console()


def sync_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the index database (created if missing)."),
    ] = runtime.DEFAULT_DB,
    full: Annotated[
        bool,
        typer.Option("--full", help="Diff the provider's full item list against the index."),
    ] = False,
    watch: Annotated[
        bool,
        typer.Option("--watch", help="Keep syncing every sync.interval_seconds until Ctrl-C."),
    ] = False,
) -> None:
    """Sync the index with the content provider."""
    cfg = runtime.load_cli_config()
    repo = runtime.open_repository(db)
    try:
        engine = runtime.make_sync_engine(cfg, repo)

        if watch:
            scheduler = SyncScheduler(engine, cfg.sync.interval_seconds)
            console.print(
                f"[bold]Watching[/] — syncing every {cfg.sync.interval_seconds:g}s. "
                "Press Ctrl-C to stop."
            )
            scheduler.start()
            try:
                while scheduler.running:
                    time.sleep(1.0)
            except KeyboardInterrupt:
                pass
            finally:
                scheduler.stop()
            return

        report = engine.run_cycle(full=full)
    finally:
        repo.conn.close()

    if report is None:
        console.print("[yellow]A sync cycle is already running.[/]")
        return
    _print_report(report)
    if report.error:
        raise typer.Exit(1)


def _print_report(report: CycleReport) -> None:
    if report.error:
        if report.error.startswith(ProviderAuthError.__name__):
            console.print(err_provider_auth(report.error.split(": ", 1)[-1]))
        else:
            console.print(f"[red]Sync failed:[/] {report.error}")
        return

    table = Table(title="Sync cycle" + (" (full)" if report.full else ""), show_header=False)
    table.add_column("", style="bold")
    table.add_column("", justify="right")
    table.add_row("New", str(report.new))
    table.add_row("Modified", str(report.modified))
    table.add_row("Deleted", str(report.deleted))
    table.add_row("Unchanged", str(report.unchanged))
    table.add_row("Retried", str(report.retried))
    table.add_row("Failed", str(len(report.failures)))
    table.add_row("High-water mark", report.high_water_mark or "—")
    console.print(table)

    for item_id, error_type in sorted(report.failures.items()):
        console.print(f"  [red]✗[/] {item_id}: {error_type}")
    if report.failures:
        console.print("  Failed items are retried on the next sync.")
