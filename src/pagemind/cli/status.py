"""pagemind status / pagemind facts: what is indexed, how fresh it is, what failed."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pagemind.cli import runtime
from pagemind.config import PagemindConfig, load_config
from pagemind.db.repository import Repository
from pagemind.sync.state import SyncStateStore

console = Console()


def status_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the index database."),
    ] = runtime.DEFAULT_DB,
) -> None:
    """Show index contents, sync freshness and items waiting for retry."""
    # Config is optional here: status must work without pagemind.yaml.
    try:
        cfg = load_config()
    except Exception:
        cfg = PagemindConfig()

    _show_config_panel(db, cfg)

    if not db.exists():
        console.print(
            Panel(
                "[yellow]No index found.[/]\n"
                "  Run:  pagemind sync",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    repo = runtime.open_repository(db)
    try:
        store = SyncStateStore(repo.conn, lock=repo.lock)
        _show_index_panel(repo)
        _show_sync_panel(store)
        _show_failures(store)
    finally:
        repo.conn.close()


def facts_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the index database."),
    ] = runtime.DEFAULT_DB,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Show at most this many facts."),
    ] = 50,
) -> None:
    """List facts learned from conversations, newest first."""
    if not db.exists():
        console.print("[dim]No facts yet.[/]")
        return

    repo = runtime.open_repository(db)
    try:
        facts = repo.list_facts(limit)
    finally:
        repo.conn.close()

    if not facts:
        console.print("[dim]No facts yet.[/]")
        return

    table = Table(title=f"Facts ({len(facts)})")
    table.add_column("Learned", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Fact")
    for fact in facts:
        table.add_row(fact.created_time[:19].replace("T", " "), fact.fact_type, fact.content)
    console.print(table)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(db: Path, cfg: PagemindConfig) -> None:
    db_info = f"{db}"
    if db.exists():
        size_mb = db.stat().st_size / (1024 * 1024)
        db_info = f"{db} ({size_mb:.1f} MB)"

    lines = [
        f"Provider:   {cfg.provider.base_url or '[yellow](not configured)[/]'}",
        f"Database:   {db_info}",
        f"Embedding:  {cfg.embedding.model}",
        f"Generation: {cfg.generation.model}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]pagemind[/]", expand=False))


def _show_index_panel(repo: Repository) -> None:
    lines = [
        f"Pages: [bold]{repo.count_items():,}[/]  |  "
        f"Chunks: [bold]{repo.count_chunks():,}[/]  |  "
        f"Facts: [bold]{repo.count_facts():,}[/]"
    ]
    for table in _list_vec_tables(repo.conn):
        lines.append(f"  {table}")
    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))


def _show_sync_panel(store: SyncStateStore) -> None:
    hwm = store.high_water_mark()
    reconciled = store.last_full_reconcile()
    lines = [
        f"Tracked pages:    [bold]{store.count():,}[/]",
        f"High-water mark:  {hwm or '[dim]never synced[/]'}",
        "Full reconcile:   "
        + (
            datetime.fromtimestamp(reconciled, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
            if reconciled is not None
            else "[dim]never[/]"
        ),
    ]
    console.print(Panel("\n".join(lines), title="[bold]Sync[/]", expand=False))


def _show_failures(store: SyncStateStore) -> None:
    failures = store.list_failures()
    if not failures:
        return
    table = Table(title=f"[yellow]Waiting for retry ({len(failures)})[/]")
    table.add_column("Item")
    table.add_column("Error", style="red")
    table.add_column("Attempts", justify="right")
    table.add_column("Last failure", style="dim")
    for f in failures:
        table.add_row(f.item_id, f.error_type, str(f.attempts), f.failed_at)
    console.print(table)


# ---------------------------------------------------------------------------
# DB helpers
# ---------------------------------------------------------------------------


def _list_vec_tables(conn: sqlite3.Connection) -> list[str]:
    """Return descriptions of the vec virtual tables (name + vector count)."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_%' "
        "AND sql LIKE 'CREATE VIRTUAL TABLE%' ORDER BY name"
    ).fetchall()
    result: list[str] = []
    for (name,) in rows:
        count = conn.execute(f"SELECT COUNT(*) FROM [{name}]").fetchone()[0]  # noqa: S608
        result.append(f"[dim]{name}[/] ({count:,} vectors)")
    return result
