"""pagemind ask / pagemind chat: answer questions from the index and memory."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown

from pagemind.cli import runtime
from pagemind.cli.errors import err_no_db, warn_degraded
from pagemind.coordinator import Answer
from pagemind.db.repository import SearchFilters

console = Console()

_EXIT_WORDS = {"exit", "quit", ":q"}


def ask_cmd(
    question: Annotated[str, typer.Argument(help="The question to answer.")],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the index database."),
    ] = runtime.DEFAULT_DB,
    tag: Annotated[
        list[str] | None,
        typer.Option("--tag", "-t", help="Only use pages with this tag (repeatable)."),
    ] = None,
    since: Annotated[
        str | None,
        typer.Option("--since", help="Only use pages created on/after this ISO date."),
    ] = None,
    until: Annotated[
        str | None,
        typer.Option("--until", help="Only use pages created on/before this ISO date."),
    ] = None,
) -> None:
    """Answer one question from the synced pages and remembered facts."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    cfg = runtime.load_cli_config()
    repo = runtime.open_repository(db)
    coordinator = runtime.make_coordinator(cfg, repo)
    filters = SearchFilters(tags=tag or [], since=since, until=until)
    try:
        answer = coordinator.ask(uuid.uuid4().hex, question, filters)
        _print_answer(answer)
    finally:
        coordinator.close()
        repo.conn.close()


def chat_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the index database."),
    ] = runtime.DEFAULT_DB,
) -> None:
    """Interactive session: recent turns are kept as context and facts are learned."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    cfg = runtime.load_cli_config()
    repo = runtime.open_repository(db)
    coordinator = runtime.make_coordinator(cfg, repo)
    session_id = uuid.uuid4().hex
    console.print("[bold]pagemind chat[/] — type 'exit' to quit.")
    try:
        while True:
            try:
                text = console.input("[bold cyan]you>[/] ").strip()
            except EOFError:
                break
            if not text:
                continue
            if text.lower() in _EXIT_WORDS:
                break
            _print_answer(coordinator.ask(session_id, text))
    except KeyboardInterrupt:
        pass
    finally:
        coordinator.end_session(session_id)
        coordinator.close()
        repo.conn.close()


def _print_answer(answer: Answer) -> None:
    console.print(Markdown(answer.text))
    if answer.degraded:
        console.print(warn_degraded(answer.degraded))
