"""pagemind CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from pagemind.cli.ask import ask_cmd, chat_cmd
from pagemind.cli.status import facts_cmd, status_cmd
from pagemind.cli.sync import sync_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("pagemind")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"pagemind {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="pagemind",
    help=(
        "pagemind: ask questions about your workspace pages.\n\n"
        "  pagemind sync   Keep the local index in step with the workspace.\n"
        "  pagemind ask    Answer a question with cited pages and remembered facts."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """pagemind: ask questions about your workspace pages."""


app.command("sync")(sync_cmd)
app.command("ask")(ask_cmd)
app.command("chat")(chat_cmd)
app.command("status")(status_cmd)
app.command("facts")(facts_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed pagemind version."""
    typer.echo(f"pagemind {_installed_version()}")


if __name__ == "__main__":
    app()
