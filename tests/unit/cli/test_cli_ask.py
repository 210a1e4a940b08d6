"""Tests for pagemind ask / pagemind chat."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from pagemind.cli.main import app
from pagemind.cli.runtime import open_repository
from pagemind.config import PagemindConfig
from pagemind.coordinator import Answer
from pagemind.db.repository import SearchFilters

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / ".pagemind.db"
    open_repository(path).conn.close()
    return path


@pytest.fixture
def coordinator():
    coord = MagicMock()
    coord.ask.side_effect = lambda session_id, text, filters=None: Answer(text=f"Answer: {text}")
    with (
        patch("pagemind.cli.runtime.load_cli_config", return_value=PagemindConfig()),
        patch("pagemind.cli.runtime.make_coordinator", return_value=coord),
    ):
        yield coord


# ---------------------------------------------------------------------------
# pagemind ask
# ---------------------------------------------------------------------------


def test_ask_without_index_exits_one(tmp_path: Path) -> None:
    result = runner.invoke(app, ["ask", "hello?", "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
    assert "No index found" in result.output
    assert "pagemind sync" in result.output


def test_ask_prints_answer(db_path: Path, coordinator: MagicMock) -> None:
    result = runner.invoke(app, ["ask", "What should I read?", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "Answer: What should I read?" in result.output
    coordinator.close.assert_called_once()


def test_ask_passes_filters(db_path: Path, coordinator: MagicMock) -> None:
    result = runner.invoke(
        app,
        ["ask", "books", "--db", str(db_path), "-t", "reading", "-t", "sci-fi", "--since", "2025-01-01"],
    )

    assert result.exit_code == 0
    _, question, filters = coordinator.ask.call_args.args
    assert question == "books"
    assert filters == SearchFilters(tags=["reading", "sci-fi"], since="2025-01-01", until=None)


def test_ask_warns_when_degraded(db_path: Path, coordinator: MagicMock) -> None:
    coordinator.ask.side_effect = None
    coordinator.ask.return_value = Answer(text="Partial answer.", degraded=["documents"])

    result = runner.invoke(app, ["ask", "books", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "Answered without documents" in result.output


# ---------------------------------------------------------------------------
# pagemind chat
# ---------------------------------------------------------------------------


def test_chat_keeps_one_session_until_exit(db_path: Path, coordinator: MagicMock) -> None:
    result = runner.invoke(app, ["chat", "--db", str(db_path)], input="first\n\nsecond\nexit\nignored\n")

    assert result.exit_code == 0
    asked = [c.args for c in coordinator.ask.call_args_list]
    assert [a[1] for a in asked] == ["first", "second"]
    assert asked[0][0] == asked[1][0]
    coordinator.end_session.assert_called_once_with(asked[0][0])
    coordinator.close.assert_called_once()


def test_chat_ends_on_eof(db_path: Path, coordinator: MagicMock) -> None:
    result = runner.invoke(app, ["chat", "--db", str(db_path)], input="only question\n")

    assert result.exit_code == 0
    assert coordinator.ask.call_count == 1
    coordinator.end_session.assert_called_once()


def test_chat_without_index_exits_one(tmp_path: Path) -> None:
    result = runner.invoke(app, ["chat", "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
