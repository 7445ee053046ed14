"""Tests for the CLI context management module."""

import json

import typer
from typer.testing import CliRunner

from cli.context import (
    CliContext,
    _get_context_path,
    load_context,
    require_user,
    save_context,
)

runner = CliRunner()


def test_load_default_context():
    """Should return defaults when no file exists."""
    ctx = load_context()
    assert isinstance(ctx, CliContext)
    assert ctx.username is None


def test_save_and_load_roundtrip():
    save_context(CliContext(username="alice"))

    assert json.loads(_get_context_path().read_text(encoding="utf-8")) == {"username": "alice"}
    assert load_context().username == "alice"


def test_corrupt_file_returns_defaults():
    _get_context_path().parent.mkdir(parents=True, exist_ok=True)
    _get_context_path().write_text("{ not json", encoding="utf-8")
    assert load_context() == CliContext()


def test_unknown_keys_return_defaults():
    _get_context_path().parent.mkdir(parents=True, exist_ok=True)
    _get_context_path().write_text('{"theme": "dark"}', encoding="utf-8")
    assert load_context().username is None


def _app() -> typer.Typer:
    app = typer.Typer()

    @app.command()
    @require_user
    def hello() -> None:
        typer.echo(f"hello {load_context().username}")

    return app


def test_require_user_blocks_when_logged_out():
    result = runner.invoke(_app(), [])
    assert result.exit_code == 1
    assert "Not logged in." in result.stdout


def test_require_user_allows_when_logged_in():
    save_context(CliContext(username="bob"))
    result = runner.invoke(_app(), [])
    assert result.exit_code == 0
    assert "hello bob" in result.stdout
