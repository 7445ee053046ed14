"""DrawPak CLI: entry-point for local store and sync operations.

Usage:
    drawpak --help

Command groups:
    user      → sign in / out (the username sync acts for)
    db        → local database
    diagrams  → list, hide, restore, duplicate
    elements  → symbol palette
    sync      → per-collection sync
    library   → whole-library reconcile, upload and backup
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from drawpak.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from typing import Optional

import typer

from drawpak.config import settings
from drawpak.db import get_connection, init_db
from drawpak.db.migrations import current_version
from drawpak.logging_config import setup_logger

from cli.commands.diagrams import diagrams_app
from cli.commands.elements import elements_app
from cli.commands.library import library_app
from cli.commands.sync import sync_app
from cli.commands.user import user_app

app = typer.Typer(
    name="drawpak",
    help="DrawPak local store and sync CLI.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr too."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override DRAWPAK_LOG_LEVEL."),
) -> None:
    settings.ensure_workspace()
    setup_logger(log_level=log_level, console=verbose)


app.add_typer(user_app, name="user")
app.add_typer(diagrams_app, name="diagrams")
app.add_typer(elements_app, name="elements")
app.add_typer(sync_app, name="sync")
app.add_typer(library_app, name="library")

# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Create the SQLite database or migrate it to the current schema."""
    conn = get_connection()
    try:
        init_db(conn)
        version = current_version(conn)
    finally:
        conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path} (schema v{version})")


if __name__ == "__main__":
    app()
