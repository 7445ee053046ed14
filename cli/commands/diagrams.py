"""Diagram commands."""

import typer

from drawpak.db import get_connection, init_db
from drawpak.db.diagrams import diagram_store, list_diagrams

from cli.context import load_context, require_user
from cli.rendering import render_rows
from cli.runner import run_session

diagrams_app = typer.Typer(help="List and manage diagrams.")


@diagrams_app.command("list")
def diagrams_list(
    show_all: bool = typer.Option(False, "--all", help="Include hidden diagrams."),
) -> None:
    """List local diagrams, most recently updated first."""
    conn = get_connection()
    init_db(conn)
    try:
        diagrams = list_diagrams(diagram_store(conn), include_hidden=show_all)
        if not diagrams:
            typer.echo("No diagrams found.")
            return
        typer.echo("Diagrams:")
        for line in render_rows(diagrams):
            typer.echo(line)
    finally:
        conn.close()


def _change(action: str, diagram_id: str) -> None:
    ctx = load_context()

    async def _apply(session):
        method = getattr(session, f"{action}_diagram")
        return await method(diagram_id)

    try:
        diagram = run_session(ctx.username, _apply, flush=True)
    except ValueError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(code=1)
    typer.echo(f"✅ {action.capitalize()}: {diagram.name} ({diagram.id})")


@diagrams_app.command("hide")
@require_user
def diagrams_hide(diagram_id: str = typer.Argument(..., help="Diagram id.")) -> None:
    """Soft-delete a diagram (reversible with 'restore')."""
    _change("hide", diagram_id)


@diagrams_app.command("restore")
@require_user
def diagrams_restore(diagram_id: str = typer.Argument(..., help="Diagram id.")) -> None:
    """Undo a soft delete."""
    _change("restore", diagram_id)


@diagrams_app.command("duplicate")
@require_user
def diagrams_duplicate(
    diagram_id: str = typer.Argument(..., help="Diagram id."),
    name: str = typer.Option(..., "--name", help="Name of the copy."),
) -> None:
    """Copy a diagram under a new name."""
    ctx = load_context()
    try:
        copy = run_session(
            ctx.username,
            lambda session: session.duplicate_diagram(diagram_id, name),
            flush=True,
        )
    except ValueError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(code=1)
    typer.echo(f"✅ Created: {copy.name} ({copy.id})")
