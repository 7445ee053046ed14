"""User library (whole-blob) commands."""

import json
from pathlib import Path

import typer

from cli.context import load_context, require_user
from cli.runner import run_session

library_app = typer.Typer(help="Reconcile, upload or back up the user library.")


@library_app.command("reconcile")
@require_user
def library_reconcile() -> None:
    """Compare local and remote library and sync in the right direction."""
    ctx = load_context()
    outcome = run_session(
        ctx.username, lambda session: session.reconciler.reconcile_user_library(ctx.username)
    )
    typer.echo(f"📚 Library: {outcome.value}")


@library_app.command("upload")
@require_user
def library_upload() -> None:
    """Merge local content into the remote library now."""
    ctx = load_context()
    ok = run_session(
        ctx.username, lambda session: session.reconciler.upload_full_user_library(ctx.username)
    )
    if not ok:
        typer.echo("❌ Upload failed; see the log for details.")
        raise typer.Exit(code=1)
    typer.echo("✅ Library uploaded.")


@library_app.command("export")
@require_user
def library_export(
    output: Path = typer.Argument(..., help="Destination JSON file."),
) -> None:
    """Write a local backup of the library, device-only rows included."""
    ctx = load_context()

    async def _snapshot(session):
        return session.reconciler.local_snapshot(include_local=True)

    snapshot = run_session(ctx.username, _snapshot)
    output.write_text(json.dumps(snapshot.model_dump(), indent=2), encoding="utf-8")
    typer.echo(
        f"💾 Exported {len(snapshot.diagrams)} diagrams and "
        f"{len(snapshot.elements)} elements to {output}"
    )
