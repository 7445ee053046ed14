"""Per-collection sync commands."""

import typer

from drawpak.sync import SyncReport

from cli.context import load_context, require_user
from cli.runner import run_session

sync_app = typer.Typer(help="Synchronise collections with the server.")

_KINDS = ("diagrams", "elements")


def _describe(report: SyncReport) -> str:
    if report.aborted:
        return f"❌ {report.kind}: aborted (server unreachable)"
    mark = "✅" if report.ok else "⚠️"
    return (
        f"{mark} {report.kind}: {report.pulled} new, {report.updated} updated, "
        f"{report.unchanged} unchanged, {report.pushed} pushed, {report.failed} failed"
    )


@sync_app.command("run")
@require_user
def sync_run(
    kind: str = typer.Option("all", "--kind", help="diagrams, elements or all."),
) -> None:
    """Run a two-way sync of one or both collections."""
    if kind != "all" and kind not in _KINDS:
        typer.echo(f"❌ Unknown kind: {kind}")
        raise typer.Exit(code=1)
    kinds = _KINDS if kind == "all" else (kind,)
    ctx = load_context()

    async def _run(session):
        return [await session.engines[k].sync(session.username) for k in kinds]

    reports = run_session(ctx.username, _run)
    for report in reports:
        typer.echo(_describe(report))
    if any(r.aborted for r in reports):
        raise typer.Exit(code=1)
