"""Sign-in commands: the username every sync operation acts for."""

import typer

from drawpak.sync.ledger import KINDS, TimestampLedger
from drawpak.timestamps import format_timestamp

from cli.context import load_context, require_user, save_context
from cli.runner import run_session

user_app = typer.Typer(help="Sign in and out of the remote library.")


@user_app.command("login")
def user_login(
    name: str = typer.Argument(..., help="Username to act as."),
) -> None:
    """Sign in as NAME, seed the palette and reconcile the user library."""
    name = name.strip()
    if not name:
        typer.echo("❌ Username must not be empty.")
        raise typer.Exit(code=1)

    ctx = load_context()
    if ctx.username and ctx.username != name:
        typer.echo(f"❌ Already logged in as {ctx.username}. Run 'user logout' first.")
        raise typer.Exit(code=1)

    ctx.username = name
    save_context(ctx)
    typer.echo(f"👤 Logged in as {name}")

    outcome = run_session(name, lambda session: session.start())
    typer.echo(f"📚 Library: {outcome.value}")


@user_app.command("logout")
@require_user
def user_logout() -> None:
    """Upload pending changes, then clear local content and sign out."""
    ctx = load_context()

    async def _logout(session):
        await session.logout()

    run_session(ctx.username, _logout)
    ctx.username = None
    save_context(ctx)
    typer.echo("👋 Logged out; local library cleared.")


@user_app.command("whoami")
def user_whoami() -> None:
    """Show the signed-in user and when each sync kind last completed."""
    ctx = load_context()
    if not ctx.username:
        typer.echo("Not logged in.")
        return
    typer.echo(ctx.username)
    ledger = TimestampLedger()
    for kind in KINDS:
        stamp = format_timestamp(ledger.get_last_synced(ctx.username, kind)) or "never"
        typer.echo(f"  {kind:<9} last synced: {stamp}")
