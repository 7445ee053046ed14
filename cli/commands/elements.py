"""Graphic element (symbol palette) commands."""

from typing import Optional

import typer

from drawpak.db import get_connection, init_db
from drawpak.db.elements import element_store, elements_by_category, list_categories

from cli.context import load_context, require_user
from cli.rendering import render_rows
from cli.runner import run_session

elements_app = typer.Typer(help="Browse and reset the symbol palette.")


@elements_app.command("list")
def elements_list(
    category: Optional[str] = typer.Option(None, "--category", help="Only this category."),
    show_all: bool = typer.Option(False, "--all", help="Include hidden elements."),
) -> None:
    """List local graphic elements."""
    conn = get_connection()
    init_db(conn)
    try:
        store = element_store(conn)
        if category:
            elements = elements_by_category(store, category, include_hidden=show_all)
        else:
            elements = store.list(include_hidden=show_all)
        if not elements:
            typer.echo("No elements found.")
            return
        for line in render_rows(elements):
            typer.echo(line)
    finally:
        conn.close()


@elements_app.command("categories")
def elements_categories() -> None:
    """List the categories present in the palette."""
    conn = get_connection()
    init_db(conn)
    try:
        categories = list_categories(element_store(conn))
        if not categories:
            typer.echo("No categories found.")
            return
        for name in categories:
            typer.echo(f" - {name}")
    finally:
        conn.close()


@elements_app.command("reseed")
@require_user
def elements_reseed() -> None:
    """Drop every element and seed the palette again."""
    ctx = load_context()
    added = run_session(ctx.username, lambda session: session.seeder.reseed())
    typer.echo(f"🌱 Seeded {added} elements")
