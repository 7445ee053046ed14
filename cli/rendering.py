"""Utilities for rendering local entities in the CLI."""

from __future__ import annotations

from typing import List, Union

from drawpak.db.models import Diagram, GraphicElement
from drawpak.timestamps import format_timestamp


def _flags(entity: Union[Diagram, GraphicElement]) -> str:
    marks = []
    if entity.local:
        marks.append("local")
    if entity.hidden:
        marks.append("hidden")
    marks.append("synced" if entity.synchronized else "pending")
    return ",".join(marks)


def render_rows(entities: List[Union[Diagram, GraphicElement]]) -> List[str]:
    """One line per entity: short id, name, category, last update and flags.

    Args:
        entities: Diagrams or graphic elements, already ordered.

    Returns:
        Lines ready for ``typer.echo``.
    """
    lines = []
    for e in entities:
        category = f" <{e.category}>" if isinstance(e, GraphicElement) else ""
        updated = format_timestamp(e.updated_at) or "-"
        lines.append(f" - {e.name or '(unnamed)'}{category} [{(e.id or '')[:8]}] {updated} ({_flags(e)})")
    return lines
