"""Domain helpers for Diagrams.

A Diagram is a named node/edge graph produced by the editor.  ``nodes`` and
``edges`` are opaque JSON strings as far as this package is concerned.
"""

from __future__ import annotations

from typing import Any, Optional

from drawpak.db.models import Diagram
from drawpak.db.store import EntityStore


def diagram_store(conn) -> EntityStore[Diagram]:
    return EntityStore(conn, Diagram)


def save_diagram(store: EntityStore[Diagram], diagram: Diagram) -> Diagram:
    """Persist *diagram* as a local write and return the stored copy.

    The row is marked unsynchronized; ``updated_by`` falls back to
    ``created_by``.
    """
    diagram.updated_by = diagram.updated_by or diagram.created_by
    diagram.synchronized = False
    return store.put(diagram)


def update_diagram(store: EntityStore[Diagram], diagram_id: str, **changes: Any) -> Diagram:
    """Update fields of an existing diagram.

    Raises:
        ValueError: If *diagram_id* does not exist or a field is unknown.
    """
    changes.setdefault("synchronized", False)
    return store.update(diagram_id, **changes)


def duplicate_diagram(
    store: EntityStore[Diagram],
    diagram_id: str,
    new_name: str,
    created_by: Optional[str] = None,
) -> Diagram:
    """Copy a diagram's content under a new id and name.

    Raises:
        ValueError: If *diagram_id* does not exist.
    """
    original = store.get(diagram_id)
    if original is None:
        raise ValueError(f"Diagram not found: {diagram_id!r}")
    copy = Diagram(
        name=new_name,
        description=original.description,
        nodes=original.nodes,
        edges=original.edges,
        created_by=created_by or original.created_by,
        updated_by=created_by or original.updated_by or original.created_by,
        local=original.local,
    )
    return save_diagram(store, copy)


def list_diagrams(store: EntityStore[Diagram], include_hidden: bool = False) -> list[Diagram]:
    """All diagrams, most recently updated first."""
    return store.list(include_hidden=include_hidden)
