"""Domain helpers for GraphicElements (reusable symbols in the palette)."""

from __future__ import annotations

from typing import Any, Optional

from drawpak.db.models import GraphicElement
from drawpak.db.store import EntityStore


def element_store(conn) -> EntityStore[GraphicElement]:
    return EntityStore(conn, GraphicElement)


def save_element(store: EntityStore[GraphicElement], element: GraphicElement) -> GraphicElement:
    """Persist *element* as a local write and return the stored copy."""
    element.updated_by = element.updated_by or element.created_by
    element.synchronized = False
    return store.put(element)


def update_element(
    store: EntityStore[GraphicElement], element_id: str, **changes: Any
) -> GraphicElement:
    """Update fields of an existing element.

    Raises:
        ValueError: If *element_id* does not exist or a field is unknown.
    """
    changes.setdefault("synchronized", False)
    return store.update(element_id, **changes)


def elements_by_category(
    store: EntityStore[GraphicElement], category: str, include_hidden: bool = False
) -> list[GraphicElement]:
    """Elements of one category, ordered by name (case-insensitive)."""
    elements = store.list_by_index("category", category, include_hidden=include_hidden)
    return sorted(elements, key=lambda e: (e.name or "").lower())


def list_categories(store: EntityStore[GraphicElement]) -> list[str]:
    """Distinct non-empty categories across all elements, sorted."""
    rows = store.conn.execute(
        "SELECT DISTINCT category FROM graphic_elements "
        "WHERE category IS NOT NULL AND category != '' ORDER BY category"
    ).fetchall()
    return [r[0] for r in rows]


def find_element(
    store: EntityStore[GraphicElement], name: str, category: Optional[str]
) -> Optional[GraphicElement]:
    """Look up an element by name (case-insensitive) and category.

    A missing category on either side counts as ``"basic"``.
    """
    row = store.conn.execute(
        """
        SELECT * FROM graphic_elements
        WHERE  name = ? COLLATE NOCASE
          AND  COALESCE(NULLIF(category, ''), 'basic') = ?
        LIMIT  1
        """,
        (name, category or "basic"),
    ).fetchone()
    return GraphicElement.from_dict(dict(row)) if row else None
