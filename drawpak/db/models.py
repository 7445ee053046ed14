"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types, and the sync layer uses
:meth:`to_dict` / :meth:`from_dict` to move them on and off the wire.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, Optional, TypeVar

R = TypeVar("R", bound="Record")

# Flags that only exist as booleans (stored as INTEGER 0/1 in SQLite).
BOOL_FIELDS = frozenset({"local", "synchronized", "hidden"})


def as_bool(value: Any) -> bool:
    """Coerce DB / JSON representations (0/1, "true", None, …) to ``bool``."""
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def as_text(value: Any) -> Optional[str]:
    """Coerce an opaque payload value to a string (JSON for lists / dicts)."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


class Record:
    """Behaviour shared by the two synchronised entity kinds."""

    TABLE: ClassVar[str]
    KIND: ClassVar[str]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    @classmethod
    def column_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]  # type: ignore[arg-type]

    @classmethod
    def from_dict(cls: type[R], data: dict[str, Any]) -> R:
        """Build an instance from a row / JSON dict, ignoring unknown keys."""
        values: dict[str, Any] = {}
        for name in cls.column_names():
            if name not in data:
                continue
            value = data[name]
            if name in BOOL_FIELDS:
                values[name] = as_bool(value)
            elif name in ("name", "description") and value is None:
                values[name] = ""
            else:
                values[name] = as_text(value)
        return cls(**values)


@dataclass
class Diagram(Record):
    TABLE: ClassVar[str] = "diagrams"
    KIND: ClassVar[str] = "diagrams"

    id: Optional[str] = None
    name: str = ""
    description: str = ""
    nodes: str = "[]"
    edges: str = "[]"
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None
    local: bool = False
    synchronized: bool = False
    hidden: bool = False


@dataclass
class GraphicElement(Record):
    TABLE: ClassVar[str] = "graphic_elements"
    KIND: ClassVar[str] = "elements"

    id: Optional[str] = None
    name: str = ""
    description: str = ""
    category: str = "custom"
    svg: str = ""
    handles: str = ""
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None
    local: bool = False
    synchronized: bool = False
    hidden: bool = False


# Lookup used by the CLI and the sync layer: collection kind -> model.
MODELS: dict[str, type[Record]] = {
    Diagram.KIND: Diagram,
    GraphicElement.KIND: GraphicElement,
}
