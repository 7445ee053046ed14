"""Database layer package.

Public re-exports so callers can write::

    from drawpak.db import get_connection, init_db, EntityStore
"""

from drawpak.db.connection import get_connection
from drawpak.db.migrations import init_db
from drawpak.db.models import Diagram, GraphicElement
from drawpak.db.store import EntityStore

__all__ = ["get_connection", "init_db", "Diagram", "GraphicElement", "EntityStore"]
