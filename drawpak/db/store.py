"""Key-value style access to one entity table.

``EntityStore`` is the Local Store contract used by the rest of the package:
``put`` / ``get`` / ``list`` / ``list_by_index`` / ``delete`` / ``clear``.
One instance wraps one table (``diagrams`` or ``graphic_elements``), keyed by
the entity's string id.

Every method runs its statements inside a single ``with conn:`` block and
never awaits, so concurrent sync tasks on the same event loop see each write
as atomic.
"""

from __future__ import annotations

import sqlite3
import uuid
from typing import Any, Generic, Iterable, Optional, TypeVar

from drawpak.db.models import BOOL_FIELDS, Record
from drawpak.timestamps import now_iso

T = TypeVar("T", bound=Record)

# Columns that may be passed to ``list_by_index``.
INDEXED_FIELDS = frozenset(
    {"name", "category", "local", "synchronized", "hidden", "updated_at", "created_by"}
)


class EntityStore(Generic[T]):
    """CRUD for a single entity table.

    Args:
        conn: Open DB connection (schema already initialised).
        model: :class:`~drawpak.db.models.Diagram` or
            :class:`~drawpak.db.models.GraphicElement`.
    """

    def __init__(self, conn: sqlite3.Connection, model: type[T]) -> None:
        self.conn = conn
        self.model = model
        self.table = model.TABLE
        self._columns = model.column_names()

    @property
    def kind(self) -> str:
        return self.model.KIND

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _row_to_entity(self, row: sqlite3.Row) -> T:
        return self.model.from_dict(dict(row))

    def _write(self, entity: T, touch: bool) -> T:
        """Upsert *entity* without opening a transaction (caller owns it)."""
        data = entity.to_dict()
        if not data.get("id") or not isinstance(data["id"], str):
            data["id"] = str(uuid.uuid4())
        if touch:
            now = now_iso()
            data["updated_at"] = now
            data["created_at"] = data.get("created_at") or now

        values = [
            int(bool(data[c])) if c in BOOL_FIELDS else data.get(c)
            for c in self._columns
        ]
        placeholders = ", ".join("?" for _ in self._columns)
        self.conn.execute(
            f"INSERT OR REPLACE INTO {self.table} ({', '.join(self._columns)}) "  # noqa: S608
            f"VALUES ({placeholders})",
            values,
        )
        return self.model.from_dict(data)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def put(self, entity: T, touch: bool = True) -> T:
        """Insert or replace *entity* by id and return the stored copy.

        A UUID is assigned when the entity has no id.  With ``touch=True`` (a
        local write) ``updated_at`` is set to now and ``created_at`` filled in
        if missing; the sync engines pass ``touch=False`` to store remote
        content verbatim.
        """
        with self.conn:
            return self._write(entity, touch)

    def get(self, entity_id: str) -> Optional[T]:
        """Fetch a single entity by id.  Returns ``None`` if not found."""
        row = self.conn.execute(
            f"SELECT * FROM {self.table} WHERE id = ?", (entity_id,)  # noqa: S608
        ).fetchone()
        return self._row_to_entity(row) if row else None

    def list(self, include_hidden: bool = False) -> list[T]:
        """Return all entities, most recently updated first.

        Soft-deleted (``hidden``) rows are skipped unless *include_hidden*.
        """
        where = "" if include_hidden else "WHERE COALESCE(hidden, 0) = 0"
        rows = self.conn.execute(
            f"SELECT * FROM {self.table} {where} ORDER BY updated_at DESC"  # noqa: S608
        ).fetchall()
        return [self._row_to_entity(r) for r in rows]

    def list_by_index(
        self, field: str, value: Any, include_hidden: bool = False
    ) -> list[T]:
        """Return entities whose *field* equals *value*, newest first.

        Raises:
            ValueError: If *field* is not one of ``INDEXED_FIELDS`` or not a
                column of this table.
        """
        if field not in INDEXED_FIELDS or field not in self._columns:
            raise ValueError(f"Cannot list {self.table} by field {field!r}")
        if field in BOOL_FIELDS:
            value = int(bool(value))
        clause = f"{field} = ?"
        if not include_hidden and field != "hidden":
            clause += " AND COALESCE(hidden, 0) = 0"
        rows = self.conn.execute(
            f"SELECT * FROM {self.table} WHERE {clause} ORDER BY updated_at DESC",  # noqa: S608
            (value,),
        ).fetchall()
        return [self._row_to_entity(r) for r in rows]

    def update(self, entity_id: str, **changes: Any) -> T:
        """Apply *changes* to an existing entity as a local write.

        ``id`` cannot be changed and ``updated_at`` is always refreshed.

        Raises:
            ValueError: If the entity does not exist or a field is unknown.
        """
        current = self.get(entity_id)
        if current is None:
            raise ValueError(f"{self.model.__name__} not found: {entity_id!r}")
        data = current.to_dict()
        for key, value in changes.items():
            if key not in self._columns or key in ("id", "updated_at"):
                raise ValueError(f"Cannot update field {key!r}")
            data[key] = value
        if "updated_by" not in changes:
            data["updated_by"] = current.updated_by or current.created_by
        return self.put(self.model.from_dict(data))

    def set_hidden(self, entity_id: str, hidden: bool) -> T:
        """Soft-delete or restore an entity, leaving every other field as is.

        Raises:
            ValueError: If the entity does not exist.
        """
        with self.conn:
            cur = self.conn.execute(
                f"UPDATE {self.table} SET hidden = ? WHERE id = ?",  # noqa: S608
                (int(hidden), entity_id),
            )
        if cur.rowcount == 0:
            raise ValueError(f"{self.model.__name__} not found: {entity_id!r}")
        return self.get(entity_id)  # type: ignore[return-value]

    def delete(self, entity_id: str) -> None:
        """Hard-delete an entity.  No-op if it does not exist."""
        with self.conn:
            self.conn.execute(
                f"DELETE FROM {self.table} WHERE id = ?", (entity_id,)  # noqa: S608
            )

    def clear(self) -> None:
        """Remove every row (administrative clearing, e.g. logout)."""
        with self.conn:
            self.conn.execute(f"DELETE FROM {self.table}")  # noqa: S608

    def count(self, include_hidden: bool = True) -> int:
        where = "" if include_hidden else "WHERE COALESCE(hidden, 0) = 0"
        row = self.conn.execute(
            f"SELECT COUNT(*) FROM {self.table} {where}"  # noqa: S608
        ).fetchone()
        return row[0] if row else 0

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    def mark_all_unsynchronized(self) -> None:
        with self.conn:
            self.conn.execute(f"UPDATE {self.table} SET synchronized = 0")  # noqa: S608

    def set_synchronized(
        self,
        entity_id: str,
        value: bool = True,
        expected_updated_at: Optional[str] = None,
    ) -> bool:
        """Set the ``synchronized`` flag of one row.

        When *expected_updated_at* is given the flag is only written if the
        row has not been modified since that timestamp was read.

        Returns:
            ``True`` if a row was updated.
        """
        sql = f"UPDATE {self.table} SET synchronized = ? WHERE id = ?"  # noqa: S608
        params: list[Any] = [int(value), entity_id]
        if expected_updated_at is not None:
            sql += " AND updated_at IS ?"
            params.append(expected_updated_at)
        with self.conn:
            cur = self.conn.execute(sql, params)
        return cur.rowcount > 0

    def replace_all(self, entities: Iterable[T], keep_local_only: bool = True) -> int:
        """Atomically replace the table contents with *entities*.

        Rows flagged ``local`` are device-only and never part of a remote
        snapshot, so they are kept unless *keep_local_only* is ``False``.

        Returns:
            Number of entities written.
        """
        written = 0
        with self.conn:
            if keep_local_only:
                self.conn.execute(
                    f"DELETE FROM {self.table} WHERE COALESCE(local, 0) = 0"  # noqa: S608
                )
            else:
                self.conn.execute(f"DELETE FROM {self.table}")  # noqa: S608
            for entity in entities:
                self._write(entity, touch=False)
                written += 1
        return written
