"""Database initialisation and migration helpers.

``init_db(conn)`` is idempotent and safe to call on an existing database.
``migrate(conn)`` runs incremental changes tracked in a version table.

Layout history
--------------
1. Legacy: ``id INTEGER PRIMARY KEY AUTOINCREMENT``; diagrams had no
   ``synchronized`` / ``hidden`` columns.
2. Current: string UUID ids and nullable boolean flags (``schema.sql``).

Moving from 1 to 2 happens exactly once.  Legacy tables are renamed to
``<table>_legacy`` before the new schema is created, then every row is copied
across with a freshly generated UUID.  Failures never propagate: they are
logged, the version marker is recorded anyway (so start-up cannot loop on a
broken migration) and rows that could not be copied stay untouched in the
``_legacy`` table.
"""

from __future__ import annotations

import sqlite3
import uuid
from typing import Callable

from loguru import logger

from drawpak.config import settings
from drawpak.db.models import Diagram, GraphicElement
from drawpak.exceptions import MigrationFailure

SCHEMA_VERSION = 2

_TABLES: dict[str, list[str]] = {
    Diagram.TABLE: Diagram.column_names(),
    GraphicElement.TABLE: GraphicElement.column_names(),
}
_FLAG_COLUMNS = ("local", "synchronized", "hidden")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _read_schema() -> str:
    return settings.schema_path.read_text(encoding="utf-8")


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone()
    return row is not None


def _id_column_type(conn: sqlite3.Connection, table: str) -> str:
    for col in conn.execute(f"PRAGMA table_info({table})").fetchall():
        if col["name"] == "id":
            return (col["type"] or "").upper()
    return ""


def _set_aside_legacy_tables(conn: sqlite3.Connection) -> None:
    """Rename integer-keyed tables so the new schema can take their place."""
    for table in _TABLES:
        if not _table_exists(conn, table) or _id_column_type(conn, table) != "INTEGER":
            continue
        legacy = f"{table}_legacy"
        if _table_exists(conn, legacy):
            logger.warning(f"[migrate] {legacy} already exists; leaving {table} in place")
            continue
        with conn:
            conn.execute(f"ALTER TABLE {table} RENAME TO {legacy}")
        logger.info(f"[migrate] legacy table {table} renamed to {legacy}")


def _copy_legacy_rows(conn: sqlite3.Connection, table: str, columns: list[str]) -> None:
    legacy = f"{table}_legacy"
    if not _table_exists(conn, legacy):
        return

    rows = conn.execute(f"SELECT rowid AS _rowid, * FROM {legacy}").fetchall()
    copied = 0
    for row in rows:
        data = {k: row[k] for k in row.keys() if k in columns}
        legacy_id = data.get("id")
        if not isinstance(legacy_id, str) or not legacy_id:
            data["id"] = str(uuid.uuid4())
        for flag in _FLAG_COLUMNS:
            data[flag] = int(bool(data.get(flag) or 0))
        cols = list(data)
        try:
            with conn:
                conn.execute(
                    f"INSERT INTO {table} ({', '.join(cols)}) "
                    f"VALUES ({', '.join('?' for _ in cols)})",
                    [data[c] for c in cols],
                )
                conn.execute(f"DELETE FROM {legacy} WHERE rowid = ?", (row["_rowid"],))
            copied += 1
        except sqlite3.Error as exc:
            logger.warning(f"[migrate] could not copy {legacy} row {legacy_id!r}: {exc}")

    remaining = conn.execute(f"SELECT COUNT(*) FROM {legacy}").fetchone()[0]
    if remaining == 0:
        with conn:
            conn.execute(f"DROP TABLE {legacy}")
    logger.info(f"[migrate] {table}: {copied} legacy row(s) migrated, {remaining} left behind")


def _repair_current_rows(conn: sqlite3.Connection, table: str) -> None:
    """Give id-less rows a UUID and default missing flags to false."""
    missing = conn.execute(
        f"SELECT rowid FROM {table} WHERE id IS NULL OR id = ''"
    ).fetchall()
    with conn:
        for (rowid,) in missing:
            conn.execute(
                f"UPDATE {table} SET id = ? WHERE rowid = ?", (str(uuid.uuid4()), rowid)
            )
        for flag in _FLAG_COLUMNS:
            conn.execute(f"UPDATE {table} SET {flag} = 0 WHERE {flag} IS NULL")
    if missing:
        logger.info(f"[migrate] {table}: assigned ids to {len(missing)} row(s)")


def _migrate_to_uuid_ids(conn: sqlite3.Connection) -> None:
    for table, columns in _TABLES.items():
        try:
            _copy_legacy_rows(conn, table, columns)
            _repair_current_rows(conn, table)
        except sqlite3.Error as exc:
            raise MigrationFailure(f"UUID migration of {table} failed: {exc}") from exc


# Each migration is ``(version, callable)``; applied in order and recorded in
# ``schema_version``.  Add future migrations to the end of the list.
MIGRATIONS: list[tuple[int, Callable[[sqlite3.Connection], None]]] = [
    (2, _migrate_to_uuid_ids),
]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def init_db(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes, then run pending migrations.

    This function is **idempotent**: DDL uses ``IF NOT EXISTS`` and each
    migration runs at most once per database.

    Args:
        conn: An open, configured SQLite connection.
    """
    _ensure_version_table(conn)
    if current_version(conn) < SCHEMA_VERSION:
        try:
            _set_aside_legacy_tables(conn)
        except sqlite3.Error as exc:
            logger.error(f"[migrate] could not set legacy tables aside: {exc}")
    # executescript() issues an implicit COMMIT before execution, which is
    # fine for DDL-only scripts.
    conn.executescript(_read_schema())
    migrate(conn)


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the internal schema-version tracking table if absent."""
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version    INTEGER PRIMARY KEY,
                applied_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
            )
            """
        )


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 if none applied)."""
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) FROM schema_version"
    ).fetchone()
    return row[0] if row else 0


def migrate(conn: sqlite3.Connection) -> None:
    """Run any pending migrations.

    A failing migration is logged and still recorded as applied; the store
    stays usable with whatever state existed before or partway through.
    """
    applied = current_version(conn)
    for version, step in MIGRATIONS:
        if version <= applied:
            continue
        try:
            step(conn)
        except MigrationFailure as exc:
            logger.error(f"[migrate] migration {version} failed: {exc}")
        with conn:
            conn.execute(
                "INSERT OR IGNORE INTO schema_version(version) VALUES (?)", (version,)
            )
        logger.debug(f"[migrate] schema version {version} recorded")
