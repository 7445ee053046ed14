"""Concurrent and sequential sync runs must end in the same local state."""

from __future__ import annotations

import copy

import pytest

from conftest import make_conn, server_row
from drawpak.db.diagrams import diagram_store
from drawpak.db.elements import element_store
from drawpak.db.models import Diagram, GraphicElement
from drawpak.sync.ledger import TimestampLedger
from drawpak.sync.session import SyncSession

T_BLOB = "2025-03-01T00:00:00.000Z"

_COLLECTIONS = {
    "diagrams": {
        "d1": server_row("d1", "Remote d1", "2025-02-01T00:00:00Z", nodes="[]", edges="[]"),
        "d2": server_row("d2", "Remote d2", "2025-02-02T00:00:00Z", nodes="[]", edges="[]"),
    },
    "elements": {
        "e1": server_row("e1", "Remote e1", "2025-02-03T00:00:00Z", category="safety", svg="<svg/>"),
    },
}


def _blob() -> dict:
    return {
        "version": 1,
        "diagrams": [dict(r, hidden=False) for r in _COLLECTIONS["diagrams"].values()],
        "elements": [dict(r, hidden=False) for r in _COLLECTIONS["elements"].values()],
    }


def _reset_server(server) -> None:
    server.collections = copy.deepcopy(_COLLECTIONS)
    server.libraries = {}
    server.set_library("alice", _blob(), T_BLOB)


def _seed_local(conn) -> None:
    d = diagram_store(conn)
    d.put(Diagram(id="d1", name="Stale d1", updated_at="2025-01-01T00:00:00Z"), touch=False)
    d.put(Diagram(id="scratch", name="Scratch", local=True, updated_at="2025-01-05T00:00:00Z"), touch=False)
    element_store(conn).put(
        GraphicElement(id="e1", name="Stale e1", updated_at="2025-01-01T00:00:00Z"), touch=False
    )


def _snapshot(conn) -> dict:
    rows = {}
    for table in ("diagrams", "graphic_elements"):
        for row in conn.execute(f"SELECT * FROM {table} ORDER BY id"):
            rows[(table, row["id"])] = dict(row)
    return rows


@pytest.mark.asyncio
async def test_concurrent_matches_sequential(server, client, tmp_path) -> None:
    # Sequential: diagrams, elements, then the library reconcile.
    _reset_server(server)
    seq_conn = make_conn()
    _seed_local(seq_conn)
    seq_ledger = TimestampLedger(tmp_path / "seq.json")
    seq = SyncSession(seq_conn, "alice", client=client, ledger=seq_ledger)
    await seq.engines["diagrams"].sync("alice")
    await seq.engines["elements"].sync("alice")
    await seq.reconciler.reconcile_user_library("alice")
    await seq.aclose()

    # Concurrent: the same three operations under asyncio.gather.
    _reset_server(server)
    con_conn = make_conn()
    _seed_local(con_conn)
    con_ledger = TimestampLedger(tmp_path / "con.json")
    con = SyncSession(con_conn, "alice", client=client, ledger=con_ledger)
    await con.sync_all()
    await con.aclose()

    try:
        assert _snapshot(con_conn) == _snapshot(seq_conn)
        assert con_ledger.get_last_synced("alice", "library") == T_BLOB
        assert seq_ledger.get_last_synced("alice", "library") == T_BLOB
        scratch = con_conn.execute("SELECT synchronized FROM diagrams WHERE id='scratch'").fetchone()
        assert scratch[0] == 0
    finally:
        seq_conn.close()
        con_conn.close()
