"""Tests for the user-library reconciler (whole-blob sync)."""

from __future__ import annotations

import asyncio

import pytest

from drawpak.db.diagrams import diagram_store
from drawpak.db.elements import element_store
from drawpak.db.models import Diagram, GraphicElement
from drawpak.sync.library import LibraryReconciler, ReconcileOutcome

T_REMOTE = "2025-01-01T10:00:00.000Z"


@pytest.fixture()
def reconciler(conn, client, ledger):
    return LibraryReconciler(diagram_store(conn), element_store(conn), client, ledger)


def _blob():
    return {
        "version": 1,
        "diagrams": [
            {"id": "d1", "name": "Substation", "nodes": "[]", "edges": "[]",
             "created_at": "2024-12-01T00:00:00Z", "updated_at": "2024-12-02T00:00:00Z",
             "created_by": "alice", "hidden": False},
        ],
        "elements": [
            {"id": "e1", "name": "Relay", "svg": "<svg/>", "category": "protection",
             "created_at": "2024-12-01T00:00:00Z", "updated_at": "2024-12-01T00:00:00Z",
             "hidden": True},
            {"id": "e2", "name": "Lamp", "svg": "<svg/>"},
        ],
    }


class TestDownload:
    @pytest.mark.asyncio
    async def test_missing_library_is_none(self, server, reconciler) -> None:
        assert await reconciler.download_user_library("nobody") is None

    @pytest.mark.asyncio
    async def test_404_is_none(self, server, reconciler) -> None:
        server.missing_library_status = 404
        assert await reconciler.download_user_library("nobody") is None

    @pytest.mark.asyncio
    async def test_network_error_is_none(self, server, reconciler) -> None:
        server.offline = True
        assert await reconciler.download_user_library("alice") is None

    @pytest.mark.asyncio
    async def test_concurrent_downloads_share_one_request(self, server, reconciler) -> None:
        server.set_library("alice", _blob(), T_REMOTE)

        results = await asyncio.gather(
            *(reconciler.download_user_library("alice") for _ in range(5))
        )

        assert server.count("GET", "/user-library") == 1
        assert all(r is not None and r.updated_at == T_REMOTE for r in results)

    @pytest.mark.asyncio
    async def test_sequential_downloads_each_hit_server(self, server, reconciler) -> None:
        server.set_library("alice", _blob(), T_REMOTE)
        await reconciler.download_user_library("alice")
        await reconciler.download_user_library("alice")
        assert server.count("GET", "/user-library") == 2

    @pytest.mark.asyncio
    async def test_username_is_url_quoted(self, server, reconciler) -> None:
        server.set_library("ana maría", _blob(), T_REMOTE)
        envelope = await reconciler.download_user_library("ana maría")
        assert envelope is not None


class TestReconcile:
    @pytest.mark.asyncio
    async def test_empty_ledger_adopts_remote(self, conn, server, reconciler, ledger) -> None:
        diagram_store(conn).put(Diagram(id="stray", name="Not in blob"))
        server.set_library("alice", _blob(), T_REMOTE)

        outcome = await reconciler.reconcile_user_library("alice")

        assert outcome is ReconcileOutcome.DOWNLOADED
        diagrams = diagram_store(conn).list(include_hidden=True)
        elements = element_store(conn).list(include_hidden=True)
        assert [d.id for d in diagrams] == ["d1"]
        assert sorted(e.id for e in elements) == ["e1", "e2"]
        assert all(r.synchronized for r in diagrams + elements)
        assert ledger.get_last_synced("alice", "library") == T_REMOTE

    @pytest.mark.asyncio
    async def test_adopted_rows_get_defaults(self, conn, server, reconciler) -> None:
        server.set_library("alice", _blob(), T_REMOTE)

        await reconciler.reconcile_user_library("alice")

        e1 = element_store(conn).get("e1")
        e2 = element_store(conn).get("e2")
        assert e1.hidden is True
        assert e2.category == "custom"
        assert e2.created_by == "alice"

    @pytest.mark.asyncio
    async def test_legacy_schemas_key(self, conn, server, reconciler) -> None:
        blob = _blob()
        blob["schemas"] = blob.pop("diagrams")
        server.set_library("alice", blob, T_REMOTE)

        await reconciler.reconcile_user_library("alice")

        assert diagram_store(conn).get("d1") is not None

    @pytest.mark.asyncio
    async def test_device_only_rows_survive_download(self, conn, server, reconciler) -> None:
        diagram_store(conn).put(Diagram(id="scratch", name="Scratch", local=True))
        server.set_library("alice", _blob(), T_REMOTE)

        await reconciler.reconcile_user_library("alice")

        assert diagram_store(conn).get("scratch") is not None

    @pytest.mark.asyncio
    async def test_equal_timestamps_do_nothing(self, conn, server, reconciler, ledger) -> None:
        server.set_library("alice", _blob(), T_REMOTE)
        ledger.set_last_synced("alice", "library", T_REMOTE)

        outcome = await reconciler.reconcile_user_library("alice")

        assert outcome is ReconcileOutcome.UNCHANGED
        assert diagram_store(conn).count() == 0
        assert server.puts == []

    @pytest.mark.asyncio
    async def test_local_newer_uploads(self, conn, server, reconciler, ledger) -> None:
        server.set_library("alice", _blob(), T_REMOTE)
        diagram_store(conn).put(Diagram(id="d2", name="New work"))
        ledger.set_last_synced("alice", "library", "2025-02-01T00:00:00.000Z")

        outcome = await reconciler.reconcile_user_library("alice")

        assert outcome is ReconcileOutcome.UPLOADED
        stored = server.libraries["alice"]["data"]
        assert {d["id"] for d in stored["diagrams"]} == {"d1", "d2"}
        assert {e["id"] for e in stored["elements"]} == {"e1", "e2"}

    @pytest.mark.asyncio
    async def test_remote_newer_downloads(self, conn, server, reconciler, ledger) -> None:
        server.set_library("alice", _blob(), T_REMOTE)
        ledger.set_last_synced("alice", "library", "2024-01-01T00:00:00.000Z")

        outcome = await reconciler.reconcile_user_library("alice")

        assert outcome is ReconcileOutcome.DOWNLOADED
        assert diagram_store(conn).get("d1") is not None

    @pytest.mark.asyncio
    async def test_no_blob_and_no_ledger_skips(self, server, reconciler) -> None:
        outcome = await reconciler.reconcile_user_library("alice")
        assert outcome is ReconcileOutcome.SKIPPED
        assert server.puts == []

    @pytest.mark.asyncio
    async def test_no_blob_with_ledger_uploads(self, conn, server, reconciler, ledger) -> None:
        diagram_store(conn).put(Diagram(id="d1", name="First"))
        ledger.set_last_synced("alice", "library", "2025-01-01T00:00:00.000Z")

        outcome = await reconciler.reconcile_user_library("alice")

        assert outcome is ReconcileOutcome.UPLOADED
        assert "alice" in server.libraries

    @pytest.mark.asyncio
    async def test_offline_skips(self, server, reconciler, ledger) -> None:
        server.offline = True
        ledger.set_last_synced("alice", "library", "2025-01-01T00:00:00.000Z")
        assert await reconciler.reconcile_user_library("alice") is ReconcileOutcome.SKIPPED


class TestUpload:
    @pytest.mark.asyncio
    async def test_device_only_rows_excluded(self, conn, server, reconciler) -> None:
        diagram_store(conn).put(Diagram(id="scratch", name="Scratch", local=True))
        element_store(conn).put(GraphicElement(id="mine", name="Mine", local=True))
        diagram_store(conn).put(Diagram(id="shared", name="Shared"))

        assert await reconciler.upload_full_user_library("alice") is True

        body = server.puts[-1]
        ids = {d["id"] for d in body["data"]["diagrams"]} | {e["id"] for e in body["data"]["elements"]}
        assert ids == {"shared"}
        assert all(d["local"] is False for d in body["data"]["diagrams"])
        assert body["username"] == "alice"
        assert diagram_store(conn).get("scratch").synchronized is False
        assert diagram_store(conn).get("shared").synchronized is True

    @pytest.mark.asyncio
    async def test_hidden_rows_uploaded_with_flag(self, conn, server, reconciler) -> None:
        store = diagram_store(conn)
        d = store.put(Diagram(id="gone", name="Gone"))
        store.set_hidden(d.id, True)

        await reconciler.upload_full_user_library("alice")

        entry = server.puts[-1]["data"]["diagrams"][0]
        assert entry["hidden"] is True

    @pytest.mark.asyncio
    async def test_merges_into_existing_blob(self, conn, server, reconciler) -> None:
        blob = _blob()
        blob["theme"] = "dark"
        blob["diagrams"][0]["thumbnail"] = "data:image/png;base64,AAAA"
        server.set_library("alice", blob, T_REMOTE)
        diagram_store(conn).put(Diagram(id="d1", name="Renamed"))

        assert await reconciler.upload_full_user_library("alice") is True

        data = server.libraries["alice"]["data"]
        d1 = next(d for d in data["diagrams"] if d["id"] == "d1")
        assert d1["name"] == "Renamed"
        assert d1["thumbnail"] == "data:image/png;base64,AAAA"
        assert data["theme"] == "dark"
        assert {e["id"] for e in data["elements"]} == {"e1", "e2"}

    @pytest.mark.asyncio
    async def test_success_sets_ledger_to_server_timestamp(self, conn, server, reconciler, ledger) -> None:
        await reconciler.upload_full_user_library("alice")
        assert ledger.get_last_synced("alice", "library") == server.libraries["alice"]["updated_at"]

    @pytest.mark.asyncio
    async def test_stale_upload_rejected(self, conn, server, reconciler, ledger, log_messages) -> None:
        server.set_library("alice", _blob(), "2999-01-01T00:00:00.000Z")
        diagram_store(conn).put(Diagram(id="d2", name="Mine"))

        assert await reconciler.upload_full_user_library("alice") is False
        assert diagram_store(conn).get("d2").synchronized is False
        assert ledger.get_last_synced("alice", "library") is None
        assert any("stale" in m for m in log_messages)

    @pytest.mark.asyncio
    async def test_offline_upload_returns_false(self, conn, server, reconciler) -> None:
        server.offline = True
        assert await reconciler.upload_full_user_library("alice") is False

    @pytest.mark.asyncio
    async def test_local_snapshot_backup_includes_device_rows(self, conn, reconciler) -> None:
        diagram_store(conn).put(Diagram(id="scratch", name="Scratch", local=True))
        backup = reconciler.local_snapshot(include_local=True)
        upload = reconciler.local_snapshot()
        assert [d["id"] for d in backup.diagrams] == ["scratch"]
        assert backup.diagrams[0]["local"] is True
        assert upload.diagrams == []

    @pytest.mark.asyncio
    async def test_write_during_upload_keeps_newer_ledger_stamp(
        self, conn, server, client, reconciler, ledger, monkeypatch
    ) -> None:
        store = diagram_store(conn)
        store.put(Diagram(id="d1", name="Original", updated_at="2025-01-01T09:00:00.000Z"), touch=False)
        ledger.set_last_synced("alice", "library", T_REMOTE)
        t_edit = "2999-06-01T00:00:00.000Z"
        real_put = client.put_user_library

        async def put_with_concurrent_edit(username, updated_at, data):
            store.update("d1", name="Edited during upload")
            ledger.set_last_synced("alice", "library", t_edit)
            return await real_put(username, updated_at, data)

        monkeypatch.setattr(client, "put_user_library", put_with_concurrent_edit)
        assert await reconciler.upload_full_user_library("alice") is True
        monkeypatch.setattr(client, "put_user_library", real_put)

        assert ledger.get_last_synced("alice", "library") == t_edit
        assert store.get("d1").synchronized is False

        outcome = await reconciler.reconcile_user_library("alice")

        assert outcome is ReconcileOutcome.UPLOADED
        d1 = next(d for d in server.libraries["alice"]["data"]["diagrams"] if d["id"] == "d1")
        assert d1["name"] == "Edited during upload"
