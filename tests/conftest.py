"""Shared fixtures: isolated settings, in-memory DB and a fake sync server.

Mocking strategy:
- ``respx`` patches ``httpx`` at the transport layer; ``FakeServer`` keeps
  the server state (collections and user libraries) in plain dicts and
  answers the four sync endpoints the way the real service does.
- Settings are pointed at ``tmp_path`` so nothing touches ``~/.drawpak``.
"""

from __future__ import annotations

import json
import re
import sqlite3
from typing import Any, Generator, Optional
from urllib.parse import unquote

import httpx
import pytest
import pytest_asyncio
import respx
from loguru import logger

from drawpak.config import settings
from drawpak.db.connection import get_connection
from drawpak.db.migrations import init_db
from drawpak.sync.ledger import TimestampLedger
from drawpak.sync.remote import RemoteClient
from drawpak.timestamps import parse_instant

BASE_URL = "http://sync.test/api"


class FakeServer:
    """In-memory stand-in for the remote sync service."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {
            "diagrams": {},
            "elements": {},
        }
        self.libraries: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, str]] = []
        self.posted: list[tuple[str, dict[str, Any]]] = []
        self.puts: list[dict[str, Any]] = []
        # Failure switches
        self.offline = False
        self.offline_attempts = 0
        self.collection_status = 200
        self.malformed_collection = False
        self.reject_post_ids: set[str] = set()
        self.missing_library_status = 200

    # -- helpers used by tests ------------------------------------------------

    def add_row(self, kind: str, row: dict[str, Any]) -> None:
        self.collections[kind][str(row["id"])] = dict(row)

    def set_library(self, username: str, data: dict[str, Any], updated_at: str) -> None:
        self.libraries[username] = {"data": data, "updated_at": updated_at}

    def count(self, method: str, prefix: str) -> int:
        return sum(1 for m, p in self.requests if m == method and p.startswith(prefix))

    # -- request handlers -------------------------------------------------------

    def _record(self, request: httpx.Request) -> None:
        self.requests.append((request.method, request.url.path[len("/api"):]))
        if self.offline_attempts > 0:
            self.offline_attempts -= 1
            raise httpx.ConnectError("connection refused", request=request)
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)

    def get_collection(self, request: httpx.Request, kind: str) -> httpx.Response:
        self._record(request)
        if self.collection_status != 200:
            return httpx.Response(self.collection_status, text="server error")
        if self.malformed_collection:
            return httpx.Response(200, text="<html>maintenance</html>")
        return httpx.Response(200, json=list(self.collections[kind].values()))

    def post_collection(self, request: httpx.Request, kind: str) -> httpx.Response:
        self._record(request)
        row = json.loads(request.content)
        self.posted.append((kind, row))
        if str(row.get("id")) in self.reject_post_ids:
            return httpx.Response(500, json={"error": "insert failed"})
        row = {k: v for k, v in row.items() if k != "username"}
        self.collections[kind][str(row["id"])] = row
        return httpx.Response(201, json={"ok": True})

    def get_library(self, request: httpx.Request, username: str) -> httpx.Response:
        self._record(request)
        entry = self.libraries.get(unquote(username))
        if entry is None:
            if self.missing_library_status == 404:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(
                200, json={"data": {"version": 1, "elements": [], "diagrams": []}, "updated_at": None}
            )
        return httpx.Response(200, json=entry)

    def put_library(self, request: httpx.Request, username: str) -> httpx.Response:
        self._record(request)
        body = json.loads(request.content)
        self.puts.append(body)
        name = unquote(username)
        current = self.libraries.get(name)
        if current and parse_instant(body["updated_at"]) < parse_instant(current["updated_at"]):
            return httpx.Response(409, json={"error": "stale", "updated_at": current["updated_at"]})
        self.libraries[name] = {"data": body["data"], "updated_at": body["updated_at"]}
        return httpx.Response(200, json={"updated_at": body["updated_at"]})

    def install(self, router: respx.MockRouter) -> None:
        base = re.escape(BASE_URL)
        router.get(url__regex=rf"^{base}/collection/(?P<kind>[^/]+)$").mock(
            side_effect=self.get_collection
        )
        router.post(url__regex=rf"^{base}/collection/(?P<kind>[^/]+)$").mock(
            side_effect=self.post_collection
        )
        router.get(url__regex=rf"^{base}/user-library/(?P<username>[^/]+)$").mock(
            side_effect=self.get_library
        )
        router.put(url__regex=rf"^{base}/user-library/(?P<username>[^/]+)$").mock(
            side_effect=self.put_library
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the workspace at tmp_path and the remote at the fake server."""
    monkeypatch.setattr(settings, "workspace_dir", tmp_path / "workspace")
    monkeypatch.setattr(settings, "remote_url", BASE_URL)
    monkeypatch.setattr(settings, "sync_retry_delay", 0.0)
    monkeypatch.setattr(settings, "upload_debounce_seconds", 0.05)
    return settings


def make_conn() -> sqlite3.Connection:
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    return connection


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = make_conn()
    yield connection
    connection.close()


@pytest.fixture()
def server() -> Generator[FakeServer, None, None]:
    fake = FakeServer()
    with respx.mock(assert_all_called=False) as router:
        fake.install(router)
        yield fake


@pytest_asyncio.fixture
async def client():
    remote = RemoteClient(base_url=BASE_URL, timeout=5.0)
    yield remote
    await remote.aclose()


@pytest.fixture()
def ledger(tmp_path) -> TimestampLedger:
    return TimestampLedger(tmp_path / "ledger.json")


@pytest.fixture()
def log_messages() -> Generator[list[str], None, None]:
    """Collect loguru output emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(str(m)), level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(handler_id)


def server_row(
    row_id: str,
    name: str,
    updated_at: Optional[str],
    **extra: Any,
) -> dict[str, Any]:
    """A diagram/element row as the server returns it."""
    row = {
        "id": row_id,
        "name": name,
        "description": "",
        "created_at": "2025-01-01T00:00:00.000Z",
        "created_by": "server",
        "updated_at": updated_at,
        "updated_by": "server",
        "local": 0,
    }
    row.update(extra)
    return row
