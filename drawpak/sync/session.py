"""Per-user write path tying the stores to the sync engines.

Every write goes to SQLite first and returns immediately; the matching
collection sync then runs as a background task and a debounced library
upload is scheduled.  Nothing here raises for network problems.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Any, Optional

from loguru import logger

from drawpak.db import diagrams as diagram_ops
from drawpak.db import elements as element_ops
from drawpak.db.models import Diagram, GraphicElement
from drawpak.sync.collection import CollectionSync, SyncReport
from drawpak.sync.debounce import DebouncedUploader
from drawpak.sync.events import CollectionSynced, EventBus
from drawpak.sync.ledger import TimestampLedger
from drawpak.sync.library import LibraryReconciler, ReconcileOutcome
from drawpak.sync.remote import RemoteClient
from drawpak.sync.seeder import Seeder


class SyncSession:
    """Sync context for one signed-in user.

    Args:
        conn: Open, initialised DB connection.
        username: Acting user; stamped on writes and sent with uploads.
        client: Remote client (a default one is created and owned if omitted).
        ledger: Timestamp ledger (default file from settings).
        events: Event bus for ``CollectionSynced`` notifications.
        upload_delay: Debounce period for library uploads.
        retry_delay: Delay before the diagrams fetch is retried.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        username: str,
        client: Optional[RemoteClient] = None,
        ledger: Optional[TimestampLedger] = None,
        events: Optional[EventBus] = None,
        upload_delay: Optional[float] = None,
        retry_delay: Optional[float] = None,
    ) -> None:
        self.conn = conn
        self.username = username
        self._owns_client = client is None
        self.client = client or RemoteClient()
        self.ledger = ledger or TimestampLedger()
        self.events = events or EventBus()

        self.diagrams = diagram_ops.diagram_store(conn)
        self.elements = element_ops.element_store(conn)
        self.engines = {
            Diagram.KIND: CollectionSync(
                self.diagrams, self.client, self.events, retries=1, retry_delay=retry_delay
            ),
            GraphicElement.KIND: CollectionSync(
                self.elements, self.client, self.events, retry_delay=retry_delay
            ),
        }
        self.reconciler = LibraryReconciler(self.diagrams, self.elements, self.client, self.ledger)
        self.uploader = DebouncedUploader(
            self.reconciler.upload_full_user_library, delay=upload_delay
        )
        self.seeder = Seeder(self.elements, self.client)

        self._background: dict[str, asyncio.Task] = {}
        self._resync: set[str] = set()
        self._unsubscribe = self.events.subscribe(self._on_collection_synced)

    async def __aenter__(self) -> "SyncSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Background plumbing
    # ------------------------------------------------------------------

    def _on_collection_synced(self, event: CollectionSynced) -> None:
        if (
            event.kind == Diagram.KIND
            and event.username == self.username
            and not event.report.aborted
        ):
            self.ledger.set_last_synced(self.username, "diagrams")

    async def _sync_loop(self, kind: str) -> None:
        engine = self.engines[kind]
        while True:
            self._resync.discard(kind)
            try:
                await engine.sync(self.username)
            except Exception:
                logger.exception("Background {} sync failed", kind)
            if kind not in self._resync:
                return

    def _spawn_sync(self, kind: str) -> None:
        # One background sync per collection; writes during a run queue one rerun.
        task = self._background.get(kind)
        if task is not None and not task.done():
            self._resync.add(kind)
            return
        self._background[kind] = asyncio.create_task(self._sync_loop(kind))

    def _after_write(self, kind: str) -> None:
        self.ledger.set_last_synced(self.username, "library")
        if kind == Diagram.KIND:
            self.ledger.set_last_synced(self.username, "diagrams")
        self._spawn_sync(kind)
        self.uploader.schedule_upload(self.username)

    # ------------------------------------------------------------------
    # Diagrams
    # ------------------------------------------------------------------

    async def save_diagram(self, diagram: Diagram) -> Diagram:
        diagram.created_by = diagram.created_by or self.username
        diagram.updated_by = self.username
        stored = diagram_ops.save_diagram(self.diagrams, diagram)
        self._after_write(Diagram.KIND)
        return stored

    async def update_diagram(self, diagram_id: str, **changes: Any) -> Diagram:
        changes.setdefault("updated_by", self.username)
        stored = diagram_ops.update_diagram(self.diagrams, diagram_id, **changes)
        self._after_write(Diagram.KIND)
        return stored

    async def duplicate_diagram(self, diagram_id: str, new_name: str) -> Diagram:
        stored = diagram_ops.duplicate_diagram(
            self.diagrams, diagram_id, new_name, created_by=self.username
        )
        self._after_write(Diagram.KIND)
        return stored

    async def hide_diagram(self, diagram_id: str) -> Diagram:
        stored = self.diagrams.set_hidden(diagram_id, True)
        self._after_write(Diagram.KIND)
        return stored

    async def restore_diagram(self, diagram_id: str) -> Diagram:
        stored = self.diagrams.set_hidden(diagram_id, False)
        self._after_write(Diagram.KIND)
        return stored

    async def delete_diagram(self, diagram_id: str) -> None:
        self.diagrams.delete(diagram_id)
        self._after_write(Diagram.KIND)

    # ------------------------------------------------------------------
    # Graphic elements
    # ------------------------------------------------------------------

    async def save_element(self, element: GraphicElement) -> GraphicElement:
        element.created_by = element.created_by or self.username
        element.updated_by = self.username
        stored = element_ops.save_element(self.elements, element)
        self._after_write(GraphicElement.KIND)
        return stored

    async def update_element(self, element_id: str, **changes: Any) -> GraphicElement:
        changes.setdefault("updated_by", self.username)
        stored = element_ops.update_element(self.elements, element_id, **changes)
        self._after_write(GraphicElement.KIND)
        return stored

    async def hide_element(self, element_id: str) -> GraphicElement:
        stored = self.elements.set_hidden(element_id, True)
        self._after_write(GraphicElement.KIND)
        return stored

    async def restore_element(self, element_id: str) -> GraphicElement:
        stored = self.elements.set_hidden(element_id, False)
        self._after_write(GraphicElement.KIND)
        return stored

    async def delete_element(self, element_id: str) -> None:
        self.elements.delete(element_id)
        self._after_write(GraphicElement.KIND)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> ReconcileOutcome:
        """Seed the palette if empty, then reconcile the user library."""
        await self.seeder.seed()
        return await self.reconciler.reconcile_user_library(self.username)

    async def sync_all(self) -> tuple[SyncReport, SyncReport, ReconcileOutcome]:
        """Run both collection syncs and the library reconcile concurrently."""
        diagrams, elements, library = await asyncio.gather(
            self.engines[Diagram.KIND].sync(self.username),
            self.engines[GraphicElement.KIND].sync(self.username),
            self.reconciler.reconcile_user_library(self.username),
        )
        return diagrams, elements, library

    async def wait_idle(self) -> None:
        """Wait for background syncs and pending uploads to finish."""
        while True:
            running = [t for t in self._background.values() if not t.done()]
            if running:
                await asyncio.gather(*running, return_exceptions=True)
                continue
            await self.uploader.wait_idle()
            if not any(not t.done() for t in self._background.values()):
                return

    async def logout(self) -> None:
        """Upload what is pending, then wipe local content for this user."""
        await self.uploader.flush()
        await self.wait_idle()
        self.diagrams.clear()
        self.elements.clear()
        self.ledger.clear(self.username)
        logger.info("Logged out {}; local library cleared", self.username)

    async def aclose(self) -> None:
        """Drop pending upload timers, let running work finish, release the client."""
        self.uploader.cancel_all()
        await self.wait_idle()
        self._unsubscribe()
        if self._owns_client:
            await self.client.aclose()
