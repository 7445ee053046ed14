"""Two-way sync of one entity collection against ``/collection/{kind}``.

One :class:`CollectionSync` exists per collection.  A run:

1. flags every local row ``synchronized = False``;
2. fetches the server rows (abort on transport error or non-2xx status);
3. pulls each server row, the newer ``updated_at`` winning (remote wins ties
   when the content differs);
4. pushes every local row the server does not have, skipping device-only
   (``local``) rows;
5. publishes :class:`~drawpak.sync.events.CollectionSynced`.

A row ends ``synchronized = True`` only if it was confirmed against the
server during this run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from loguru import logger

from drawpak.config import settings
from drawpak.db.models import Record
from drawpak.db.store import EntityStore
from drawpak.exceptions import MalformedResponse, NetworkFailure, ServerRejection, SyncError
from drawpak.sync.events import CollectionSynced, EventBus
from drawpak.sync.remote import RemoteClient
from drawpak.sync.sanitize import content_hash, normalize_remote, sanitize_row
from drawpak.timestamps import parse_instant

T = TypeVar("T", bound=Record)


@dataclass
class SyncReport:
    kind: str
    pulled: int = 0
    updated: int = 0
    unchanged: int = 0
    pushed: int = 0
    failed: int = 0
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.aborted and self.failed == 0


class CollectionSync(Generic[T]):
    """Sync engine for one collection.

    Args:
        store: Local store of the collection.
        client: Remote service client.
        events: Bus receiving a ``CollectionSynced`` after each run.
        retries: Extra attempts for the initial fetch after a network
            failure (the diagrams collection uses one).
        retry_delay: Seconds between attempts (default
            ``settings.sync_retry_delay``).
    """

    def __init__(
        self,
        store: EntityStore[T],
        client: RemoteClient,
        events: Optional[EventBus] = None,
        retries: int = 0,
        retry_delay: Optional[float] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.events = events or EventBus()
        self.retries = retries
        self.retry_delay = settings.sync_retry_delay if retry_delay is None else retry_delay

    @property
    def kind(self) -> str:
        return self.store.kind

    async def _fetch(self) -> list[dict]:
        attempt = 0
        while True:
            try:
                return await self.client.fetch_collection(self.kind)
            except NetworkFailure as exc:
                if attempt >= self.retries:
                    raise
                attempt += 1
                logger.warning(
                    "Fetching {} failed ({}), retry {}/{} in {}s",
                    self.kind, exc, attempt, self.retries, self.retry_delay,
                )
                await asyncio.sleep(self.retry_delay)

    def _pull(self, row: dict, report: SyncReport) -> Optional[str]:
        """Apply one server row locally.  Returns its id, or ``None`` if skipped."""
        if row.get("id") in (None, ""):
            logger.warning("Skipping {} row without id: {!r}", self.kind, row.get("name"))
            return None

        remote = normalize_remote(self.store.model, row, synchronized=True)
        local = self.store.get(remote.id)
        if local is None:
            self.store.put(remote, touch=False)
            report.pulled += 1
            return remote.id

        remote.hidden = local.hidden  # type: ignore[attr-defined]
        remote_ts = parse_instant(remote.updated_at)  # type: ignore[attr-defined]
        local_ts = parse_instant(local.updated_at)  # type: ignore[attr-defined]
        if remote_ts > local_ts or (
            remote_ts == local_ts and content_hash(remote) != content_hash(local)
        ):
            self.store.put(remote, touch=False)
            report.updated += 1
        else:
            self.store.set_synchronized(remote.id, True)
            report.unchanged += 1
        return remote.id

    async def _push(self, entity: T, username: str, report: SyncReport) -> None:
        try:
            await self.client.push_row(self.kind, sanitize_row(entity), username)
        except SyncError as exc:
            report.failed += 1
            logger.warning("Push of {} {} failed: {}", self.kind, entity.id, exc)  # type: ignore[attr-defined]
            return
        # A local edit made while the request was in flight stays unsynchronized.
        self.store.set_synchronized(
            entity.id, True, expected_updated_at=entity.updated_at  # type: ignore[attr-defined]
        )
        report.pushed += 1

    async def sync(self, username: str) -> SyncReport:
        """Run one sync pass for *username* and return what happened."""
        report = SyncReport(kind=self.kind)
        self.store.mark_all_unsynchronized()

        try:
            rows = await self._fetch()
        except MalformedResponse as exc:
            logger.warning("Ignoring malformed {} collection: {}", self.kind, exc)
            rows = []
        except (NetworkFailure, ServerRejection) as exc:
            logger.error("Sync of {} aborted: {}", self.kind, exc)
            report.aborted = True
            self.events.publish(CollectionSynced(self.kind, username, report))
            return report

        remote_ids = set()
        for row in rows:
            entity_id = self._pull(row, report)
            if entity_id is not None:
                remote_ids.add(entity_id)

        for entity in self.store.list(include_hidden=True):
            if entity.id in remote_ids or entity.local:  # type: ignore[attr-defined]
                continue
            await self._push(entity, username, report)

        logger.info(
            "Synced {}: {} pulled, {} updated, {} unchanged, {} pushed, {} failed",
            self.kind, report.pulled, report.updated, report.unchanged,
            report.pushed, report.failed,
        )
        self.events.publish(CollectionSynced(self.kind, username, report))
        return report
