"""Whole-library reconciliation against ``/user-library/{username}``.

The user library is a single JSON blob holding every diagram and element a
user owns.  Direction is decided by comparing the ledger's ``library``
timestamp (bumped on every local write) with the blob's ``updated_at``:

- equal          -> nothing to do
- local newer    -> upload (merge local rows into the current blob)
- remote newer,
  or no ledger   -> replace local content with the blob
- no blob        -> upload if this device has ever written, else nothing
"""

from __future__ import annotations

import asyncio
import enum
from typing import Any, Optional, Union

from loguru import logger

from drawpak.db.models import Diagram, GraphicElement
from drawpak.db.store import EntityStore
from drawpak.exceptions import MalformedResponse, ServerRejection, SyncError
from drawpak.sync.ledger import TimestampLedger
from drawpak.sync.remote import RemoteClient
from drawpak.sync.sanitize import backup_entry, normalize_remote, sanitize_blob_entry
from drawpak.sync.schemas import LibraryData, LibraryEnvelope
from drawpak.timestamps import now_iso, parse_instant

_ENTRY_LISTS = ("elements", "diagrams")


class ReconcileOutcome(str, enum.Enum):
    UNCHANGED = "unchanged"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"


# ----------------------------------------------------------------------
# Pure merge
# ----------------------------------------------------------------------


def _as_dict(data: Union[LibraryData, dict[str, Any], None]) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, LibraryData):
        data = LibraryData.model_validate(data)
    # Unset defaults must not override the other side's values.
    return data.model_dump(exclude_unset=True)


def _merge_by_id(existing: list[dict], incoming: list[dict]) -> list[dict]:
    merged: dict[str, dict] = {}
    without_id: list[dict] = []
    for entry in existing:
        if entry.get("id") in (None, ""):
            without_id.append(entry)
        else:
            merged[str(entry["id"])] = dict(entry)
    for entry in incoming:
        if entry.get("id") in (None, ""):
            without_id.append(entry)
        else:
            key = str(entry["id"])
            merged[key] = {**merged.get(key, {}), **entry}
    return list(merged.values()) + without_id


def merge_library_data(
    existing: Union[LibraryData, dict[str, Any], None],
    incoming: Union[LibraryData, dict[str, Any], None],
) -> LibraryData:
    """Merge *incoming* library data into *existing*.

    ``elements`` and ``diagrams`` are merged by id: shared ids get a shallow
    dict merge where incoming keys win and existing-only keys survive, and
    ids present on one side only are kept as they are.  Any other top-level
    key is preserved, incoming preferred.  ``version`` comes from incoming,
    then existing, then defaults to 1.
    """
    old = _as_dict(existing)
    new = _as_dict(incoming)

    merged = {**old}
    merged.update({k: v for k, v in new.items() if k not in _ENTRY_LISTS})
    merged["version"] = new.get("version") or old.get("version") or 1
    for key in _ENTRY_LISTS:
        merged[key] = _merge_by_id(old.get(key) or [], new.get(key) or [])
    return LibraryData.model_validate(merged)


# ----------------------------------------------------------------------
# Reconciler
# ----------------------------------------------------------------------


class LibraryReconciler:
    """Uploads, downloads and reconciles one user's library blob.

    Args:
        diagrams: Local diagram store.
        elements: Local element store.
        client: Remote service client.
        ledger: Last-synced timestamps.
    """

    def __init__(
        self,
        diagrams: EntityStore[Diagram],
        elements: EntityStore[GraphicElement],
        client: RemoteClient,
        ledger: TimestampLedger,
    ) -> None:
        self.diagrams = diagrams
        self.elements = elements
        self.client = client
        self.ledger = ledger
        self._inflight: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def _fetch_library(self, username: str) -> Optional[LibraryEnvelope]:
        try:
            envelope = await self.client.get_user_library(username)
        except MalformedResponse as exc:
            logger.warning("Ignoring malformed library for {}: {}", username, exc)
            return None
        if envelope is None or envelope.updated_at is None:
            return None
        return envelope

    async def _shared_fetch(self, username: str) -> Optional[LibraryEnvelope]:
        """Fetch the blob, sharing one request between concurrent callers.

        Raises:
            NetworkFailure, ServerRejection: Propagated from the client.
        """
        task = self._inflight.get(username)
        if task is None:
            task = asyncio.ensure_future(self._fetch_library(username))
            self._inflight[username] = task

            def _forget(done: asyncio.Task, user: str = username) -> None:
                if self._inflight.get(user) is done:
                    del self._inflight[user]
                if not done.cancelled():
                    done.exception()  # consumed by the awaiting callers

            task.add_done_callback(_forget)
        return await asyncio.shield(task)

    async def download_user_library(self, username: str) -> Optional[LibraryEnvelope]:
        """The user's library blob, or ``None`` if there is none (or it failed)."""
        try:
            return await self._shared_fetch(username)
        except SyncError as exc:
            logger.error("Downloading library for {} failed: {}", username, exc)
            return None

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def _uploadable(self) -> tuple[list[Diagram], list[GraphicElement]]:
        diagrams = [d for d in self.diagrams.list(include_hidden=True) if not d.local]
        elements = [e for e in self.elements.list(include_hidden=True) if not e.local]
        return diagrams, elements

    def local_snapshot(self, include_local: bool = False) -> LibraryData:
        """Current local content as library data.

        By default this is the upload payload: device-only rows are left out
        and ``local`` is sent as ``False``.  With *include_local* every row is
        included as stored (a local backup).
        """
        if include_local:
            return LibraryData(
                diagrams=[backup_entry(d) for d in self.diagrams.list(include_hidden=True)],
                elements=[backup_entry(e) for e in self.elements.list(include_hidden=True)],
            )
        diagrams, elements = self._uploadable()
        return LibraryData(
            diagrams=[sanitize_blob_entry(d) for d in diagrams],
            elements=[sanitize_blob_entry(e) for e in elements],
        )

    async def upload_full_user_library(self, username: str) -> bool:
        """Merge local content into the remote blob and PUT it back.

        Returns:
            ``True`` if the server accepted the upload.
        """
        seen = self.ledger.get_last_synced(username, "library")
        diagrams, elements = self._uploadable()
        snapshot = LibraryData(
            diagrams=[sanitize_blob_entry(d) for d in diagrams],
            elements=[sanitize_blob_entry(e) for e in elements],
        )

        try:
            current = await self._shared_fetch(username)
        except SyncError as exc:
            logger.error("Upload for {} skipped, current library unavailable: {}", username, exc)
            return False
        merged = merge_library_data(current.data if current else None, snapshot)

        updated_at = now_iso()
        try:
            acknowledged = await self.client.put_user_library(username, updated_at, merged)
        except ServerRejection as exc:
            if exc.status_code == 409:
                logger.warning("Library upload for {} rejected as stale: {}", username, exc)
            else:
                logger.error("Library upload for {} rejected: {}", username, exc)
            return False
        except SyncError as exc:
            logger.error("Library upload for {} failed: {}", username, exc)
            return False

        for store, rows in ((self.diagrams, diagrams), (self.elements, elements)):
            for row in rows:
                store.set_synchronized(row.id, True, expected_updated_at=row.updated_at)
        # A write during the PUT moved the ledger; its newer stamp must survive.
        if not self.ledger.compare_and_set(username, "library", seen, acknowledged or updated_at):
            logger.info("Library for {} changed during upload; keeping local stamp", username)
        logger.info(
            "Uploaded library for {}: {} diagrams, {} elements",
            username, len(merged.diagrams), len(merged.elements),
        )
        return True

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def _apply_remote_library(self, envelope: LibraryEnvelope, username: str) -> None:
        data = envelope.data
        diagrams = [
            normalize_remote(Diagram, row, synchronized=True, default_user=username)
            for row in data.diagrams
            if row.get("id") not in (None, "")
        ]
        elements = [
            normalize_remote(
                GraphicElement, row, synchronized=True,
                default_category="custom", default_user=username,
            )
            for row in data.elements
            if row.get("id") not in (None, "")
        ]
        self.diagrams.replace_all(diagrams)
        self.elements.replace_all(elements)
        logger.info(
            "Replaced local library of {} with remote copy ({} diagrams, {} elements)",
            username, len(diagrams), len(elements),
        )

    async def _upload(self, username: str) -> ReconcileOutcome:
        if await self.upload_full_user_library(username):
            return ReconcileOutcome.UPLOADED
        return ReconcileOutcome.UPLOAD_FAILED

    async def reconcile_user_library(self, username: str) -> ReconcileOutcome:
        """Bring local content and the remote blob in line (see module doc)."""
        try:
            remote = await self._shared_fetch(username)
        except SyncError as exc:
            logger.error("Reconcile for {} skipped: {}", username, exc)
            return ReconcileOutcome.SKIPPED

        last_synced = self.ledger.get_last_synced(username, "library")
        if remote is None:
            if last_synced is None:
                return ReconcileOutcome.SKIPPED
            return await self._upload(username)

        if last_synced is not None:
            local_ts = parse_instant(last_synced)
            remote_ts = parse_instant(remote.updated_at)
            if local_ts == remote_ts:
                return ReconcileOutcome.UNCHANGED
            if local_ts > remote_ts:
                return await self._upload(username)

        self._apply_remote_library(remote, username)
        self.ledger.set_last_synced(username, "library", remote.updated_at)
        return ReconcileOutcome.DOWNLOADED
