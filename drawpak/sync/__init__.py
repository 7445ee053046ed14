"""Sync engines for diagrams and graphic elements.

Typical use::

    from drawpak.sync import SyncSession

    async with SyncSession(conn, "alice") as session:
        await session.start()
        await session.save_diagram(Diagram(name="Feeder 1"))
"""

from drawpak.sync.collection import CollectionSync, SyncReport
from drawpak.sync.debounce import DebouncedUploader
from drawpak.sync.events import CollectionSynced, EventBus
from drawpak.sync.ledger import TimestampLedger
from drawpak.sync.library import LibraryReconciler, ReconcileOutcome, merge_library_data
from drawpak.sync.remote import RemoteClient
from drawpak.sync.seeder import Seeder
from drawpak.sync.session import SyncSession

__all__ = [
    "CollectionSync",
    "SyncReport",
    "DebouncedUploader",
    "CollectionSynced",
    "EventBus",
    "TimestampLedger",
    "LibraryReconciler",
    "ReconcileOutcome",
    "merge_library_data",
    "RemoteClient",
    "Seeder",
    "SyncSession",
]
