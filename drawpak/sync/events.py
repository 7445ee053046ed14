"""In-process notification of finished collection syncs.

Callers (a UI, the session, tests) subscribe to :class:`CollectionSynced`
instead of the engines reaching into any presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from loguru import logger

if TYPE_CHECKING:
    from drawpak.sync.collection import SyncReport


@dataclass(frozen=True)
class CollectionSynced:
    kind: str
    username: str
    report: "SyncReport"


Listener = Callable[[CollectionSynced], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: CollectionSynced) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener {} failed for {}", listener, event)
