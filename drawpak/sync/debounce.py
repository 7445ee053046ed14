"""Coalesce bursts of local writes into one library upload per user."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from drawpak.config import settings

Upload = Callable[[str], Awaitable[object]]


class DebouncedUploader:
    """Run ``upload(username)`` once writes for that user have gone quiet.

    Each :meth:`schedule_upload` replaces the user's pending timer.  Once a
    timer fires the upload is detached from it, so a later schedule never
    aborts an upload that is already running; it just queues the next one.

    Args:
        upload: Coroutine function performing the upload.
        delay: Quiet period in seconds (default
            ``settings.upload_debounce_seconds``).
    """

    def __init__(self, upload: Upload, delay: Optional[float] = None) -> None:
        self._upload = upload
        self.delay = settings.upload_debounce_seconds if delay is None else delay
        self._pending: dict[str, asyncio.Task] = {}
        self._running: set[asyncio.Task] = set()

    def schedule_upload(self, username: str) -> None:
        """(Re)start the debounce timer for *username*."""
        previous = self._pending.pop(username, None)
        if previous is not None and not previous.done():
            previous.cancel()
        self._pending[username] = asyncio.create_task(self._wait_then_upload(username))

    async def _wait_then_upload(self, username: str) -> None:
        await asyncio.sleep(self.delay)
        me = asyncio.current_task()
        if self._pending.get(username) is me:
            del self._pending[username]
        running = asyncio.create_task(self._run(username))
        self._running.add(running)
        running.add_done_callback(self._running.discard)

    async def _run(self, username: str) -> None:
        try:
            await self._upload(username)
        except Exception:
            logger.exception("Debounced library upload for {} failed", username)

    def pending(self, username: str) -> bool:
        """Whether an upload timer is waiting for *username*."""
        task = self._pending.get(username)
        return task is not None and not task.done()

    async def flush(self) -> None:
        """Fire every pending upload now and wait for all uploads to finish."""
        for username in list(self._pending):
            task = self._pending.pop(username)
            if not task.done():
                task.cancel()
            running = asyncio.create_task(self._run(username))
            self._running.add(running)
            running.add_done_callback(self._running.discard)
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait until no timer is pending and no upload is running."""
        while self._pending or self._running:
            await asyncio.gather(
                *self._pending.values(), *self._running, return_exceptions=True
            )

    def cancel_all(self) -> None:
        """Drop every pending timer; running uploads are left to finish."""
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()
