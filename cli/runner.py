"""Run a coroutine against a short-lived SyncSession from sync CLI code."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from drawpak.db import get_connection, init_db
from drawpak.sync import SyncSession


def run_session(
    username: str,
    action: Callable[[SyncSession], Awaitable[Any]],
    flush: bool = False,
) -> Any:
    """Open the DB, run ``action(session)`` and close everything again.

    With *flush* the debounced library upload and background syncs
    triggered by *action* are completed before returning, since the
    process exits right after.
    """

    async def _main() -> Any:
        conn = get_connection()
        init_db(conn)
        try:
            async with SyncSession(conn, username) as session:
                result = await action(session)
                if flush:
                    await session.uploader.flush()
                    await session.wait_idle()
                return result
        finally:
            conn.close()

    return asyncio.run(_main())
