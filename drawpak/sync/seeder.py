"""First-run population of the graphic element palette.

Seeding only happens while the elements table is empty.  The server's
element collection is preferred; when it is unreachable or empty the bundled
``default_elements.json`` is used instead.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from drawpak.config import settings
from drawpak.db.elements import find_element
from drawpak.db.models import GraphicElement
from drawpak.db.store import EntityStore
from drawpak.exceptions import SyncError
from drawpak.sync.remote import RemoteClient
from drawpak.sync.sanitize import normalize_remote
from drawpak.timestamps import now_iso

BUNDLED_AUTHOR = "drawpak"


class Seeder:
    """Seeds *elements* once.

    Args:
        elements: Local element store.
        client: Remote client; ``None`` goes straight to the bundled file.
        defaults_path: Bundled JSON list (default ``settings.defaults_path``).
    """

    def __init__(
        self,
        elements: EntityStore[GraphicElement],
        client: Optional[RemoteClient] = None,
        defaults_path: Optional[Path] = None,
    ) -> None:
        self.elements = elements
        self.client = client
        self.defaults_path = Path(defaults_path) if defaults_path else settings.defaults_path
        self._lock = asyncio.Lock()

    async def seed(self) -> int:
        """Populate an empty palette.  Returns the number of rows added."""
        async with self._lock:
            if self.elements.count() > 0:
                return 0
            added = await self._seed_from_server()
            if added:
                return added
            return self._seed_from_bundle()

    async def reseed(self) -> int:
        """Clear every element and seed again."""
        async with self._lock:
            self.elements.clear()
        return await self.seed()

    async def _seed_from_server(self) -> int:
        if self.client is None:
            return 0
        try:
            rows = await self.client.fetch_collection(GraphicElement.KIND)
        except SyncError as exc:
            logger.info("Server seed unavailable ({}), using bundled elements", exc)
            return 0

        added = 0
        for row in rows:
            element = normalize_remote(
                GraphicElement, row, synchronized=True, hidden=False, default_user="server"
            )
            element.created_at = element.created_at or now_iso()
            element.updated_at = element.updated_at or element.created_at
            if element.id is None and find_element(self.elements, element.name, element.category):
                continue
            self.elements.put(element, touch=False)
            added += 1
        if added:
            logger.info("Seeded {} elements from the server", added)
        return added

    def _load_bundle(self) -> list[dict[str, Any]]:
        try:
            entries = json.loads(self.defaults_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Cannot read bundled elements {}: {}", self.defaults_path, exc)
            return []
        return [e for e in entries if isinstance(e, dict)] if isinstance(entries, list) else []

    def _seed_from_bundle(self) -> int:
        added = 0
        for entry in self._load_bundle():
            category = entry.get("category") or "basic"
            if find_element(self.elements, entry.get("name") or "", category):
                continue
            created_at = entry.get("created_at") or now_iso()
            element = GraphicElement.from_dict(
                {
                    **entry,
                    "category": category,
                    "created_at": created_at,
                    "created_by": BUNDLED_AUTHOR,
                    "updated_at": created_at,
                    "updated_by": BUNDLED_AUTHOR,
                    "local": False,
                    "synchronized": False,
                    "hidden": False,
                }
            )
            self.elements.put(element, touch=False)
            added += 1
        logger.info("Seeded {} bundled elements", added)
        return added
