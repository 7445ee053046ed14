"""Per-user "last synced" timestamps, kept in a small JSON file.

Layout::

    {"alice": {"library": "2025-01-01T10:00:00.000Z", "diagrams": "..."}}

The file sits next to (not inside) the SQLite database so it survives a
schema migration or a wiped database.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from loguru import logger

from drawpak.config import settings
from drawpak.timestamps import now_iso

KINDS = ("library", "diagrams")


class TimestampLedger:
    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else settings.ledger_path

    def _load(self) -> dict[str, dict[str, str]]:
        if not self.path.exists():
            return {}
        try:
            state = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable sync ledger {}: {}", self.path, exc)
            return {}
        if not isinstance(state, dict):
            return {}
        return {u: e for u, e in state.items() if isinstance(e, dict)}

    def _save(self, state: dict[str, dict[str, str]]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(state, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.error("Could not write sync ledger {}: {}", self.path, exc)

    @staticmethod
    def _check_kind(kind: str) -> None:
        if kind not in KINDS:
            raise ValueError(f"Unknown ledger kind {kind!r}; expected one of {KINDS}")

    def get_last_synced(self, username: str, kind: str) -> Optional[str]:
        """Timestamp recorded for *username* and *kind*, or ``None``."""
        self._check_kind(kind)
        value = self._load().get(username, {}).get(kind)
        return value if isinstance(value, str) and value else None

    def set_last_synced(self, username: str, kind: str, timestamp: Optional[str] = None) -> str:
        """Record *timestamp* (default: now) and return it."""
        self._check_kind(kind)
        stamp = timestamp or now_iso()
        state = self._load()
        state.setdefault(username, {})[kind] = stamp
        self._save(state)
        return stamp

    def compare_and_set(
        self, username: str, kind: str, expected: Optional[str], timestamp: str
    ) -> bool:
        """Record *timestamp* only if the stored value is still *expected*."""
        self._check_kind(kind)
        state = self._load()
        current = state.get(username, {}).get(kind) or None
        if current != expected:
            return False
        state.setdefault(username, {})[kind] = timestamp
        self._save(state)
        return True

    def clear(self, username: str) -> None:
        """Forget every timestamp recorded for *username*."""
        state = self._load()
        if state.pop(username, None) is not None:
            self._save(state)
