"""Centralised settings for the DrawPak sync engine.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("DRAWPAK_WORKSPACE", Path.home() / ".drawpak")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "drawpak.db"

    @property
    def ledger_path(self) -> Path:
        """JSON file holding the per-user last-synced timestamps.

        Lives outside the SQLite file so it survives schema migrations.
        """
        return self.workspace_dir / "sync_ledger.json"

    @property
    def log_path(self) -> Path:
        """Rotating application log written by :mod:`drawpak.logging_config`."""
        return self.workspace_dir / "logs" / "drawpak.log"

    @property
    def cli_config_dir(self) -> Path:
        """Directory for CLI state (current username)."""
        return self.workspace_dir / "cli"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    @property
    def defaults_path(self) -> Path:
        """Bundled default graphic elements used by the seeder."""
        return Path(__file__).resolve().parent / "db" / "default_elements.json"

    # ------------------------------------------------------------------
    # Remote service
    # ------------------------------------------------------------------
    remote_url: str = field(
        default_factory=lambda: os.environ.get(
            "DRAWPAK_REMOTE_URL", "http://localhost:8080/api"
        )
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SYNC_REQUEST_TIMEOUT", "10.0"))
    )
    sync_retry_delay: float = field(
        default_factory=lambda: float(os.environ.get("SYNC_RETRY_DELAY", "1.0"))
    )

    # ------------------------------------------------------------------
    # Debounced library upload
    # ------------------------------------------------------------------
    upload_debounce_seconds: float = field(
        default_factory=lambda: float(os.environ.get("UPLOAD_DEBOUNCE_SECONDS", "2.0"))
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("DRAWPAK_LOG_LEVEL", "INFO")
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton, import this everywhere:
#   from drawpak.config import settings
settings = Settings()
