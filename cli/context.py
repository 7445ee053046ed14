"""Persistent state for the DrawPak CLI.

Tracks the signed-in username, the only ambient value the CLI keeps.
Stored in `<workspace>/cli/context.json`.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from functools import wraps
from pathlib import Path
from typing import Callable

import typer
from drawpak.config import settings


@dataclass
class CliContext:
    username: str | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_json(cls, data: str) -> CliContext:
        try:
            raw = json.loads(data)
            return cls(**raw)
        except (json.JSONDecodeError, TypeError):
            return cls()


def _get_context_path() -> Path:
    """Return the path to the context JSON file."""
    return settings.cli_config_dir / "context.json"


def load_context() -> CliContext:
    """Load the CLI context from disk. Returns defaults if missing/corrupt."""
    path = _get_context_path()
    if not path.exists():
        return CliContext()
    try:
        return CliContext.from_json(path.read_text(encoding="utf-8"))
    except OSError:
        return CliContext()


def save_context(ctx: CliContext) -> None:
    """Save the CLI context to disk."""
    settings.cli_config_dir.mkdir(parents=True, exist_ok=True)
    _get_context_path().write_text(ctx.to_json(), encoding="utf-8")


def require_user(func: Callable) -> Callable:
    """Decorator for CLI commands that need a signed-in user.

    Aborts with exit code 1 when nobody is logged in; the command reads the
    username with ``load_context()``.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        ctx = load_context()
        if not ctx.username:
            typer.echo("❌ Not logged in.")
            typer.echo("Run 'user login <name>' first.")
            raise typer.Exit(code=1)
        return func(*args, **kwargs)

    return wrapper
