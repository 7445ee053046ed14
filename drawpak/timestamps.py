"""ISO-8601 timestamp helpers.

``updated_at`` is the only signal used to decide merge direction, so every
comparison goes through :func:`parse_instant`, which never raises: anything it
cannot understand is treated as the Unix epoch.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def now_iso() -> str:
    """Current UTC time, e.g. ``2025-09-09T12:41:48.864Z``."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def parse_instant(value: Any) -> float:
    """Return *value* as seconds since the epoch (``0.0`` if unparsable).

    Accepts ISO-8601 strings (``Z`` or numeric offsets; naive values are read
    as UTC) and plain Unix timestamps.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def format_timestamp(value: Optional[str]) -> str:
    """Format an ISO timestamp for display as ``dd/mm/YYYY HH:MM`` local time.

    Unparsable values are returned unchanged; ``None`` becomes ``""``.
    """
    if not value:
        return ""
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return value
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.strftime("%d/%m/%Y %H:%M")
