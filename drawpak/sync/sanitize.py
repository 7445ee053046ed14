"""Pure functions that shape entities for the wire and back.

Outbound (``sanitize_row`` / ``sanitize_blob_entry``): coerce types, fill the
audit timestamps and force server-authoritative fields; ``local`` is always
sent as ``False`` and the device-only ``synchronized`` flag never leaves.

Inbound (``normalize_remote``): turn a loosely-typed remote dict into a model
instance with the defaults the rest of the package relies on.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Optional, TypeVar

from drawpak.db.models import GraphicElement, Record, as_bool, as_text
from drawpak.timestamps import now_iso

R = TypeVar("R", bound=Record)

# Content fields compared when two copies carry the same timestamp.
_NON_CONTENT_FIELDS = frozenset({"local", "synchronized", "hidden"})


def sanitize_row(entity: Record) -> dict[str, Any]:
    """Payload for ``POST /collection/{kind}``."""
    data = entity.to_dict()
    data.pop("synchronized", None)
    data.pop("hidden", None)

    for key, value in list(data.items()):
        if key in ("id", "created_at", "created_by", "updated_at", "updated_by", "local"):
            continue
        data[key] = as_text(value) or ""

    now = now_iso()
    data["created_at"] = data.get("created_at") or now
    data["updated_at"] = data.get("updated_at") or data["created_at"] or now
    for key in ("created_by", "updated_by"):
        if not data.get(key):
            data.pop(key, None)
    data["local"] = False
    return data


def sanitize_blob_entry(entity: Record) -> dict[str, Any]:
    """Entry for the ``elements`` / ``diagrams`` arrays of the library blob.

    Same as :func:`sanitize_row` but keeps ``hidden`` so a soft delete
    travels to other devices (and can be undone there).
    """
    data = sanitize_row(entity)
    data["hidden"] = bool(entity.hidden)  # type: ignore[attr-defined]
    return data


def backup_entry(entity: Record) -> dict[str, Any]:
    """Entry for a local backup snapshot: everything but ``synchronized``."""
    data = entity.to_dict()
    data.pop("synchronized", None)
    return data


def normalize_remote(
    model: type[R],
    row: dict[str, Any],
    *,
    synchronized: bool = True,
    hidden: Optional[bool] = None,
    default_category: str = "basic",
    default_user: Optional[str] = None,
) -> R:
    """Build a *model* instance from a remote row.

    Args:
        model: Target model class.
        row: Row as received from the server (values of any JSON type).
        synchronized: Value for the local ``synchronized`` flag.
        hidden: Overrides ``hidden``; ``None`` takes it from *row* (default
            ``False``).
        default_category: Category for elements that arrive without one.
        default_user: Fallback for ``created_by`` / ``updated_by``.
    """
    data = dict(row)
    data["id"] = str(row["id"]) if row.get("id") is not None else None
    data["name"] = as_text(row.get("name")) or ""
    data["description"] = as_text(row.get("description")) or ""
    if model is GraphicElement:
        data["category"] = as_text(row.get("category")) or default_category
    data["created_at"] = as_text(row.get("created_at")) or None
    data["updated_at"] = as_text(row.get("updated_at")) or data["created_at"]
    data["created_by"] = as_text(row.get("created_by")) or default_user
    data["updated_by"] = as_text(row.get("updated_by")) or data["created_by"]
    data["local"] = as_bool(row.get("local"))
    data["synchronized"] = synchronized
    data["hidden"] = as_bool(row.get("hidden")) if hidden is None else hidden
    return model.from_dict(data)


def content_hash(entity: Record) -> str:
    """Stable digest of an entity's content (flags excluded)."""
    data = {k: v for k, v in entity.to_dict().items() if k not in _NON_CONTENT_FIELDS}
    for key, value in data.items():
        if value is None:
            data[key] = ""
    encoded = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
