"""Exception taxonomy for the sync subsystem.

None of these reach the end user: the engines catch them, log them and leave
the affected rows with ``synchronized = False``.
"""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base exception for sync errors."""


class NetworkFailure(SyncError):
    """Raised for connect errors, timeouts and other transport problems."""


class ServerRejection(SyncError):
    """Raised for non-2xx responses from the remote service."""

    def __init__(self, status_code: int, body: Optional[str] = None) -> None:
        detail = f": {body}" if body else ""
        super().__init__(f"Server rejected request with HTTP {status_code}{detail}")
        self.status_code = status_code
        self.body = body


class MalformedResponse(SyncError):
    """Raised when a response body is not JSON or has an unexpected shape."""


class MigrationFailure(SyncError):
    """Raised inside a schema migration step; always caught and logged."""
