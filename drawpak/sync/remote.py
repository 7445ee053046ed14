"""Async HTTP client for the remote sync service.

Endpoints (relative to ``settings.remote_url``):

- ``GET  /collection/{kind}``         -> JSON array of rows
- ``POST /collection/{kind}``         <- one sanitized row plus ``username``
- ``GET  /user-library/{username}``   -> ``{data, updated_at}`` (404: none)
- ``PUT  /user-library/{username}``   <- ``{username, updated_at, data}``

Transport problems become :class:`NetworkFailure`, non-2xx statuses
:class:`ServerRejection` and undecodable bodies :class:`MalformedResponse`.
"""

from __future__ import annotations

import json
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from drawpak.config import settings
from drawpak.exceptions import MalformedResponse, NetworkFailure, ServerRejection
from drawpak.sync.schemas import (
    LibraryData,
    LibraryEnvelope,
    LibraryPutRequest,
    LibraryPutResponse,
)

COLLECTION_KINDS = ("diagrams", "elements")


class RemoteClient:
    """Thin wrapper over ``httpx.AsyncClient`` for the sync endpoints.

    Args:
        base_url: Service root (default ``settings.remote_url``).
        timeout: Per-request timeout in seconds (default
            ``settings.request_timeout``).
        transport: Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.remote_url).rstrip("/")
        self.timeout = settings.request_timeout if timeout is None else timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "RemoteClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _send(
        self, method: str, endpoint: str, payload: Optional[dict[str, Any]] = None
    ) -> httpx.Response:
        client = self._get_client()
        try:
            return await client.request(method, endpoint, json=payload)
        except httpx.RequestError as exc:  # connect errors, timeouts, ...
            raise NetworkFailure(f"{method} {self.base_url}{endpoint} failed: {exc}") from exc

    @staticmethod
    def _check(response: httpx.Response) -> None:
        if not response.is_success:
            raise ServerRejection(response.status_code, response.text[:500] or None)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedResponse(
                f"Non-JSON response from {response.request.url}: {response.text[:200]!r}"
            ) from exc

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def fetch_collection(self, kind: str) -> list[dict[str, Any]]:
        """Return every server row of *kind* (``diagrams`` or ``elements``).

        Raises:
            NetworkFailure, ServerRejection: Transport error or non-2xx status.
            MalformedResponse: Body is not a JSON array.
        """
        response = await self._send("GET", f"/collection/{kind}")
        self._check(response)
        rows = self._json(response)
        if not isinstance(rows, list):
            raise MalformedResponse(f"Expected a JSON array for {kind}, got {type(rows).__name__}")
        return [r for r in rows if isinstance(r, dict)]

    async def push_row(self, kind: str, row: dict[str, Any], username: str) -> None:
        """POST one sanitized row, tagged with the acting *username*."""
        response = await self._send("POST", f"/collection/{kind}", {**row, "username": username})
        self._check(response)

    # ------------------------------------------------------------------
    # User library blob
    # ------------------------------------------------------------------

    async def get_user_library(self, username: str) -> Optional[LibraryEnvelope]:
        """Fetch the user's library blob; ``None`` on 404.

        Raises:
            NetworkFailure, ServerRejection: Transport error or non-2xx
                status other than 404.
            MalformedResponse: Body is not a library envelope.
        """
        response = await self._send("GET", f"/user-library/{quote(username, safe='')}")
        if response.status_code == 404:
            return None
        self._check(response)
        body = self._json(response)
        if not isinstance(body, dict):
            raise MalformedResponse("Library response is not a JSON object")
        try:
            return LibraryEnvelope.model_validate(body)
        except ValidationError as exc:
            raise MalformedResponse(f"Invalid library payload: {exc}") from exc

    async def put_user_library(
        self, username: str, updated_at: str, data: LibraryData
    ) -> Optional[str]:
        """Replace the user's library blob.

        Returns:
            The ``updated_at`` acknowledged by the server, or ``None`` if the
            response did not carry one.

        Raises:
            NetworkFailure, ServerRejection: Transport error or non-2xx status
                (409 when *updated_at* is older than the stored blob).
        """
        body = LibraryPutRequest(username=username, updated_at=updated_at, data=data)
        response = await self._send(
            "PUT",
            f"/user-library/{quote(username, safe='')}",
            body.model_dump(mode="json"),
        )
        self._check(response)
        try:
            ack = LibraryPutResponse.model_validate(response.json())
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
            return None
        return ack.updated_at
