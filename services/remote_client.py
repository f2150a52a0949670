"""Async HTTP client for the remote project store (services/store_server.py).

Every failure (connection error, timeout, non-2xx status, undecodable body)
surfaces as RemoteStoreError so the persistence gateway can fall back to the
local store with a single except clause.
"""

import logging
from typing import Optional

import httpx

from shared.constants import DEFAULT_REMOTE_API_URL
from shared.exceptions import RemoteStoreError

logger = logging.getLogger(__name__)


class RemoteStoreClient:
    """Thin wrapper over the remote store's REST API.

    Args:
        base_url: API root, e.g. ``http://localhost:3001/api``.
        timeout: Seconds per request; None waits indefinitely.
        transport: Optional httpx transport (ASGITransport in tests).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REMOTE_API_URL,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _request(self, method: str, url: str, json=None):
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, url, json=json)
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"{method} {url} failed: {e}") from e

        if resp.status_code >= 400:
            detail = resp.text[:200]
            raise RemoteStoreError(
                f"{method} {url} returned {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteStoreError(f"{method} {url} returned invalid JSON", resp.status_code) from e

    async def health(self) -> bool:
        try:
            await self._request("GET", "/health")
        except RemoteStoreError:
            return False
        return True

    # --- Projects ---

    async def list_projects(self) -> list[dict]:
        return await self._request("GET", "/projects") or []

    async def create_project(self, project: dict) -> dict:
        return await self._request("POST", "/projects", json=project)

    async def update_project(self, project_id: str, changes: dict) -> dict:
        return await self._request("PUT", f"/projects/{project_id}", json=changes)

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", f"/projects/{project_id}")

    # --- State ---

    async def save_state(self, project_id: str, payload: dict) -> dict:
        return await self._request("POST", f"/projects/{project_id}/state", json=payload)

    async def load_state(self, project_id: str) -> dict:
        return await self._request("GET", f"/projects/{project_id}/state") or {}

    # --- Chat ---

    async def save_chat(self, project_id: str, messages: list[dict]) -> dict:
        return await self._request("POST", f"/projects/{project_id}/chat", json={"messages": messages})

    async def load_chat(self, project_id: str) -> list[dict]:
        return await self._request("GET", f"/projects/{project_id}/chat") or []
