"""Tests for remote client error mapping."""

import httpx
import pytest

from services.remote_client import RemoteStoreClient
from shared.exceptions import RemoteStoreError


def _client(handler) -> RemoteStoreClient:
    return RemoteStoreClient(base_url="http://store/api/", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_requests_are_relative_to_api_root():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path))
        return httpx.Response(200, json=[])

    await _client(handler).list_projects()
    await _client(handler).load_chat("p1")

    assert seen == [("GET", "/api/projects"), ("GET", "/api/projects/p1/chat")]


@pytest.mark.asyncio
async def test_error_status_raises_with_code():
    client = _client(lambda request: httpx.Response(404, json={"detail": "Project p1 not found"}))

    with pytest.raises(RemoteStoreError) as exc_info:
        await client.load_state("p1")
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_transport_error_raises(failing_client):
    with pytest.raises(RemoteStoreError) as exc_info:
        await failing_client.save_state("p1", {"rootNodes": []})
    assert exc_info.value.status_code is None
    assert await failing_client.health() is False


@pytest.mark.asyncio
async def test_invalid_json_raises():
    client = _client(lambda request: httpx.Response(200, content=b"<html>"))

    with pytest.raises(RemoteStoreError):
        await client.list_projects()


@pytest.mark.asyncio
async def test_chat_body_shape():
    bodies = []

    def handler(request):
        bodies.append(request.read())
        return httpx.Response(200, json={"success": True, "inserted": 1})

    await _client(handler).save_chat("p1", [{"id": "m1", "role": "user", "text": "hi"}])

    assert b'"messages"' in bodies[0]
