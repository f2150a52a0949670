"""Pytest fixtures: per-test SQLite files and in-process remote store clients."""

import httpx
import pytest

import api
from db import local_store, operations
from services.remote_client import RemoteStoreClient
from services.store_server import app as store_app


@pytest.fixture(autouse=True)
def temp_stores(tmp_path, monkeypatch):
    """Point both stores at fresh files under tmp_path."""
    monkeypatch.setattr(operations, "DB_PATH", tmp_path / "remote.db")
    monkeypatch.setattr(local_store, "LOCAL_DB_PATH", tmp_path / "local.db")
    operations.init_database()
    yield tmp_path
    api.configure(None)


@pytest.fixture
def remote_client() -> RemoteStoreClient:
    """Client talking to the FastAPI store app in-process."""
    return RemoteStoreClient(
        base_url="http://testserver/api",
        transport=httpx.ASGITransport(app=store_app),
    )


@pytest.fixture
def failing_client() -> RemoteStoreClient:
    """Client whose every request fails with a connection error."""
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return RemoteStoreClient(
        base_url="http://unreachable/api",
        transport=httpx.MockTransport(refuse),
    )


@pytest.fixture
def remote_project() -> dict:
    """A project that exists in the remote store."""
    return operations.create_project("Demo", project_id="p1")
