"""Shared pytest fixtures."""

from __future__ import annotations

import os

# Force settings to use test-safe defaults before any import
os.environ.setdefault("PROXYVERIFY_API_KEY", "")
os.environ.setdefault("POLL_INTERVAL_SECONDS", "0.01")
os.environ.setdefault("RESOURCE_CHANGE_TIMEOUT_SECONDS", "0.5")
os.environ.setdefault("NODE_READY_TIMEOUT_SECONDS", "0.5")

import pytest
from httpx import ASGITransport, AsyncClient

from tests.fake_cluster import FakeCluster
from tests.mock_ssh import MockSSHManager


@pytest.fixture
def mock_ssh():
    """Provide a fresh MockSSHManager."""
    return MockSSHManager()


@pytest.fixture
def fake_cluster():
    return FakeCluster()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def client(mock_ssh, fake_cluster):
    """Async test client with the mock SSH manager and fake cluster injected."""
    import proxyverify.main as main_mod
    import proxyverify.routers.nodes as rn
    from proxyverify.main import app as fastapi_app
    from proxyverify.services.cluster import get_cluster_client

    original_main_ssh = main_mod.ssh_manager
    original_nodes_ssh = rn.ssh_manager
    main_mod.ssh_manager = mock_ssh
    rn.ssh_manager = mock_ssh
    fastapi_app.dependency_overrides[get_cluster_client] = lambda: fake_cluster

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Restore
    fastapi_app.dependency_overrides.clear()
    main_mod.ssh_manager = original_main_ssh
    rn.ssh_manager = original_nodes_ssh
