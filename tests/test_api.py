"""Integration tests exercising the full API with mock SSH and a fake cluster."""

from __future__ import annotations

import pytest

from tests.mock_ssh import HTTP_PROXY, NO_PROXY, SERVICE_ENV_NO_PROXY_VARS


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"


@pytest.mark.asyncio
async def test_node_env_vars(client):
    resp = await client.get("/nodes/10.0.1.20/env-vars", params={"name": "NO_PROXY"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["scope"] == "system"
    assert data["env_vars"] == {"NO_PROXY": NO_PROXY}


@pytest.mark.asyncio
async def test_node_service_env_vars(client):
    resp = await client.get("/nodes/10.0.1.20/env-vars", params={"service": "kubelet"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["scope"] == "kubelet"
    assert data["env_vars"]["HTTP_PROXY"] == HTTP_PROXY


@pytest.mark.asyncio
async def test_node_unreachable(client, mock_ssh):
    mock_ssh.unreachable.add("10.0.1.99")
    resp = await client.get("/nodes/10.0.1.99/env-vars")
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_verify_env_ok(client):
    resp = await client.post("/nodes/10.0.1.20/verify-env")
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["mismatches"] == []


@pytest.mark.asyncio
async def test_verify_env_mismatch(client, mock_ssh):
    mock_ssh.add_response("Get-Process windows_exporter", SERVICE_ENV_NO_PROXY_VARS)
    resp = await client.post("/nodes/10.0.1.20/verify-env")
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is False
    assert {m["scope"] for m in data["mismatches"]} == {"windows_exporter"}


@pytest.mark.asyncio
async def test_trusted_ca_wait(client):
    resp = await client.post("/trusted-ca/wait")
    assert resp.status_code == 200
    data = resp.json()
    assert data["outcome"] == "converged"
    assert data["error"] is None


@pytest.mark.asyncio
async def test_trusted_ca_recreate(client):
    resp = await client.post("/trusted-ca/recreate")
    assert resp.status_code == 200
    data = resp.json()
    assert data["outcome"] == "converged"
    assert data["attempts"] == 2


@pytest.mark.asyncio
async def test_trusted_ca_repair_timeout(client, fake_cluster):
    fake_cluster.operator_running = False
    resp = await client.post("/trusted-ca/repair")
    assert resp.status_code == 200
    data = resp.json()
    assert data["outcome"] == "timed_out"
    assert "timed out" in data["message"]
    assert "inject-trusted-cabundle" in data["error"]


@pytest.mark.asyncio
async def test_trusted_ca_recreate_missing(client, fake_cluster):
    fake_cluster.config_maps.clear()
    resp = await client.post("/trusted-ca/recreate")
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_env_var_name_with_script_rejected(client, mock_ssh):
    resp = await client.get(
        "/nodes/10.0.1.20/env-vars",
        params={"name": "x' ; Remove-Item -Recurse C:\\k ; '"},
    )
    assert resp.status_code == 422
    assert mock_ssh.sent == []


@pytest.mark.asyncio
async def test_service_name_with_script_rejected(client, mock_ssh):
    resp = await client.get(
        "/nodes/10.0.1.20/env-vars",
        params={"service": "kubelet; Stop-Computer -Force;"},
    )
    assert resp.status_code == 422
    assert mock_ssh.sent == []


@pytest.mark.asyncio
async def test_cluster_config_unavailable(client):
    from proxyverify.errors import TransportError
    from proxyverify.main import app as fastapi_app
    from proxyverify.services.cluster import get_cluster_client

    def no_cluster():
        raise TransportError("unable to load cluster configuration: no kubeconfig")

    fastapi_app.dependency_overrides[get_cluster_client] = no_cluster
    resp = await client.post("/trusted-ca/wait")
    assert resp.status_code == 502
    assert "cluster configuration" in resp.json()["detail"]
