"""Node-side proxy environment checks."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query

from proxyverify.auth import require_api_key
from proxyverify.errors import InvalidArgumentError, ProxyVerifyError, TransportError
from proxyverify.models.responses import EnvVarsResponse, EnvVerifyResponse, ErrorResponse
from proxyverify.services import proxy_checks
from proxyverify.services.cluster import ClusterClient, get_cluster_client
from proxyverify.services.proxy_checks import (
    ENV_VAR_NAME_PATTERN,
    SERVICE_NAME_PATTERN,
    SYSTEM_SCOPE,
)
from proxyverify.services.ssh_manager import ssh_manager

router = APIRouter(
    prefix="/nodes",
    tags=["nodes"],
    dependencies=[Depends(require_api_key)],
    responses={502: {"model": ErrorResponse}},
)


@router.get("/{address}/env-vars", response_model=EnvVarsResponse)
async def node_env_vars(
    address: str,
    name: str = Query("HTTP_PROXY", pattern=ENV_VAR_NAME_PATTERN),
    service: str | None = Query(
        None,
        pattern=SERVICE_NAME_PATTERN,
        description="Windows service to inspect instead of the system scope",
    ),
) -> EnvVarsResponse:
    """Parsed environment of the node (system scope) or of one service."""
    try:
        if service:
            env = await proxy_checks.get_service_env_vars(address, service, mgr=ssh_manager)
        else:
            env = await proxy_checks.get_system_env_vars(address, name, mgr=ssh_manager)
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TransportError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return EnvVarsResponse(address=address, scope=service or SYSTEM_SCOPE, env_vars=env)


@router.post("/{address}/verify-env", response_model=EnvVerifyResponse)
async def verify_env(
    address: str,
    cluster: ClusterClient = Depends(get_cluster_client),
) -> EnvVerifyResponse:
    """Compare the node's proxy variables against the cluster proxy status."""
    try:
        status = await asyncio.to_thread(cluster.get_proxy_status)
        mismatches = await proxy_checks.verify_node_env_vars(
            address, proxy_checks.expected_env_vars(status), mgr=ssh_manager,
        )
    except ProxyVerifyError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return EnvVerifyResponse(address=address, ok=not mismatches, mismatches=mismatches)
