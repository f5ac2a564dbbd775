"""Trusted-CA ConfigMap reconciliation checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from proxyverify.auth import require_api_key
from proxyverify.errors import ProxyVerifyError
from proxyverify.models.responses import ConvergenceResponse, ErrorResponse
from proxyverify.services import proxy_checks
from proxyverify.services.cluster import ClusterClient, get_cluster_client

router = APIRouter(
    prefix="/trusted-ca",
    tags=["trusted-ca"],
    dependencies=[Depends(require_api_key)],
    responses={502: {"model": ErrorResponse}},
)


@router.post("/wait", response_model=ConvergenceResponse)
async def wait_valid(
    cluster: ClusterClient = Depends(get_cluster_client),
) -> ConvergenceResponse:
    result = await proxy_checks.wait_for_valid_trusted_ca(cluster)
    return ConvergenceResponse.from_result(proxy_checks.trusted_ca_resource(), result)


@router.post("/recreate", response_model=ConvergenceResponse)
async def recreate(
    cluster: ClusterClient = Depends(get_cluster_client),
) -> ConvergenceResponse:
    """Delete the ConfigMap and wait for it to come back valid."""
    try:
        result = await proxy_checks.recreate_trusted_ca(cluster)
    except ProxyVerifyError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ConvergenceResponse.from_result(proxy_checks.trusted_ca_resource(), result)


@router.post("/repair", response_model=ConvergenceResponse)
async def repair(
    cluster: ClusterClient = Depends(get_cluster_client),
) -> ConvergenceResponse:
    """Remove the injection label and wait for the operator to restore it."""
    try:
        result = await proxy_checks.repair_trusted_ca(cluster)
    except ProxyVerifyError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ConvergenceResponse.from_result(proxy_checks.trusted_ca_resource(), result)
