"""Cluster-wide proxy validation on Windows nodes.

Node-side checks run PowerShell over SSH and parse the ``Format-List``
output.  Cluster-side checks wait for the operator to reconcile the
trusted-CA ConfigMap after it is deleted or made invalid.
"""

from __future__ import annotations

import asyncio
import re
from typing import Iterable, Optional

from proxyverify.config import Settings, settings
from proxyverify.errors import InvalidArgumentError, RetryableError
from proxyverify.models.patch import JSONPatch, PatchOp
from proxyverify.models.poll import PollPolicy, PollResult
from proxyverify.models.proxy import EnvVarMismatch, ProxyStatus
from proxyverify.services.certificates import (
    cert_count_script,
    generate_certificate,
    split_pem_bundle,
)
from proxyverify.services.cluster import ClusterClient, node_ready_and_schedulable
from proxyverify.services.ssh_manager import SSHSessionManager, ssh_manager
from proxyverify.utils.convergence import Predicate, poll_until
from proxyverify.utils.env_parser import WATCHED_ENV_VARS, parse_count, parse_env_vars
from proxyverify.utils.logging import get_logger

log = get_logger(__name__)

SYSTEM_SCOPE = "system"

# Values pasted into PowerShell scripts must match these.
ENV_VAR_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"
SERVICE_NAME_PATTERN = r"^[\w.-]+$"

_ENV_VAR_NAME_RE = re.compile(ENV_VAR_NAME_PATTERN)
_SERVICE_NAME_RE = re.compile(SERVICE_NAME_PATTERN)


def _require(pattern: re.Pattern[str], value: str, what: str) -> str:
    if not pattern.fullmatch(value):
        raise InvalidArgumentError(f"invalid {what}: {value!r}")
    return value


def resource_change_policy(cfg: Settings | None = None) -> PollPolicy:
    cfg = cfg or settings
    return PollPolicy(
        interval=cfg.poll_interval_seconds,
        timeout=cfg.resource_change_timeout_seconds,
    )


def node_ready_policy(cfg: Settings | None = None) -> PollPolicy:
    cfg = cfg or settings
    return PollPolicy(
        interval=cfg.poll_interval_seconds,
        timeout=cfg.node_ready_timeout_seconds,
    )


# ── node environment variables ────────────────────────────────────────────

def expected_env_vars(status: ProxyStatus) -> dict[str, str]:
    return {
        "HTTP_PROXY": status.http_proxy,
        "HTTPS_PROXY": status.https_proxy,
        "NO_PROXY": status.no_proxy,
    }


async def get_system_env_vars(
    address: str,
    name: str,
    *,
    mgr: SSHSessionManager | None = None,
) -> dict[str, str]:
    """Read a system-level environment variable as seen by a new process."""
    _require(_ENV_VAR_NAME_RE, name, "environment variable name")
    _mgr = mgr or ssh_manager
    script = (
        f"Get-ChildItem -Path Env: | Where-Object -Property Name -eq '{name}' "
        "| Format-List"
    )
    result = await _mgr.run_powershell(address, script)
    return parse_env_vars(result.output)


async def get_service_env_vars(
    address: str,
    service: str,
    *,
    mgr: SSHSessionManager | None = None,
) -> dict[str, str]:
    """Read the environment a running Windows service process was started with."""
    _require(_SERVICE_NAME_RE, service, "service name")
    _mgr = mgr or ssh_manager
    script = (
        f"Get-Process {service} | ForEach-Object "
        "{ $_.StartInfo.EnvironmentVariables.GetEnumerator() | Format-List }"
    )
    result = await _mgr.run_powershell(address, script)
    return parse_env_vars(result.output)


def _compare(
    address: str, scope: str, expected: dict[str, str], actual: dict[str, str],
) -> list[EnvVarMismatch]:
    mismatches = []
    for name in WATCHED_ENV_VARS:
        want = expected.get(name, "")
        got = actual.get(name)
        if want != (got or ""):
            mismatches.append(
                EnvVarMismatch(
                    address=address, scope=scope, name=name, expected=want, actual=got,
                ),
            )
    return mismatches


async def verify_node_env_vars(
    address: str,
    expected: dict[str, str],
    *,
    services: Optional[Iterable[str]] = None,
    mgr: SSHSessionManager | None = None,
) -> list[EnvVarMismatch]:
    """Compare system and per-service proxy variables against *expected*.

    Returns every mismatch found; an empty list means the node is in sync.
    """
    svc_names = list(settings.required_services if services is None else services)
    system_env: dict[str, str] = {}
    for name in WATCHED_ENV_VARS:
        system_env.update(await get_system_env_vars(address, name, mgr=mgr))
    mismatches = _compare(address, SYSTEM_SCOPE, expected, system_env)

    for svc in svc_names:
        svc_env = await get_service_env_vars(address, svc, mgr=mgr)
        mismatches.extend(_compare(address, svc, expected, svc_env))

    for m in mismatches:
        log.warning(
            "proxy.env_mismatch",
            address=address, scope=m.scope, name=m.name,
            expected=m.expected, actual=m.actual,
        )
    log.info("proxy.env_verified", address=address, ok=not mismatches)
    return mismatches


async def env_vars_removed(
    address: str, *, mgr: SSHSessionManager | None = None,
) -> bool:
    """True when none of the watched variables is set at system level."""
    for name in WATCHED_ENV_VARS:
        env = await get_system_env_vars(address, name, mgr=mgr)
        if name in env:
            log.info("proxy.env_still_set", address=address, name=name)
            return False
    return True


async def count_node_certs(
    address: str, bundle: str, *, mgr: SSHSessionManager | None = None,
) -> list[int]:
    """For each certificate in *bundle*, how many copies the node's root store holds."""
    _mgr = mgr or ssh_manager
    counts = []
    for cert_pem in split_pem_bundle(bundle):
        result = await _mgr.run_powershell(address, cert_count_script(cert_pem))
        counts.append(parse_count(result.output))
    return counts


# ── trusted-CA ConfigMap convergence ──────────────────────────────────────

def trusted_ca_predicate(
    cluster: ClusterClient, cfg: Settings | None = None,
) -> Predicate:
    """Holds once the trusted-CA ConfigMap exists and carries the injection label."""
    cfg = cfg or settings
    namespace, name = cfg.operator_namespace, cfg.trusted_ca_configmap

    def check() -> bool:
        cm = cluster.get_config_map(namespace, name)
        labels = (cm.metadata.labels if cm.metadata else None) or {}
        if labels.get(cfg.injection_label) != "true":
            raise RetryableError(
                f"ConfigMap {namespace}/{name} lacks label {cfg.injection_label}=true",
            )
        return True

    return check


def trusted_ca_resource(cfg: Settings | None = None) -> str:
    cfg = cfg or settings
    return f"ConfigMap {cfg.operator_namespace}/{cfg.trusted_ca_configmap}"


async def wait_for_valid_trusted_ca(
    cluster: ClusterClient,
    policy: PollPolicy | None = None,
    cfg: Settings | None = None,
) -> PollResult:
    result = await asyncio.to_thread(
        poll_until,
        policy or resource_change_policy(cfg),
        trusted_ca_predicate(cluster, cfg),
    )
    log.info(
        "trusted_ca.wait_done",
        outcome=result.outcome.value, attempts=result.attempts, elapsed=result.elapsed,
    )
    return result


async def recreate_trusted_ca(
    cluster: ClusterClient,
    policy: PollPolicy | None = None,
    cfg: Settings | None = None,
) -> PollResult:
    """Delete the trusted-CA ConfigMap and wait for the operator to re-create it."""
    cfg = cfg or settings
    await asyncio.to_thread(
        cluster.delete_config_map, cfg.operator_namespace, cfg.trusted_ca_configmap,
    )
    return await wait_for_valid_trusted_ca(cluster, policy, cfg)


async def repair_trusted_ca(
    cluster: ClusterClient,
    policy: PollPolicy | None = None,
    cfg: Settings | None = None,
) -> PollResult:
    """Strip the ConfigMap's labels and wait for the operator to restore them."""
    cfg = cfg or settings
    patches = [
        JSONPatch(
            op=PatchOp.remove,
            path="/metadata/labels",
            value={cfg.injection_label: "true"},
        ),
    ]
    await asyncio.to_thread(
        cluster.patch_config_map,
        cfg.operator_namespace, cfg.trusted_ca_configmap, patches,
    )
    log.info("trusted_ca.labels_removed")
    return await wait_for_valid_trusted_ca(cluster, policy, cfg)


# ── nodes ─────────────────────────────────────────────────────────────────

async def wait_for_node_ready(
    cluster: ClusterClient,
    name: str,
    policy: PollPolicy | None = None,
) -> PollResult:
    def check() -> bool:
        return node_ready_and_schedulable(cluster.get_node(name))

    result = await asyncio.to_thread(
        poll_until, policy or node_ready_policy(), check, immediate=True,
    )
    log.info("node.ready_wait_done", node=name, outcome=result.outcome.value)
    return result


async def wait_for_nodes_ready(
    cluster: ClusterClient,
    names: Iterable[str],
    policy: PollPolicy | None = None,
) -> dict[str, PollResult]:
    """Wait for several nodes concurrently, one poll per node."""
    names = list(names)
    results = await asyncio.gather(
        *(wait_for_node_ready(cluster, n, policy) for n in names),
    )
    return dict(zip(names, results))


# ── cluster proxy configuration ───────────────────────────────────────────

async def configure_user_ca_bundle(
    cluster: ClusterClient, cfg: Settings | None = None,
) -> str:
    """Publish a freshly generated CA in the user bundle and point the proxy at it.

    Returns the generated certificate.
    """
    cfg = cfg or settings
    cert = generate_certificate()
    await asyncio.to_thread(
        cluster.create_config_map,
        cfg.user_ca_bundle_namespace,
        cfg.user_ca_bundle_name,
        {cfg.ca_bundle_key: cert},
    )
    await asyncio.to_thread(
        cluster.patch_proxy,
        [JSONPatch(op=PatchOp.replace, path="/spec/trustedCA/name", value=cfg.user_ca_bundle_name)],
    )
    log.info("proxy.user_ca_configured", configmap=cfg.user_ca_bundle_name)
    return cert


async def disable_cluster_proxy(cluster: ClusterClient) -> None:
    """Remove the HTTP(S) proxy settings from the cluster proxy spec."""
    await asyncio.to_thread(
        cluster.patch_proxy,
        [
            JSONPatch(op=PatchOp.remove, path="/spec/httpProxy"),
            JSONPatch(op=PatchOp.remove, path="/spec/httpsProxy"),
        ],
    )
    log.info("proxy.disabled")
