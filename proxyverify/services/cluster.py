"""Thin orchestration API client over the official kubernetes client.

Every call is blocking; async callers go through ``asyncio.to_thread``.
HTTP 404 is raised as ``NotFoundError`` (retryable while waiting for a
resource to be re-created), any other API failure as ``TransportError``.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from kubernetes import client, config
from kubernetes.config import ConfigException
from kubernetes.client.rest import ApiException

from proxyverify.config import Settings, settings
from proxyverify.errors import NotFoundError, TransportError
from proxyverify.models.patch import JSONPatch, patch_document
from proxyverify.models.proxy import ProxyStatus
from proxyverify.utils.logging import get_logger

log = get_logger(__name__)

HTTP_NOT_FOUND = 404

WINDOWS_NODE_SELECTOR = "kubernetes.io/os=windows"

_PROXY_GROUP = "config.openshift.io"
_PROXY_VERSION = "v1"
_PROXY_PLURAL = "proxies"
_PROXY_NAME = "cluster"


def _translate(exc: ApiException, what: str) -> Exception:
    if exc.status == HTTP_NOT_FOUND:
        return NotFoundError(f"{what} not found")
    return TransportError(f"API call for {what} failed ({exc.status}): {exc.reason}")


def node_address(node: client.V1Node) -> str:
    """Return the node's InternalIP, falling back to its ExternalIP."""
    addresses = (node.status.addresses if node.status else None) or []
    by_type = {a.type: a.address for a in addresses}
    for kind in ("InternalIP", "ExternalIP"):
        if by_type.get(kind):
            return by_type[kind]
    raise ValueError(f"node {node.metadata.name} has no usable address")


def node_ready_and_schedulable(node: client.V1Node) -> bool:
    if node.spec is not None and node.spec.unschedulable:
        return False
    conditions = (node.status.conditions if node.status else None) or []
    for cond in conditions:
        if cond.type == "Ready":
            return cond.status == "True"
    return False


class ClusterClient:
    """get/create/delete/patch over the resources the proxy checks touch."""

    def __init__(
        self,
        cfg: Settings | None = None,
        api_client: Optional[client.ApiClient] = None,
    ) -> None:
        self._cfg = cfg or settings
        self._api_client = api_client or self._load_api_client()
        self._core = client.CoreV1Api(self._api_client)
        self._custom = client.CustomObjectsApi(self._api_client)

    def _load_api_client(self) -> client.ApiClient:
        config_obj = client.Configuration()
        try:
            if self._cfg.kube_in_cluster:
                config.load_incluster_config(client_configuration=config_obj)
            else:
                config.load_kube_config(
                    config_file=self._cfg.kubeconfig_path or None,
                    context=self._cfg.kube_context or None,
                    client_configuration=config_obj,
                )
        except (ConfigException, OSError) as exc:
            log.error("k8s.config_failed", error=str(exc))
            raise TransportError(f"unable to load cluster configuration: {exc}") from exc
        if self._cfg.kube_in_cluster:
            log.info("k8s.config_loaded", mode="in_cluster")
        else:
            log.info("k8s.config_loaded", mode="kubeconfig", context=self._cfg.kube_context)
        return client.ApiClient(config_obj)

    # ── ConfigMaps ────────────────────────────────────────────────────

    def get_config_map(self, namespace: str, name: str) -> client.V1ConfigMap:
        try:
            return self._core.read_namespaced_config_map(name, namespace)
        except ApiException as exc:
            raise _translate(exc, f"ConfigMap {namespace}/{name}") from exc

    def create_config_map(
        self,
        namespace: str,
        name: str,
        data: dict[str, str],
        labels: Optional[dict[str, str]] = None,
    ) -> client.V1ConfigMap:
        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels),
            data=data,
        )
        try:
            return self._core.create_namespaced_config_map(namespace, body)
        except ApiException as exc:
            raise _translate(exc, f"ConfigMap {namespace}/{name}") from exc

    def delete_config_map(self, namespace: str, name: str) -> None:
        try:
            self._core.delete_namespaced_config_map(name, namespace)
        except ApiException as exc:
            raise _translate(exc, f"ConfigMap {namespace}/{name}") from exc
        log.info("k8s.configmap_deleted", namespace=namespace, name=name)

    def patch_config_map(
        self, namespace: str, name: str, patches: Iterable[JSONPatch],
    ) -> client.V1ConfigMap:
        body = patch_document(patches)
        try:
            # A list body is sent as application/json-patch+json.
            return self._core.patch_namespaced_config_map(name, namespace, body)
        except ApiException as exc:
            raise _translate(exc, f"ConfigMap {namespace}/{name}") from exc

    # ── Cluster proxy ─────────────────────────────────────────────────

    def get_proxy(self) -> dict[str, Any]:
        try:
            return self._custom.get_cluster_custom_object(
                _PROXY_GROUP, _PROXY_VERSION, _PROXY_PLURAL, _PROXY_NAME,
            )
        except ApiException as exc:
            raise _translate(exc, "Proxy cluster") from exc

    def get_proxy_status(self) -> ProxyStatus:
        status = self.get_proxy().get("status") or {}
        return ProxyStatus(
            http_proxy=status.get("httpProxy", ""),
            https_proxy=status.get("httpsProxy", ""),
            no_proxy=status.get("noProxy", ""),
        )

    def patch_proxy(self, patches: Iterable[JSONPatch]) -> dict[str, Any]:
        body = patch_document(patches)
        try:
            return self._custom.patch_cluster_custom_object(
                _PROXY_GROUP, _PROXY_VERSION, _PROXY_PLURAL, _PROXY_NAME, body,
            )
        except ApiException as exc:
            raise _translate(exc, "Proxy cluster") from exc

    # ── Nodes ─────────────────────────────────────────────────────────

    def list_windows_nodes(self) -> list[client.V1Node]:
        try:
            return self._core.list_node(label_selector=WINDOWS_NODE_SELECTOR).items
        except ApiException as exc:
            raise _translate(exc, "Windows nodes") from exc

    def get_node(self, name: str) -> client.V1Node:
        try:
            return self._core.read_node(name)
        except ApiException as exc:
            raise _translate(exc, f"Node {name}") from exc

    def close(self) -> None:
        self._api_client.close()


_cluster_client: Optional[ClusterClient] = None


def get_cluster_client() -> ClusterClient:
    """Lazily built shared client (kubeconfig is only read on first use)."""
    global _cluster_client
    if _cluster_client is None:
        _cluster_client = ClusterClient()
    return _cluster_client
