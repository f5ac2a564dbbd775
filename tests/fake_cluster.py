"""In-memory stand-in for ClusterClient with a toy reconciling operator."""

from __future__ import annotations

import copy
from typing import Iterable

from kubernetes import client

from proxyverify.errors import NotFoundError, TransportError
from proxyverify.models.patch import JSONPatch, patch_document
from proxyverify.models.proxy import ProxyStatus

from tests.mock_ssh import HTTP_PROXY, HTTPS_PROXY, NO_PROXY

OPERATOR_NS = "openshift-windows-machine-config-operator"
TRUSTED_CA = "trusted-ca"
INJECTION_LABEL = "config.openshift.io/inject-trusted-cabundle"


def make_node(name: str, *, ready: bool = True, unschedulable: bool = False) -> client.V1Node:
    return client.V1Node(
        metadata=client.V1ObjectMeta(name=name),
        spec=client.V1NodeSpec(unschedulable=unschedulable),
        status=client.V1NodeStatus(
            addresses=[
                client.V1NodeAddress(type="Hostname", address=name),
                client.V1NodeAddress(type="InternalIP", address=f"10.0.0.{len(name)}"),
            ],
            conditions=[
                client.V1NodeCondition(type="Ready", status="True" if ready else "False"),
            ],
        ),
    )


class FakeCluster:
    """Records calls; the "operator" repairs the trusted-CA ConfigMap.

    After the ConfigMap is deleted or loses its label, the operator needs
    ``reconcile_after`` reads before it is valid again.
    """

    def __init__(self, reconcile_after: int = 2) -> None:
        self.reconcile_after = reconcile_after
        self.operator_running = True
        self.config_maps: dict[tuple[str, str], client.V1ConfigMap] = {}
        self.nodes: dict[str, client.V1Node] = {}
        self.proxy_patches: list[list[dict]] = []
        self.configmap_patches: list[list[dict]] = []
        self.proxy_status = ProxyStatus(
            http_proxy=HTTP_PROXY, https_proxy=HTTPS_PROXY, no_proxy=NO_PROXY,
        )
        self.fail_reads = False
        self._pending = 0
        self._put_trusted_ca()

    def _put_trusted_ca(self, labels: dict[str, str] | None = None) -> None:
        self.config_maps[(OPERATOR_NS, TRUSTED_CA)] = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(
                name=TRUSTED_CA,
                namespace=OPERATOR_NS,
                labels={INJECTION_LABEL: "true"} if labels is None else labels,
            ),
            data={},
        )

    def _reconcile(self) -> None:
        if not self.operator_running or self._pending <= 0:
            return
        self._pending -= 1
        if self._pending == 0:
            self._put_trusted_ca()

    # ── ConfigMaps ────────────────────────────────────────────────────

    def get_config_map(self, namespace: str, name: str) -> client.V1ConfigMap:
        if self.fail_reads:
            raise TransportError("API call failed (500): Internal Server Error")
        self._reconcile()
        try:
            return copy.deepcopy(self.config_maps[(namespace, name)])
        except KeyError:
            raise NotFoundError(f"ConfigMap {namespace}/{name} not found") from None

    def create_config_map(self, namespace, name, data, labels=None):
        cm = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels),
            data=data,
        )
        self.config_maps[(namespace, name)] = cm
        return cm

    def delete_config_map(self, namespace: str, name: str) -> None:
        if self.config_maps.pop((namespace, name), None) is None:
            raise NotFoundError(f"ConfigMap {namespace}/{name} not found")
        if (namespace, name) == (OPERATOR_NS, TRUSTED_CA):
            self._pending = self.reconcile_after

    def patch_config_map(self, namespace: str, name: str, patches: Iterable[JSONPatch]):
        doc = patch_document(patches)
        self.configmap_patches.append(doc)
        cm = self.config_maps.get((namespace, name))
        if cm is None:
            raise NotFoundError(f"ConfigMap {namespace}/{name} not found")
        for op in doc:
            if op["op"] == "remove" and op["path"] == "/metadata/labels":
                cm.metadata.labels = None
        if (namespace, name) == (OPERATOR_NS, TRUSTED_CA):
            self._pending = self.reconcile_after
        return cm

    # ── Proxy ─────────────────────────────────────────────────────────

    def get_proxy_status(self) -> ProxyStatus:
        return self.proxy_status

    def patch_proxy(self, patches: Iterable[JSONPatch]) -> dict:
        self.proxy_patches.append(patch_document(patches))
        return {}

    # ── Nodes ─────────────────────────────────────────────────────────

    def list_windows_nodes(self) -> list[client.V1Node]:
        return list(self.nodes.values())

    def get_node(self, name: str) -> client.V1Node:
        try:
            return self.nodes[name]
        except KeyError:
            raise NotFoundError(f"Node {name} not found") from None
