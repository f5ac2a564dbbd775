"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is driven by environment variables."""

    # Node SSH access
    node_ssh_username: str = "Administrator"
    node_ssh_password: str = ""
    node_ssh_key_path: str = ""
    node_ssh_port: int = 22
    node_ssh_timeout_seconds: int = 60

    # Cluster access
    kubeconfig_path: str = ""
    kube_context: str = ""
    kube_in_cluster: bool = False

    # Operator-managed resources
    operator_namespace: str = "openshift-windows-machine-config-operator"
    trusted_ca_configmap: str = "trusted-ca"
    injection_label: str = "config.openshift.io/inject-trusted-cabundle"
    ca_bundle_key: str = "ca-bundle.crt"
    user_ca_bundle_name: str = "user-ca-bundle"
    user_ca_bundle_namespace: str = "openshift-config"

    # Windows services expected to inherit the proxy environment
    required_services: list[str] = Field(
        default_factory=lambda: [
            "containerd",
            "kubelet",
            "kube-proxy",
            "hybrid-overlay-node",
            "windows_exporter",
        ],
    )

    # Polling
    poll_interval_seconds: float = 1.0
    resource_change_timeout_seconds: float = 120.0
    node_ready_timeout_seconds: float = 600.0

    # API key
    proxyverify_api_key: str = ""

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton – import this from anywhere
settings = Settings()
