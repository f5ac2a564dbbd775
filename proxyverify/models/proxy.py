"""Cluster proxy and environment variable check models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class ProxyStatus(BaseModel):
    """Observed ``status`` of the cluster-wide Proxy object."""

    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.http_proxy or self.https_proxy)


class EnvVarMismatch(BaseModel):
    """One environment variable whose value differs from the cluster proxy."""

    address: str
    scope: str  # "system" or the Windows service name
    name: str
    expected: str
    actual: Optional[str] = None
