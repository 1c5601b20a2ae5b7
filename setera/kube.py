"""Cluster connection settings and REST clients for nodes and tenants."""

from __future__ import annotations

import argparse
import atexit
import base64
import binascii
import contextlib
import logging
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests
import yaml

from setera.api import API_VERSION, GROUP_NAME, GROUP_VERSION, KubeNode, Tenant, TenantList

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
DEFAULT_TIMEOUT = 30.0


class KubeError(Exception):
    """Raised when the cluster cannot be configured or reached, or a request fails."""


@dataclass
class KubeConfig:
    """Where the API server is and how to authenticate to it."""

    host: str
    bearer_token: str = ""
    ca_file: str = ""
    cert_file: str = ""
    key_file: str = ""
    insecure: bool = False


def _named(doc: Mapping, section: str, name: str, what: str) -> Mapping:
    for entry in doc.get(section) or []:
        if isinstance(entry, Mapping) and entry.get("name") == name:
            inner = entry.get(what) or {}
            if not isinstance(inner, Mapping):
                raise KubeError(f"kubeconfig: {what} {name!r} must be a mapping")
            return inner
    raise KubeError(f"kubeconfig: {what} {name!r} not found")


def _file(section: Mapping, key: str, base: Path) -> str:
    """Path of a file the kubeconfig names, writing inline base64 data out if need be."""
    data = section.get(f"{key}-data")
    if not data:
        path = section.get(key)
        return str(base / str(path)) if path else ""
    try:
        content = base64.b64decode(str(data), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KubeError(f"kubeconfig: invalid base64 data: {exc}") from exc
    with tempfile.NamedTemporaryFile("wb", suffix=f".{key}", delete=False) as handle:
        handle.write(content)

    def remove() -> None:
        with contextlib.suppress(OSError):
            os.unlink(handle.name)

    atexit.register(remove)
    return handle.name


def load_kube_config(path: str | os.PathLike) -> KubeConfig:
    """Read the current context of a kubeconfig file."""
    try:
        doc = yaml.safe_load(Path(path).read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise KubeError(f"cannot load kubeconfig {path}: {exc}") from exc
    if not isinstance(doc, Mapping):
        raise KubeError(f"kubeconfig {path} is not a mapping")

    base = Path(path).resolve().parent
    context_name = doc.get("current-context")
    if not context_name:
        raise KubeError("kubeconfig has no current context")
    context = _named(doc, "contexts", context_name, "context")
    cluster = _named(doc, "clusters", context.get("cluster", ""), "cluster")
    user = _named(doc, "users", context["user"], "user") if context.get("user") else {}
    if not cluster.get("server"):
        raise KubeError("kubeconfig: cluster has no server")
    return KubeConfig(
        host=str(cluster["server"]).rstrip("/"),
        bearer_token=str(user.get("token") or ""),
        ca_file=_file(cluster, "certificate-authority", base),
        cert_file=_file(user, "client-certificate", base),
        key_file=_file(user, "client-key", base),
        insecure=bool(cluster.get("insecure-skip-tls-verify", False)),
    )


def in_cluster_config() -> KubeConfig:
    """Configuration from the service account mounted into a pod."""
    host = os.environ.get("KUBERNETES_SERVICE_HOST", "")
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "")
    if not host or not port:
        raise KubeError(
            "unable to load in-cluster configuration, "
            "KUBERNETES_SERVICE_HOST and KUBERNETES_SERVICE_PORT must be defined"
        )
    try:
        token = (SERVICE_ACCOUNT_DIR / "token").read_text().strip()
    except OSError as exc:
        raise KubeError(f"cannot read service account token: {exc}") from exc
    if ":" in host:
        host = f"[{host}]"
    ca = SERVICE_ACCOUNT_DIR / "ca.crt"
    return KubeConfig(host=f"https://{host}:{port}", bearer_token=token, ca_file=str(ca) if ca.exists() else "")


def init_kube_config(argv: list[str] | None = None) -> KubeConfig:
    """Build a configuration from --kubeconfig, falling back to the in-cluster one."""
    parser = argparse.ArgumentParser()
    home = os.path.expanduser("~")
    if home != "~":
        parser.add_argument("--kubeconfig", default=os.path.join(home, ".kube", "config"),
                            help="(optional) absolute path to the kubeconfig file")
    else:
        parser.add_argument("--kubeconfig", default="", help="absolute path to the kubeconfig file")
    args = parser.parse_args(argv)

    try:
        return load_kube_config(args.kubeconfig)
    except KubeError as exc:
        logger.warning("Error in building kubeconfig from flags: %s, using in cluster config", exc)
    try:
        return in_cluster_config()
    except KubeError as exc:
        logger.warning("Error in building in cluster config: %s", exc)
        raise


class _RestClient:
    def __init__(self, config: KubeConfig) -> None:
        if not config.host:
            raise KubeError("host must be set in the configuration")
        self.config = config
        self.session = requests.Session()
        self.session.headers["Accept"] = "application/json"
        if config.bearer_token:
            self.session.headers["Authorization"] = f"Bearer {config.bearer_token}"
        if config.insecure:
            self.session.verify = False
        elif config.ca_file:
            self.session.verify = config.ca_file
        if config.cert_file and config.key_file:
            self.session.cert = (config.cert_file, config.key_file)

    def _request(self, method: str, path: str, body: Any = None) -> Any:
        url = self.config.host.rstrip("/") + path
        try:
            response = self.session.request(method, url, json=body, timeout=DEFAULT_TIMEOUT)
            payload = response.json()
        except requests.RequestException as exc:
            raise KubeError(f"{method} {url}: {exc}") from exc
        except ValueError as exc:
            raise KubeError(f"{method} {url}: {response.status_code} invalid JSON: {response.text}") from exc
        if response.status_code >= 400:
            message = payload.get("message") if isinstance(payload, Mapping) else None
            raise KubeError(f"{method} {url}: {response.status_code} {message or response.text}")
        return payload

    @staticmethod
    def _decode(kind: Any, payload: Any, what: str) -> Any:
        try:
            return kind(payload)
        except ValueError as exc:
            raise KubeError(f"invalid {what}: {exc}") from exc


class KubeClient(_RestClient):
    """Client for core cluster resources."""

    def __init__(self, config: KubeConfig) -> None:
        super().__init__(config)

    def list_nodes(self) -> list[KubeNode]:
        payload = self._request("GET", "/api/v1/nodes")
        items = payload.get("items") if isinstance(payload, Mapping) else None
        return self._decode(lambda data: [KubeNode.from_dict(i) for i in data or []], items, "node list")


class SeteraClient(_RestClient):
    """Client for the setera.com resources."""

    def __init__(self, config: KubeConfig) -> None:
        super().__init__(config)

    @staticmethod
    def _tenants_path(namespace: str) -> str:
        prefix = f"/apis/{GROUP_NAME}/{GROUP_VERSION}"
        return f"{prefix}/namespaces/{namespace}/tenants" if namespace else f"{prefix}/tenants"

    def list_tenants(self, namespace: str = "") -> TenantList:
        return self._decode(TenantList.from_dict, self._request("GET", self._tenants_path(namespace)), "tenant list")

    def update_tenant(self, tenant: Tenant) -> Tenant:
        if not tenant.metadata.name:
            raise KubeError("tenant has no name")
        body = {"apiVersion": API_VERSION, "kind": "Tenant", **tenant.to_dict()}
        path = f"{self._tenants_path(tenant.metadata.namespace)}/{tenant.metadata.name}"
        return self._decode(Tenant.from_dict, self._request("PUT", path, body), "tenant")


def new_kube_client(config: KubeConfig) -> KubeClient:
    """Create a client for core cluster resources."""
    try:
        return KubeClient(config)
    except KubeError as exc:
        logger.error("Error in building kubernetes clientset: %s", exc)
        raise


def new_setera_client(config: KubeConfig) -> SeteraClient:
    """Create a client for setera.com resources."""
    try:
        return SeteraClient(config)
    except KubeError as exc:
        logger.error("Error in building setera clientset: %s", exc)
        raise