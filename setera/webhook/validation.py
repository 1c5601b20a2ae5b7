"""Admission checks for pods and tenants."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from setera.api import (
    SCHEME_GROUP_VERSION,
    GroupVersionKind,
    KubeNode,
    ObjectMeta,
    Tenant,
    TenantList,
    Zone,
)

logger = logging.getLogger(__name__)

VALIDATE_ENDPOINT = "/validate"
TLS_CERT_FILE = "tls.crt"
TLS_CERT_KEY = "tls.key"
TLS_DIR = "/run/secrets/tls"
SERVER_PORT = ":8443"

CONTENT_TYPE_HEADER = "content-type"
CONTENT_TYPE_JSON = "application/json"

TENANT_LABEL_KEY = "setera.com.v1.tenant"

TENANT_NOT_FOUND = "tenant not found"
TENANT_LABEL_NOT_FOUND = "tenant label not found"
POD_IS_VALID = "pod is valid"
TENANT_IS_VALID = "tenant is valid"
ZONES_ABOVE_NODES = "the number of tenant zones is greater than the number of nodes"

DEPLOYMENT_GVK = GroupVersionKind(group="apps", version="v1", kind="Deployment")
DAEMONSET_GVK = GroupVersionKind(group="apps", version="v1", kind="Daemonset")
POD_GVK = GroupVersionKind(group="", version="v1", kind="Pod")
TENANT_GVK = SCHEME_GROUP_VERSION.with_kind("Tenant")


def is_mapped(target: Any, mapping: Mapping) -> bool:
    """Whether target is one of the mapping's values."""
    return any(value == target for value in mapping.values())


def is_map_subset(m: Mapping, sub: Mapping) -> bool:
    """Whether every key of sub is in m with the same value."""
    if len(sub) > len(m):
        return False
    return all(key in m and m[key] == value for key, value in sub.items())


def check_tenant_label(labels: Mapping[str, str] | None, tenants: TenantList | Iterable[Tenant]) -> tuple[bool, str]:
    """Check that the labels name an existing tenant; return (allowed, reason)."""
    labels = labels or {}
    if TENANT_LABEL_KEY not in labels:
        return False, TENANT_LABEL_NOT_FOUND
    tenant_label = labels[TENANT_LABEL_KEY]
    items = tenants.items if isinstance(tenants, TenantList) else tenants
    if any(tenant_label == tenant.metadata.name for tenant in items):
        return True, TENANT_IS_VALID
    return False, TENANT_NOT_FOUND


def _format_map(mapping: Mapping[str, str]) -> str:
    return "map[" + " ".join(f"{k}:{v}" for k, v in sorted(mapping.items())) + "]"


def check_node_zones(nodes: Iterable[KubeNode], zones: Iterable[Zone]) -> tuple[bool, str]:
    """Check that every zone can be paired with a node; return (allowed, reason)."""
    nodes = list(nodes)
    zones = list(zones)
    if len(nodes) < len(zones):
        return False, ZONES_ABOVE_NODES

    pairs: dict[str, str] = {}
    for zone in zones:
        if not zone.requirements:
            pairs[zone.name] = "all"
            continue
        for node in nodes:
            name = node.metadata.name
            if is_mapped(name, pairs):
                continue
            if is_map_subset(node.metadata.labels, zone.requirements):
                pairs[zone.name] = name

    if len(pairs) != len(zones):
        if not zones:
            return False, "No zones are node compliant"
        return False, f"tenant is not valid, the following zones are node compliant {_format_map(pairs)}"
    return True, TENANT_IS_VALID


def create_admission_response(allowed: bool, message: str) -> dict:
    """Build an admission response carrying the verdict and its message."""
    status: dict[str, Any] = {"metadata": {}}
    if message:
        status["message"] = message
    return {"uid": "", "allowed": allowed, "status": status}


def new_admission_review(request_review: Mapping, response: Mapping) -> dict:
    """Wrap a response in an admission review answering the given request review."""
    request = request_review.get("request")
    if not isinstance(request, Mapping):
        raise ValueError("admission review has no request")
    review: dict[str, Any] = {}
    if request_review.get("kind"):
        review["kind"] = request_review["kind"]
    if request_review.get("apiVersion"):
        review["apiVersion"] = request_review["apiVersion"]
    review["response"] = {**response, "uid": request.get("uid", "")}
    return review


def _request_object(request: Any, what: str) -> Any:
    if not isinstance(request, Mapping):
        raise ValueError("admission request is missing")
    obj = request.get("object")
    if obj is None:
        raise ValueError(f"admission request carries no {what} object")
    return obj


def validate_pod(request: Mapping, setera_client: Any) -> dict:
    """Admit a pod only if its tenant label names an existing tenant."""
    try:
        raw = _request_object(request, "pod")
        if not isinstance(raw, Mapping):
            raise ValueError("pod: expected an object")
        meta = ObjectMeta.from_dict(raw.get("metadata"))
    except ValueError as exc:
        logger.info("Error in unmarshalling pod: %s", exc)
        raise

    try:
        tenants = setera_client.list_tenants("")
    except Exception as exc:
        logger.info("Error in fetching tenant list: %s", exc)
        raise

    allowed, reason = check_tenant_label(meta.labels, tenants)
    return create_admission_response(allowed, reason)


def validate_tenant(request: Mapping, kube_client: Any) -> dict:
    """Admit a tenant only if its zones can be placed on the cluster's nodes."""
    try:
        tenant = Tenant.from_dict(_request_object(request, "tenant"))
    except ValueError as exc:
        logger.info("Error in unmarshalling tenant: %s", exc)
        raise

    try:
        nodes = kube_client.list_nodes()
    except Exception as exc:
        logger.info("Error in fetching cluster node list: %s", exc)
        raise

    allowed, reason = check_node_zones(nodes, tenant.spec.zones)
    return create_admission_response(allowed, reason)