"""Resource types of the setera.com/v1 API group and the core objects it reads."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

GROUP_NAME = "setera.com"
GROUP_VERSION = "v1"
API_VERSION = f"{GROUP_NAME}/{GROUP_VERSION}"
KNOWN_KINDS = ("Tenant", "TenantList", "NodeStore", "NodeStoreList")


@dataclass(frozen=True)
class GroupVersionKind:
    group: str = ""
    version: str = ""
    kind: str = ""


@dataclass(frozen=True)
class GroupResource:
    group: str = ""
    resource: str = ""


@dataclass(frozen=True)
class GroupVersion:
    group: str = ""
    version: str = ""

    def with_kind(self, kind: str) -> GroupVersionKind:
        return GroupVersionKind(self.group, self.version, kind)

    def with_resource(self, resource: str) -> GroupResource:
        return GroupResource(self.group, resource)


SCHEME_GROUP_VERSION = GroupVersion(GROUP_NAME, GROUP_VERSION)


def resource(resource: str) -> GroupResource:
    """Qualify a resource name with the setera.com group."""
    return SCHEME_GROUP_VERSION.with_resource(resource)


def _mapping(data: Any, what: str) -> Mapping:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{what}: expected an object, got {type(data).__name__}")
    return data


def _get(data: Mapping, key: str, kind: type, what: str) -> Any:
    value = data.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ValueError(f"{what}.{key}: expected {kind.__name__}, got {type(value).__name__}")
    return value


def _str_list(data: Mapping, key: str, what: str) -> list[str]:
    values = _get(data, key, list, what)
    if not all(isinstance(v, str) for v in values):
        raise ValueError(f"{what}.{key}: expected strings only")
    return list(values)


def _str_map(data: Mapping, key: str, what: str) -> dict[str, str]:
    value = _mapping(data.get(key), f"{what}.{key}")
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
        raise ValueError(f"{what}.{key}: expected a map of strings")
    return dict(value)


def _non_empty(out: dict) -> dict:
    return {k: v for k, v in out.items() if v}


def _type_meta(data: Mapping, what: str) -> dict:
    return {"api_version": _get(data, "apiVersion", str, what), "kind": _get(data, "kind", str, what)}


def _type_meta_dict(obj: Any) -> dict:
    return _non_empty({"kind": obj.kind, "apiVersion": obj.api_version})


@dataclass
class ObjectMeta:
    """Object metadata shared by every stored resource."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    resource_version: str = ""
    generation: int = 0
    creation_timestamp: str = ""
    deletion_timestamp: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)

    _KEYS = (
        ("name", "name", str),
        ("namespace", "namespace", str),
        ("uid", "uid", str),
        ("resource_version", "resourceVersion", str),
        ("generation", "generation", int),
        ("creation_timestamp", "creationTimestamp", str),
        ("deletion_timestamp", "deletionTimestamp", str),
    )

    @classmethod
    def from_dict(cls, data: Any) -> ObjectMeta:
        data = _mapping(data, "metadata")
        return cls(
            **{attr: _get(data, key, kind, "metadata") for attr, key, kind in cls._KEYS},
            labels=_str_map(data, "labels", "metadata"),
            annotations=_str_map(data, "annotations", "metadata"),
            finalizers=_str_list(data, "finalizers", "metadata"),
        )

    def to_dict(self) -> dict:
        out = {key: getattr(self, attr) for attr, key, _ in self._KEYS}
        out.update(labels=dict(self.labels), annotations=dict(self.annotations), finalizers=list(self.finalizers))
        return _non_empty(out)


@dataclass
class Zone:
    """A placement zone and the node labels it requires."""

    name: str = ""
    requirements: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Zone:
        data = _mapping(data, "zone")
        return cls(_get(data, "name", str, "zone"), _str_map(data, "selectors", "zone"))

    def to_dict(self) -> dict:
        return _non_empty({"name": self.name, "selectors": dict(self.requirements)})


@dataclass
class TenantNode:
    """A node on which a tenant is deployed."""

    name: str = ""
    vtep_mac: str = ""
    vtep_ip: str = ""
    node_ip: str = ""
    prefix: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> TenantNode:
        data = _mapping(data, "node")
        return cls(
            name=_get(data, "name", str, "node"),
            vtep_mac=_get(data, "vtepMac", str, "node"),
            vtep_ip=_get(data, "vtepIp", str, "node"),
            node_ip=_get(data, "nodeIP", str, "node"),
            prefix=_get(data, "prefix", int, "node"),
        )

    def to_dict(self) -> dict:
        optional = _non_empty({"vtepMac": self.vtep_mac, "vtepIp": self.vtep_ip, "nodeIP": self.node_ip})
        return {"name": self.name, **optional, "prefix": self.prefix}


@dataclass
class TenantSpec:
    """Desired state of a tenant."""

    name: str = ""
    vni: int = 0
    zones: list[Zone] = field(default_factory=list)
    nodes: list[TenantNode] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> TenantSpec:
        data = _mapping(data, "spec")
        return cls(
            name=_get(data, "name", str, "spec"),
            vni=_get(data, "vni", int, "spec"),
            zones=[Zone.from_dict(z) for z in _get(data, "zones", list, "spec")],
            nodes=[TenantNode.from_dict(n) for n in _get(data, "nodes", list, "spec")],
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "vni": self.vni,
            "zones": [z.to_dict() for z in self.zones],
            "nodes": [n.to_dict() for n in self.nodes],
        }


@dataclass
class Tenant:
    """A Tenant resource."""

    api_version: str = ""
    kind: str = ""
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: TenantSpec = field(default_factory=TenantSpec)

    @classmethod
    def from_dict(cls, data: Any) -> Tenant:
        data = _mapping(data, "tenant")
        return cls(
            **_type_meta(data, "tenant"),
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=TenantSpec.from_dict(data.get("spec")),
        )

    def to_dict(self) -> dict:
        return {**_type_meta_dict(self), "metadata": self.metadata.to_dict(), "spec": self.spec.to_dict()}

    def deep_copy(self) -> Tenant:
        return copy.deepcopy(self)


def _list_from_dict(cls: type, item: type, data: Any, what: str) -> Any:
    data = _mapping(data, what)
    meta = _mapping(data.get("metadata"), f"{what}.metadata")
    return cls(
        **_type_meta(data, what),
        resource_version=_get(meta, "resourceVersion", str, what),
        items=[item.from_dict(i) for i in _get(data, "items", list, what)],
    )


def _list_to_dict(obj: Any) -> dict:
    out = {**_type_meta_dict(obj), "metadata": _non_empty({"resourceVersion": obj.resource_version})}
    if obj.items:
        out["items"] = [i.to_dict() for i in obj.items]
    return out


@dataclass
class TenantList:
    """A list of Tenant resources."""

    api_version: str = ""
    kind: str = ""
    resource_version: str = ""
    items: list[Tenant] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> TenantList:
        return _list_from_dict(cls, Tenant, data, "tenant list")

    def to_dict(self) -> dict:
        return _list_to_dict(self)


@dataclass
class PodInfo:
    """A pod placed in a tenant network."""

    name: str = ""
    ip: str = ""
    net_ns: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> PodInfo:
        data = _mapping(data, "pod")
        return cls(*(_get(data, key, str, "pod") for key in ("name", "ip", "mac")))

    def to_dict(self) -> dict:
        return {"name": self.name, "ip": self.ip, "mac": self.net_ns}


@dataclass
class TenantInfra:
    """The network infrastructure of one tenant on one node."""

    name: str = ""
    vni: int = 0
    vtep_ip: str = ""
    vtep_mac: str = ""
    bridge_ip: str = ""
    bridge_mac: str = ""
    pods: list[PodInfo] = field(default_factory=list)
    tenant_cidr: str = ""

    _STRINGS = ("name", "vtep_ip", "vtep_mac", "bridge_ip", "bridge_mac", "tenant_cidr")

    @classmethod
    def from_dict(cls, data: Any) -> TenantInfra:
        data = _mapping(data, "tenant infra")
        return cls(
            **{key: _get(data, key, str, "tenant infra") for key in cls._STRINGS},
            vni=_get(data, "vni", int, "tenant infra"),
            pods=[PodInfo.from_dict(p) for p in _get(data, "pods", list, "tenant infra")],
        )

    def to_dict(self) -> dict:
        out = {key: getattr(self, key) for key in self._STRINGS}
        out.update(vni=self.vni, pods=[p.to_dict() for p in self.pods])
        return out


@dataclass
class NodeStoreSpec:
    """What one node holds: its selectors and the tenants deployed on it."""

    name: str = ""
    selectors: dict[str, str] = field(default_factory=dict)
    tenants: dict[str, TenantInfra] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> NodeStoreSpec:
        data = _mapping(data, "spec")
        tenants = _mapping(data.get("tenants"), "spec.tenants")
        return cls(
            name=_get(data, "name", str, "spec"),
            selectors=_str_map(data, "selectors", "spec"),
            tenants={str(k): TenantInfra.from_dict(v) for k, v in tenants.items()},
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "selectors": dict(self.selectors),
            "tenants": {k: v.to_dict() for k, v in self.tenants.items()},
        }


@dataclass
class NodeStore:
    """A NodeStore resource."""

    api_version: str = ""
    kind: str = ""
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: NodeStoreSpec = field(default_factory=NodeStoreSpec)

    @classmethod
    def from_dict(cls, data: Any) -> NodeStore:
        data = _mapping(data, "nodestore")
        return cls(
            **_type_meta(data, "nodestore"),
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=NodeStoreSpec.from_dict(data.get("spec")),
        )

    def to_dict(self) -> dict:
        return {**_type_meta_dict(self), "metadata": self.metadata.to_dict(), "spec": self.spec.to_dict()}


@dataclass
class NodeStoreList:
    """A list of NodeStore resources."""

    api_version: str = ""
    kind: str = ""
    resource_version: str = ""
    items: list[NodeStore] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> NodeStoreList:
        return _list_from_dict(cls, NodeStore, data, "nodestore list")

    def to_dict(self) -> dict:
        return _list_to_dict(self)


@dataclass
class IPUsage:
    """Used addresses out of a pool of a given size."""

    used_ips: list[str] = field(default_factory=list)
    total_ips: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> IPUsage:
        data = _mapping(data, "ip usage")
        return cls(_str_list(data, "used_ips", "ip usage"), _get(data, "total_ips", int, "ip usage"))

    def to_dict(self) -> dict:
        return {"used_ips": list(self.used_ips), "total_ips": self.total_ips}


@dataclass
class ConfMap:
    """Network configuration: the pod CIDR and backend settings."""

    pod_cidr: str = ""
    backend: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> ConfMap:
        data = _mapping(data, "config")
        return cls(_get(data, "PodCIDR", str, "config"), _str_map(data, "Backend", "config"))

    def to_dict(self) -> dict:
        return {"PodCIDR": self.pod_cidr, "Backend": dict(self.backend)}


@dataclass
class KubeNode:
    """A cluster node, as far as its metadata goes."""

    api_version: str = ""
    kind: str = ""
    metadata: ObjectMeta = field(default_factory=ObjectMeta)

    @classmethod
    def from_dict(cls, data: Any) -> KubeNode:
        data = _mapping(data, "node")
        return cls(**_type_meta(data, "node"), metadata=ObjectMeta.from_dict(data.get("metadata")))

    def to_dict(self) -> dict:
        return {**_type_meta_dict(self), "metadata": self.metadata.to_dict()}