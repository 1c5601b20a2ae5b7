import pytest

from setera.api import (
    GROUP_NAME,
    GROUP_VERSION,
    SCHEME_GROUP_VERSION,
    ConfMap,
    GroupResource,
    GroupVersionKind,
    IPUsage,
    KubeNode,
    NodeStore,
    NodeStoreList,
    PodInfo,
    Tenant,
    TenantList,
    Zone,
    resource,
)


def _tenant_doc(name="blue"):
    return {
        "kind": "Tenant",
        "apiVersion": "setera.com/v1",
        "metadata": {"name": name, "resourceVersion": "7", "finalizers": ["finalizer.setera.com"]},
        "spec": {
            "name": name,
            "vni": 100,
            "zones": [{"name": "z1", "selectors": {"disk": "ssd"}}, {"name": "z2"}],
            "nodes": [
                {"name": "n1", "vtepMac": "00:00:5e:00:53:01", "vtepIp": "10.0.0.1", "nodeIP": "192.0.2.1", "prefix": 24},
                {"name": "n2", "prefix": 0},
            ],
        },
    }


def test_scheme_group_version():
    assert (GROUP_NAME, GROUP_VERSION) == ("setera.com", "v1")
    gvk = SCHEME_GROUP_VERSION.with_kind("NodeStore")
    assert (gvk.group, gvk.version, gvk.kind) == ("setera.com", "v1", "NodeStore")
    assert resource("nodestores").group == "setera.com"


def test_with_kind():
    assert SCHEME_GROUP_VERSION.with_kind("Tenant") == GroupVersionKind("setera.com", "v1", "Tenant")


def test_resource():
    assert resource("tenants") == GroupResource(group="setera.com", resource="tenants")


def test_tenant_round_trip():
    doc = _tenant_doc()
    assert Tenant.from_dict(doc).to_dict() == doc


def test_tenant_field_mapping():
    tenant = Tenant.from_dict(_tenant_doc())
    assert tenant.metadata.name == "blue"
    assert tenant.spec.zones[0].requirements == {"disk": "ssd"}
    assert tenant.spec.nodes[0].node_ip == "192.0.2.1"
    assert tenant.spec.nodes[1].vtep_mac == ""


def test_tenant_defaults_from_empty():
    tenant = Tenant.from_dict({})
    assert tenant.spec.vni == 0
    assert tenant.spec.zones == []
    assert tenant.metadata.finalizers == []


@pytest.mark.parametrize(
    "doc",
    [
        [],
        {"spec": {"vni": "100"}},
        {"spec": {"vni": True}},
        {"metadata": {"labels": {"a": 1}}},
        {"spec": {"zones": {"name": "z"}}},
    ],
)
def test_tenant_rejects_bad_types(doc):
    with pytest.raises(ValueError):
        Tenant.from_dict(doc)


def test_deep_copy_is_independent():
    tenant = Tenant.from_dict(_tenant_doc())
    clone = tenant.deep_copy()
    assert clone == tenant
    clone.metadata.finalizers.append("other")
    clone.spec.zones[0].requirements["disk"] = "hdd"
    assert tenant.metadata.finalizers == ["finalizer.setera.com"]
    assert tenant.spec.zones[0].requirements == {"disk": "ssd"}


def test_zone_omits_empty_fields():
    assert Zone().to_dict() == {}


def test_tenant_list_round_trip():
    doc = {"kind": "TenantList", "metadata": {"resourceVersion": "3"}, "items": [_tenant_doc("a"), _tenant_doc("b")]}
    parsed = TenantList.from_dict(doc)
    assert [t.metadata.name for t in parsed.items] == ["a", "b"]
    assert parsed.to_dict() == doc


def test_nodestore_round_trip():
    doc = {
        "kind": "NodeStore",
        "metadata": {"name": "n1"},
        "spec": {
            "name": "n1",
            "selectors": {"zone": "east"},
            "tenants": {
                "blue": {
                    "name": "blue",
                    "vni": 5,
                    "vtep_ip": "10.1.0.1",
                    "vtep_mac": "00:00:5e:00:53:02",
                    "bridge_ip": "10.1.0.254",
                    "bridge_mac": "00:00:5e:00:53:03",
                    "pods": [{"name": "p1", "ip": "10.1.0.5", "mac": "ns-1"}],
                    "tenant_cidr": "10.1.0.0/24",
                }
            },
        },
    }
    store = NodeStore.from_dict(doc)
    assert store.spec.tenants["blue"].pods[0].net_ns == "ns-1"
    assert store.to_dict() == doc
    listing = NodeStoreList.from_dict({"items": [doc]})
    assert NodeStoreList.from_dict(listing.to_dict()) == listing


def test_pod_info_round_trip():
    pod = PodInfo(name="p", ip="10.0.0.9", net_ns="ns")
    assert PodInfo.from_dict(pod.to_dict()) == pod


def test_ip_usage_and_conf_map_round_trip():
    usage = IPUsage(used_ips=["10.0.0.1"], total_ips=254)
    assert IPUsage.from_dict(usage.to_dict()) == usage
    conf = ConfMap(pod_cidr="10.244.0.0/16", backend={"Type": "vxlan"})
    assert ConfMap.from_dict(conf.to_dict()) == conf
    assert conf.to_dict()["PodCIDR"] == "10.244.0.0/16"


def test_kube_node_labels():
    node = KubeNode.from_dict({"metadata": {"name": "worker", "labels": {"disk": "ssd"}}, "status": {}})
    assert node.metadata.name == "worker"
    assert node.metadata.labels == {"disk": "ssd"}
    assert KubeNode.from_dict(node.to_dict()) == node