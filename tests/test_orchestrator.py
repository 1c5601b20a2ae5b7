import threading
import time

import pytest

from setera.api import KubeNode, NodeStore, NodeStoreSpec, ObjectMeta, Tenant, TenantNode, TenantSpec
from setera.orchestrator import (
    TENANT_FINALIZER,
    Event,
    Orchestrator,
    meta_namespace_key,
    parse_queued_key,
    split_meta_namespace_key,
)
from setera.workqueue import ExponentialRateLimiter, RateLimitingQueue


class FakeTenantLister:
    def __init__(self, tenants):
        self.tenants = {(t.metadata.namespace, t.metadata.name): t for t in tenants}

    def get(self, namespace, name):
        return self.tenants[(namespace, name)]


class FakeLister:
    def __init__(self, items, error=None):
        self.items = items
        self.error = error

    def list(self):
        if self.error:
            raise self.error
        return list(self.items)


class FakeClient:
    def __init__(self, error=None):
        self.updated = []
        self.error = error

    def update_tenant(self, tenant):
        if self.error:
            raise self.error
        self.updated.append(tenant)
        return tenant


def tenant(name="tenant-a", rv="1", nodes=0, finalizers=None):
    return Tenant(
        metadata=ObjectMeta(name=name, resource_version=rv, finalizers=list(finalizers or [])),
        spec=TenantSpec(name=name, nodes=[TenantNode(name=f"n{i}") for i in range(nodes)]),
    )


def node(name):
    return KubeNode(metadata=ObjectMeta(name=name))


def store(name):
    return NodeStore(spec=NodeStoreSpec(name=name))


def make(tenants=(), nodes=("n1",), stores=("n1",), client=None, node_error=None):
    queue = RateLimitingQueue(ExponentialRateLimiter(base_delay=0.001, max_delay=0.01))
    return Orchestrator(
        client or FakeClient(),
        FakeTenantLister(tenants),
        FakeLister([store(s) for s in stores]),
        FakeLister([node(n) for n in nodes], error=node_error),
        queue,
    )


def test_parse_queued_key():
    assert parse_queued_key("Add:ns/tenant-a") == (Event.ADD, "ns/tenant-a")
    assert parse_queued_key("Delete:tenant-a") == (Event.DELETE, "tenant-a")
    assert parse_queued_key("tenant-a") == (Event.UNKNOWN, "tenant-a")
    assert parse_queued_key("Bogus:tenant-a") == (Event.UNKNOWN, "tenant-a")


def test_meta_namespace_key():
    assert meta_namespace_key(tenant()) == "tenant-a"
    namespaced = Tenant(metadata=ObjectMeta(name="t", namespace="ns"))
    assert meta_namespace_key(namespaced) == "ns/t"
    with pytest.raises(ValueError):
        meta_namespace_key(object())


def test_split_meta_namespace_key():
    assert split_meta_namespace_key("ns/t") == ("ns", "t")
    assert split_meta_namespace_key("t") == ("", "t")
    with pytest.raises(ValueError):
        split_meta_namespace_key("a/b/c")


def test_add_handler_enqueues():
    orch = make()
    orch.add_tenant_handler(tenant())
    assert orch.queue.get(timeout=1) == "Add:tenant-a"


def test_add_handler_ignores_non_tenant():
    orch = make()
    orch.add_tenant_handler("not a tenant")
    assert len(orch.queue) == 0


def test_delete_handler_enqueues():
    orch = make()
    orch.delete_tenant_handler(tenant())
    assert orch.queue.get(timeout=1) == "Delete:tenant-a"


def test_update_handler_same_version_ignored():
    orch = make()
    orch.update_tenant_handler(tenant(rv="1"), tenant(rv="1", nodes=2))
    assert len(orch.queue) == 0


def test_update_handler_same_node_count_ignored():
    orch = make()
    orch.update_tenant_handler(tenant(rv="1", nodes=1), tenant(rv="2", nodes=1))
    assert len(orch.queue) == 0


def test_update_handler_node_count_changed():
    orch = make()
    orch.update_tenant_handler(tenant(rv="1"), tenant(rv="2", nodes=1))
    assert orch.queue.get(timeout=1) == "Update:tenant-a"


def test_enqueue_rate_limited_when_nodestore_missing():
    orch = make(nodes=("n1", "n2"), stores=("n1",))
    orch.enqueue(tenant(), Event.ADD)
    assert orch.queue.rate_limiter.num_requeues("Add:tenant-a") == 1
    assert orch.queue.get(timeout=1) == "Add:tenant-a"


def test_check_node_nodestore():
    assert make().check_node_nodestore() == (True, "")
    assert make(nodes=("n1", "n2")).check_node_nodestore() == (False, "nodestore for node n2 does not exist")
    failing = make(node_error=RuntimeError("boom"))
    assert failing.check_node_nodestore() == (False, "failed to retrieve nodes from cache")


def test_check_tenant_finalizer():
    orch = make()
    assert orch.check_tenant_finalizer(tenant(finalizers=[TENANT_FINALIZER])) is True
    assert orch.check_tenant_finalizer(tenant()) is False


def test_add_tenant_adds_finalizer_on_copy():
    cached = tenant()
    client = FakeClient()
    orch = make(tenants=[cached], client=client)
    orch.add_tenant("tenant-a")
    assert client.updated[0].metadata.finalizers == [TENANT_FINALIZER]
    assert cached.metadata.finalizers == []


def test_add_tenant_keeps_single_finalizer():
    client = FakeClient()
    orch = make(tenants=[tenant(finalizers=[TENANT_FINALIZER])], client=client)
    orch.add_tenant("tenant-a")
    assert client.updated[0].metadata.finalizers == [TENANT_FINALIZER]


def test_add_tenant_missing_nodestore_raises():
    client = FakeClient()
    orch = make(tenants=[tenant()], nodes=("n1", "n2"), client=client)
    with pytest.raises(RuntimeError, match="nodestore for node n2 does not exist"):
        orch.add_tenant("tenant-a")
    assert client.updated == []


def test_add_tenant_unknown_tenant_raises():
    orch = make()
    with pytest.raises(KeyError):
        orch.add_tenant("missing")


def test_update_tenant_object_propagates_error():
    orch = make(client=FakeClient(error=ConnectionError("down")))
    with pytest.raises(ConnectionError):
        orch.update_tenant_object(tenant())


def test_process_add_success():
    client = FakeClient()
    orch = make(tenants=[tenant()], client=client)
    orch.queue.add("Add:tenant-a")
    assert orch.process_next_work_item() is True
    assert len(client.updated) == 1
    assert len(orch.queue) == 0


def test_process_add_failure_requeues():
    client = FakeClient(error=ConnectionError("down"))
    orch = make(tenants=[tenant()], client=client)
    orch.queue.add("Add:tenant-a")
    assert orch.process_next_work_item() is True
    assert orch.queue.get(timeout=2) == "Add:tenant-a"


def test_process_unknown_event_dropped():
    orch = make()
    orch.queue.add("garbage")
    assert orch.process_next_work_item() is True
    assert len(orch.queue) == 0


def test_process_after_shutdown_returns_false():
    orch = make()
    orch.queue.shut_down()
    assert orch.process_next_work_item() is False


def test_run_processes_until_stopped():
    client = FakeClient()
    orch = make(tenants=[tenant()], client=client)
    stop = threading.Event()
    thread = threading.Thread(target=orch.run, args=(stop, lambda: True))
    thread.start()
    orch.add_tenant_handler(tenant())
    deadline = time.monotonic() + 2
    while not client.updated and time.monotonic() < deadline:
        time.sleep(0.01)
    stop.set()
    thread.join(timeout=5)
    assert len(client.updated) == 1
    assert orch.queue.shutting_down() is True


def test_run_fails_when_cache_never_syncs():
    orch = make()
    stop = threading.Event()
    stop.set()
    with pytest.raises(RuntimeError, match="failed to wait for caches to sync"):
        orch.run(stop, lambda: False)
    assert orch.queue.shutting_down() is True