# setera

Tenant placement for Kubernetes clusters.

## What is in the package

- `setera.api`: the `setera.com/v1` resource types (`Tenant`, `TenantSpec`,
  `Zone`, `TenantNode`, `TenantList`, `NodeStore`, `NodeStoreSpec`,
  `TenantInfra`, `PodInfo`, `NodeStoreList`, `IPUsage`, `ConfMap`) and
  `KubeNode` for cluster nodes. Each has `from_dict` and `to_dict` for the
  JSON form used by the API server; `from_dict` raises `ValueError` on
  fields of the wrong type.
- `setera.webhook.validation`: the admission checks.
  `check_tenant_label` admits a pod only if its `setera.com.v1.tenant` label
  names an existing tenant. `check_node_zones` admits a tenant only if it asks
  for no more zones than there are nodes and every zone can be paired with a
  node whose labels include the zone's selectors (a zone without selectors
  matches any node). `validate_pod` and `validate_tenant` apply these to an
  admission request and return an admission response.
- `setera.webhook.middleware`: WSGI middleware. `validating_middleware`
  rejects anything but a `POST` with `content-type: application/json` (405 or
  415); `logging_middleware` logs address, status, method, path and duration;
  `run_middleware` chains them.
- `setera.webhook.server`: `WebhookServer`, which answers `AdmissionReview`
  requests at `/validate`, and `main`, the entry point of the
  `setera-webhook` command.
- `setera.kube`: `init_kube_config` (reads `--kubeconfig`, falling back to
  the in-cluster service account), `load_kube_config`, `in_cluster_config`,
  and the REST clients `KubeClient.list_nodes`, `SeteraClient.list_tenants`
  and `SeteraClient.update_tenant`. Failures raise `KubeError`.
- `setera.workqueue`: `RateLimitingQueue`, a de-duplicating FIFO work queue
  with delayed and rate-limited re-adds, and `ExponentialRateLimiter`.
- `setera.orchestrator`: `Orchestrator`, which queues tenant add, update and
  delete events as `"Event:namespace/name"` keys, checks that every node has a
  `NodeStore`, and on add writes the tenant back carrying the
  `finalizer.setera.com` finalizer.

## Installation

```
pip install .
```

## Running the webhook

```
setera-webhook --kubeconfig ~/.kube/config
```

Without `--kubeconfig` the default `~/.kube/config` is tried; if it cannot be
loaded, the in-cluster configuration is used. The server listens on port 8443
and accepts `POST` requests with `content-type: application/json` carrying an
`AdmissionReview` at `/validate`. Pods and `setera.com/v1` tenants are
validated; a review of any other kind is answered with `allowed: false`.

## Using the validation helpers

```python
from setera.api import KubeNode, ObjectMeta, Zone
from setera.webhook.validation import check_node_zones

nodes = [KubeNode(metadata=ObjectMeta(name="worker-1", labels={"disk": "ssd"}))]
zones = [Zone(name="zone-a", requirements={"disk": "ssd"})]

allowed, reason = check_node_zones(nodes, zones)  # (True, "tenant is valid")
```

## Running the orchestrator

There is no command for the orchestrator. Build an `Orchestrator` yourself
with a `SeteraClient` and listers: `tenant_lister.get(namespace, name)`,
`nodestore_lister.list()` and `node_lister.list()`. Feed it events through
`add_tenant_handler`, `update_tenant_handler` and `delete_tenant_handler`, and
call `run(stop_event)` to process the queue until the event is set.

## What the package does not do

- It does not watch the cluster: there are no informers or caches, so the
  orchestrator's listers and event calls must come from the caller.
- The orchestrator only adds the finalizer; it does not yet choose node stores
  for a tenant, and update and delete events do nothing.
- The webhook server speaks plain HTTP; it does not load TLS certificates.
- There is no node agent and no CNI plugin.

## Tests

```
pip install .[test]
pytest
```