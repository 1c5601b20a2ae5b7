"""Tenant orchestration: watches tenant events and places tenants on node stores."""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from typing import Any

from setera.api import ObjectMeta, Tenant
from setera.workqueue import ExponentialRateLimiter, QueueShutDown, RateLimitingQueue

logger = logging.getLogger(__name__)

TENANT_FINALIZER = "finalizer.setera.com"
WORKER_PERIOD = 1.0
SYNC_POLL_PERIOD = 0.1


class Event(str, enum.Enum):
    """The kind of change a queued tenant key stands for."""

    ADD = "Add"
    UPDATE = "Update"
    DELETE = "Delete"
    UNKNOWN = "Unknown"


def parse_queued_key(wrapped_key: str) -> tuple[Event, str]:
    """Split an "Event:key" queue entry into its event and object key."""
    parts = wrapped_key.split(":")
    if len(parts) < 2:
        return Event.UNKNOWN, wrapped_key
    try:
        event = Event(parts[0])
    except ValueError:
        event = Event.UNKNOWN
    return event, parts[1]


def meta_namespace_key(obj: Any) -> str:
    """The "namespace/name" key of an object, or just "name" if it has no namespace."""
    if isinstance(obj, str):
        return obj
    meta = getattr(obj, "metadata", None)
    if not isinstance(meta, ObjectMeta):
        raise ValueError(f"object has no meta: {obj!r}")
    if meta.namespace:
        return f"{meta.namespace}/{meta.name}"
    return meta.name


def split_meta_namespace_key(key: str) -> tuple[str, str]:
    """Split a key into (namespace, name)."""
    parts = key.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected key format: {key!r}")


class Orchestrator:
    """Queues tenant events and reconciles them against the cluster.

    tenant_lister needs get(namespace, name); nodestore_lister and node_lister
    need list(). setera_client needs update_tenant(tenant).
    """

    def __init__(
        self,
        setera_client: Any,
        tenant_lister: Any,
        nodestore_lister: Any,
        node_lister: Any,
        queue: RateLimitingQueue | None = None,
    ) -> None:
        self.setera_client = setera_client
        self.tenant_lister = tenant_lister
        self.nodestore_lister = nodestore_lister
        self.node_lister = node_lister
        self.queue = queue if queue is not None else RateLimitingQueue(ExponentialRateLimiter())

    # event handlers

    def add_tenant_handler(self, obj: Any) -> None:
        if not isinstance(obj, Tenant):
            logger.info("Failed to cast object to tenant in add handler")
            return
        logger.info("Adding tenant %s", obj.metadata.name)
        self.enqueue(obj, Event.ADD)

    def update_tenant_handler(self, old_obj: Any, new_obj: Any) -> None:
        if not isinstance(old_obj, Tenant):
            logger.info("Failed to cast old object to tenant in update handler")
            return
        if not isinstance(new_obj, Tenant):
            logger.info("Failed to cast new object to tenant in update handler")
            return
        if old_obj.metadata.resource_version == new_obj.metadata.resource_version:
            logger.info("No change in tenant %s", new_obj.metadata.name)
            return
        if len(old_obj.spec.nodes) != len(new_obj.spec.nodes):
            logger.info("Number of nodes changed in tenant %s", new_obj.metadata.name)
            logger.info("Add tenant to queue - Update event %s", new_obj.metadata.name)
            self.enqueue(new_obj, Event.UPDATE)

    def delete_tenant_handler(self, obj: Any) -> None:
        if not isinstance(obj, Tenant):
            logger.info("Failed to cast object to tenant in delete handler")
            return
        logger.info("Deleting tenant %s", obj.metadata.name)
        self.enqueue(obj, Event.DELETE)

    def enqueue(self, obj: Any, event: Event) -> None:
        """Queue the object's key tagged with the event, delayed if node stores are missing."""
        try:
            key = meta_namespace_key(obj)
        except ValueError as exc:
            logger.error("Error in getting key for object: %s", exc)
            return
        wrapped_key = f"{Event(event).value}:{key}"
        ok, reason = self.check_node_nodestore()
        if not ok:
            logger.info("%s %s", reason, key)
            self.queue.add_rate_limited(wrapped_key)
        else:
            logger.info("Adding key to workqueue %s", wrapped_key)
            self.queue.add(wrapped_key)

    # processing

    def process_next_work_item(self) -> bool:
        """Handle one queued item; False once the queue is shut down."""
        try:
            wrapped_key = self.queue.get()
        except QueueShutDown:
            logger.info("queue is shutdown")
            return False

        try:
            event, key = parse_queued_key(wrapped_key)
            if event is Event.ADD:
                try:
                    self.add_tenant(key)
                except Exception as exc:
                    logger.error("Failed to add tenant %s: %s", key, exc)
                    self.queue.add_rate_limited(wrapped_key)
                else:
                    self.queue.forget(wrapped_key)
            elif event is Event.UPDATE:
                try:
                    self.update_tenant(key)
                except Exception as exc:
                    logger.error("Failed to update tenant %s: %s", key, exc)
                else:
                    self.queue.forget(wrapped_key)
            elif event is Event.DELETE:
                try:
                    self.delete_tenant(key)
                except Exception as exc:
                    logger.error("Failed to delete tenant %s: %s", key, exc)
                else:
                    self.queue.forget(wrapped_key)
            else:
                logger.info("Unknown event key=%s", key)
                self.queue.forget(wrapped_key)

            logger.error("error processing key %s", key)
            self.queue.forget(wrapped_key)
            logger.info("Successfully synced tenant key=%s", key)
        finally:
            self.queue.done(wrapped_key)
        return True

    def run(self, stop_event: threading.Event, tenant_synced: Callable[[], bool] | None = None) -> None:
        """Wait for the cache, then process the queue until stop_event is set."""
        worker = None
        try:
            logger.info("Starting tenant orchestrator")
            if not self._wait_for_cache_sync(stop_event, tenant_synced):
                logger.info("Failed to wait for caches to sync")
                raise RuntimeError("failed to wait for caches to sync")
            worker = threading.Thread(target=self._run_worker, args=(stop_event,), daemon=True)
            worker.start()
            logger.info("Started orchestrator worker")
            stop_event.wait()
            logger.info("Shutting down orchestrator workers")
        finally:
            self.queue.shut_down()
            if worker is not None:
                worker.join()

    def _wait_for_cache_sync(self, stop_event: threading.Event, synced: Callable[[], bool] | None) -> bool:
        if synced is None:
            return True
        while True:
            if synced():
                return True
            if stop_event.wait(SYNC_POLL_PERIOD):
                return False

    def _run_worker(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            while self.process_next_work_item():
                pass
            if self.queue.shutting_down():
                return
            stop_event.wait(WORKER_PERIOD)

    # reconciliation

    def add_tenant(self, key: str) -> None:
        """Make sure the tenant carries the finalizer and write it back."""
        ok, reason = self.check_node_nodestore()
        if not ok:
            logger.error("Failed to add tenant %s: %s", key, reason)
            raise RuntimeError(reason)

        try:
            namespace, name = split_meta_namespace_key(key)
        except ValueError as exc:
            logger.error("Error in getting key for object %s: %s", key, exc)
            raise

        try:
            tenant = self.tenant_lister.get(namespace, name)
        except Exception as exc:
            logger.error("Error in getting tenant object from cache %s: %s", key, exc)
            raise

        updated = tenant.deep_copy()
        if not self.check_tenant_finalizer(tenant):
            updated.metadata.finalizers.append(TENANT_FINALIZER)

        try:
            self.nodestore_lister.list()
        except Exception as exc:
            logger.error("Error in getting nodestores from cache: %s", exc)

        try:
            self.update_tenant_object(updated)
        except Exception as exc:
            logger.error("Failed to update tenant object in the k8s cluster %s: %s", key, exc)
            raise

    def update_tenant(self, key: str) -> None:
        """Handle a change in a tenant's nodes; nothing needs doing yet."""

    def delete_tenant(self, key: str) -> None:
        """Handle a tenant's deletion; nothing needs doing yet."""

    def check_node_nodestore(self) -> tuple[bool, str]:
        """Whether every node has a node store; return (ok, reason)."""
        try:
            nodes = self.node_lister.list()
        except Exception as exc:
            logger.error("Error in getting nodes from cache: %s", exc)
            return False, "failed to retrieve nodes from cache"
        try:
            nodestores = self.nodestore_lister.list()
        except Exception as exc:
            logger.error("Error in getting nodestores from cache: %s", exc)
            return False, "failed to retrieve nodestores from cache"

        stored = {store.spec.name for store in nodestores}
        for node in nodes:
            name = node.metadata.name
            if name not in stored:
                logger.info("node does not have a nodestore %s", name)
                return False, f"nodestore for node {name} does not exist"
        return True, ""

    def check_tenant_finalizer(self, tenant: Tenant) -> bool:
        return TENANT_FINALIZER in tenant.metadata.finalizers

    def update_tenant_object(self, tenant: Tenant) -> Tenant:
        try:
            return self.setera_client.update_tenant(tenant)
        except Exception as exc:
            logger.error("Error in updating tenant object in the k8s cluster %s: %s", tenant.metadata.name, exc)
            raise