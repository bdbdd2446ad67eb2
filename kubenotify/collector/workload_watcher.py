"""Deployment and StatefulSet watchers.

Each watcher turns its watch stream into WatchEvents on the shared
EventQueue. Watchers only produce; they never read or write the target
store.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from kubenotify.collector.watcher import BaseWatcher
from kubenotify.models.events import WATCH_EVENT_TYPES, WatchEvent
from kubenotify.observability.metrics import watch_events_total
from kubenotify.reconciler.queue import EventQueue

_log = structlog.get_logger(component="collector.workload_watcher")


class WorkloadWatcher(BaseWatcher):
    """Enqueues every change of one workload kind."""

    kind: str = ""

    def __init__(self, api: Any, queue: EventQueue, namespace: str = "") -> None:
        super().__init__(api, name=self.kind.lower(), namespace=namespace)
        self._queue = queue

    async def _handle_event(self, event_type: str, obj: Any, raw: dict[str, Any]) -> None:
        mapped = WATCH_EVENT_TYPES.get(event_type)
        if mapped is None:
            _log.debug("watch_event_ignored", watcher=self.name, event_type=event_type)
            return
        # Watch payloads normally carry kind, but the consumer keys adapters on it.
        payload = dict(raw)
        payload.setdefault("kind", self.kind)
        if self._queue.add(WatchEvent(obj=payload, event_type=mapped)):
            watch_events_total.labels(resource_kind=self.kind, event_type=mapped.value).inc()


class DeploymentWatcher(WorkloadWatcher):
    kind = "Deployment"

    def _list_func(self) -> Callable[..., Any]:
        if self._namespace:
            return self._api.list_namespaced_deployment
        return self._api.list_deployment_for_all_namespaces


class StatefulSetWatcher(WorkloadWatcher):
    kind = "StatefulSet"

    def _list_func(self) -> Callable[..., Any]:
        if self._namespace:
            return self._api.list_namespaced_stateful_set
        return self._api.list_stateful_set_for_all_namespaces


WATCHERS: dict[str, type[WorkloadWatcher]] = {
    "deployment": DeploymentWatcher,
    "statefulset": StatefulSetWatcher,
}


def build_watchers(apps_v1: Any, queue: EventQueue, kinds: list[str], namespace: str = "") -> list[WorkloadWatcher]:
    """One watcher per configured kind, all feeding *queue*."""
    return [WATCHERS[kind](apps_v1, queue, namespace=namespace) for kind in kinds]
