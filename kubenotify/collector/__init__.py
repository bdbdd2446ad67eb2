"""Collector package for kubenotify.

Watch streams that feed the event queue, and the pod lookup used when
rendering messages.

Submodules
----------
watcher          -- BaseWatcher: resume by resourceVersion, 410 re-watch, back-off.
workload_watcher -- DeploymentWatcher / StatefulSetWatcher producing WatchEvents.
pods             -- KubernetesPodLookup: pods selected by a workload.
"""

from kubenotify.collector.pods import KubernetesPodLookup
from kubenotify.collector.watcher import BaseWatcher
from kubenotify.collector.workload_watcher import (
    DeploymentWatcher,
    StatefulSetWatcher,
    WorkloadWatcher,
    build_watchers,
)

__all__ = [
    "BaseWatcher",
    "DeploymentWatcher",
    "KubernetesPodLookup",
    "StatefulSetWatcher",
    "WorkloadWatcher",
    "build_watchers",
]
