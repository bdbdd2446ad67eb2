"""Prometheus metrics for kubenotify.

All collectors are module-level singletons registered on the default
registry. ``start_metrics_server`` exposes them over HTTP.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, start_http_server

watch_events_total = Counter(
    "kubenotify_watch_events_total",
    "Watch events enqueued, by resource kind and event type.",
    ["resource_kind", "event_type"],
)

watch_restarts_total = Counter(
    "kubenotify_watch_restarts_total",
    "Watch stream restarts, by watcher and reason.",
    ["watcher", "reason"],
)

reconcile_total = Counter(
    "kubenotify_reconcile_total",
    "Reconciled events, by outcome.",
    ["outcome"],
)

notifications_total = Counter(
    "kubenotify_notifications_total",
    "Notification delivery attempts, by channel and success.",
    ["channel", "success"],
)

tracked_targets = Gauge(
    "kubenotify_tracked_targets",
    "Resources currently tracked in the target store.",
)

queue_depth = Gauge(
    "kubenotify_queue_depth",
    "Events waiting in the event queue.",
)


def start_metrics_server(port: int) -> None:
    """Serve /metrics on *port* from a daemon thread."""
    start_http_server(port)
