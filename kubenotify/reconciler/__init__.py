"""Reconciler package: event queue, target store, rendering and dedup."""

from kubenotify.reconciler.dedup import MessageDeduplicator, message_digest
from kubenotify.reconciler.queue import EventQueue
from kubenotify.reconciler.reconciler import ReconcileOutcome, Reconciler
from kubenotify.reconciler.render import render_message
from kubenotify.reconciler.store import Target, TargetStore

__all__ = [
    "EventQueue",
    "MessageDeduplicator",
    "ReconcileOutcome",
    "Reconciler",
    "Target",
    "TargetStore",
    "message_digest",
    "render_message",
]
