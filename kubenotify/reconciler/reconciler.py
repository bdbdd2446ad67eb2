"""Reconciler: watch events -> per-resource state machine -> notifications.

Per identity the states are Untracked -> Tracked-Unhealthy -> Tracked-Healthy,
looping back to Tracked-Unhealthy on regression:

* Untracked and healthy: ignored. A controller starting against a healthy
  cluster stays silent.
* Untracked and unhealthy: a Target is created and the first message is sent
  without a duplicate check.
* Tracked: the Target's snapshot is replaced and a message is rendered on
  every event; it is dispatched unless the deduplicator suppresses it.

``consume`` is the single consumer of the EventQueue and therefore the only
writer of the TargetStore.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta
from enum import StrEnum
from typing import Protocol

import structlog

from kubenotify.exceptions import IdentityError, UnsupportedKindError
from kubenotify.models.events import EventType, WatchEvent
from kubenotify.models.resources import PodStatus, ResourceSnapshot
from kubenotify.observability.metrics import reconcile_total
from kubenotify.reconciler.adapters import snapshot_from_object
from kubenotify.reconciler.dedup import DEFAULT_DEDUP_WINDOW, MessageDeduplicator, message_digest
from kubenotify.reconciler.queue import EventQueue
from kubenotify.reconciler.render import render_message
from kubenotify.reconciler.store import Target, TargetStore

_log = structlog.get_logger(component="reconciler")


class PodLookup(Protocol):
    async def list_pods(self, namespace: str, selector: dict[str, str]) -> Sequence[PodStatus]: ...


class Dispatcher(Protocol):
    async def dispatch(self, message: str) -> bool: ...


class ReconcileOutcome(StrEnum):
    """What processing one event led to."""

    IGNORED = "ignored"  # unsupported kind or no identity
    UNTRACKED_HEALTHY = "untracked_healthy"
    SENT = "sent"
    SUPPRESSED = "suppressed"
    DISPATCH_FAILED = "dispatch_failed"
    EVICTED = "evicted"
    ERROR = "error"


class Reconciler:
    """Turns watch events into notifications.

    Args:
        dispatcher:      Receives rendered messages.
        pod_lookup:      Lists pods for the message body.
        store:           Target store; a fresh one is created when omitted.
        deduplicator:    Dedup policy; defaults to a 5 second window.
        evict_on_delete: Drop the Target on Delete instead of reconciling it.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        pod_lookup: PodLookup,
        store: TargetStore | None = None,
        deduplicator: MessageDeduplicator | None = None,
        evict_on_delete: bool = False,
    ) -> None:
        self._dispatcher = dispatcher
        self._pod_lookup = pod_lookup
        self._store = store if store is not None else TargetStore()
        self._deduplicator = deduplicator or MessageDeduplicator(DEFAULT_DEDUP_WINDOW)
        self._evict_on_delete = evict_on_delete

    @classmethod
    def from_window(
        cls,
        dispatcher: Dispatcher,
        pod_lookup: PodLookup,
        dedup_window_seconds: int,
        evict_on_delete: bool = False,
    ) -> Reconciler:
        return cls(
            dispatcher=dispatcher,
            pod_lookup=pod_lookup,
            deduplicator=MessageDeduplicator(timedelta(seconds=dedup_window_seconds)),
            evict_on_delete=evict_on_delete,
        )

    @property
    def store(self) -> TargetStore:
        return self._store

    async def consume(self, queue: EventQueue) -> None:
        """Drain *queue* until it shuts down. Per-event errors never end the loop."""
        _log.info("reconciler_started")
        while True:
            event = await queue.get()
            if event is None:
                break
            outcome = await self.process(event)
            reconcile_total.labels(outcome=outcome.value).inc()
        _log.info("reconciler_stopped", tracked=len(self._store))

    async def process(self, event: WatchEvent) -> ReconcileOutcome:
        """Reconcile a single event. Never raises."""
        try:
            return await self._process(event)
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "reconcile_failed",
                resource=event.display_name,
                event_type=event.event_type.value,
                error=str(exc),
                exc_info=True,
            )
            return ReconcileOutcome.ERROR

    async def _process(self, event: WatchEvent) -> ReconcileOutcome:
        try:
            snapshot = snapshot_from_object(event.obj)
        except UnsupportedKindError as exc:
            _log.error("unsupported_object_kind", kind=exc.kind, resource=event.display_name)
            return ReconcileOutcome.IGNORED
        except IdentityError as exc:
            _log.error("identity_derivation_failed", kind=event.resource_kind, error=str(exc))
            return ReconcileOutcome.IGNORED

        identity = snapshot.identity
        if event.event_type is EventType.DELETE and self._evict_on_delete:
            if self._store.evict(identity) is None:
                return ReconcileOutcome.IGNORED
            _log.info("target_evicted", resource=identity.key, kind=identity.kind)
            return ReconcileOutcome.EVICTED

        target = self._store.get(identity)
        if target is None:
            if snapshot.is_healthy:
                return ReconcileOutcome.UNTRACKED_HEALTHY
            target = self._store.track(snapshot)
            _log.info(
                "target_tracked",
                resource=identity.key,
                kind=identity.kind,
                ready=snapshot.ready_replicas,
                desired=snapshot.desired_replicas,
            )
            return await self._render_and_send(target, check_duplicate=False)

        target = self._store.track(snapshot)
        return await self._render_and_send(target, check_duplicate=True)

    async def _render_and_send(self, target: Target, check_duplicate: bool) -> ReconcileOutcome:
        snapshot = target.last_snapshot
        pods = await self._lookup_pods(snapshot)
        message = render_message(snapshot, pods)
        digest = message_digest(message)

        if check_duplicate and self._deduplicator.is_duplicate(target, digest):
            return ReconcileOutcome.SUPPRESSED

        if not await self._dispatcher.dispatch(message):
            # Dedup state untouched: the next equivalent event retries.
            _log.error("dispatch_failed", resource=snapshot.identity.key, kind=snapshot.identity.kind)
            return ReconcileOutcome.DISPATCH_FAILED

        self._deduplicator.record_sent(target, digest)
        return ReconcileOutcome.SENT

    async def _lookup_pods(self, snapshot: ResourceSnapshot) -> Sequence[PodStatus] | None:
        try:
            return await self._pod_lookup.list_pods(snapshot.namespace, snapshot.pod_selector)
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "pod_lookup_failed",
                resource=snapshot.identity.key,
                namespace=snapshot.namespace,
                error=str(exc),
            )
            return None
