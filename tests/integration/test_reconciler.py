"""Integration tests for the Reconciler state machine and dedup policy.

Covers: untracked-healthy silence, first notification, healthy transition,
suppression inside the dedup window, pod lookup failure, dispatch failure
retry, per-identity ordering, unsupported kinds and delete handling.
"""

from __future__ import annotations

from datetime import timedelta

from structlog.testing import capture_logs

from kubenotify.models.events import EventType, WatchEvent
from kubenotify.models.resources import ContainerState, ResourceIdentity
from kubenotify.reconciler.dedup import MessageDeduplicator, message_digest
from kubenotify.reconciler.reconciler import ReconcileOutcome, Reconciler
from tests.conftest import FakeClock, FakePodLookup, RecordingDispatcher, make_event, make_pod

_APP = ResourceIdentity(kind="Deployment", namespace="ns", name="app")

_ROLLING_1_OF_3 = "ns/app is rolling out an update, 0 replicas updated out of 3, 1 ready"
_HEALTHY_3_OF_3 = "ns/app is in a healthy state now (3/3)"


# ---------------------------------------------------------------------------
# Untracked resources
# ---------------------------------------------------------------------------


class TestUntracked:
    async def test_healthy_resource_is_not_tracked_or_notified(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher
    ) -> None:
        outcome = await reconciler.process(make_event(EventType.ADD, replicas=3, ready=3, updated=3))

        assert outcome == ReconcileOutcome.UNTRACKED_HEALTHY
        assert dispatcher.messages == []
        assert _APP not in reconciler.store

    async def test_zero_replica_resource_counts_as_healthy(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher
    ) -> None:
        outcome = await reconciler.process(make_event(EventType.ADD, replicas=0, ready=None, updated=None))

        assert outcome == ReconcileOutcome.UNTRACKED_HEALTHY
        assert dispatcher.messages == []

    async def test_healthy_resource_does_not_query_pods(
        self, reconciler: Reconciler, pod_lookup: FakePodLookup
    ) -> None:
        await reconciler.process(make_event(EventType.ADD, replicas=2, ready=2))
        assert pod_lookup.calls == []

    async def test_unhealthy_resource_creates_target_and_notifies_once(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher
    ) -> None:
        outcome = await reconciler.process(make_event(EventType.ADD, replicas=3, ready=1, updated=0))

        assert outcome == ReconcileOutcome.SENT
        assert dispatcher.messages == [_ROLLING_1_OF_3]
        target = reconciler.store.get(_APP)
        assert target is not None
        assert target.last_snapshot.ready_replicas == 1
        assert target.last_message_digest == message_digest(_ROLLING_1_OF_3)
        assert len(reconciler.store) == 1

    async def test_first_notification_skips_dedup_check(self, dispatcher: RecordingDispatcher) -> None:
        """A newly tracked resource is always notified, whatever the deduplicator says."""
        dedup = MessageDeduplicator(timedelta(hours=1))
        reconciler = Reconciler(dispatcher=dispatcher, pod_lookup=FakePodLookup(), deduplicator=dedup)

        await reconciler.process(make_event(replicas=3, ready=1))
        assert len(dispatcher.messages) == 1


# ---------------------------------------------------------------------------
# Tracked resources
# ---------------------------------------------------------------------------


class TestTracked:
    async def test_transition_to_healthy_is_notified(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, clock: FakeClock
    ) -> None:
        await reconciler.process(make_event(EventType.ADD, replicas=3, ready=1, updated=0))
        clock.advance(1)
        outcome = await reconciler.process(make_event(EventType.UPDATE, replicas=3, ready=3, updated=3))

        assert outcome == ReconcileOutcome.SENT
        assert dispatcher.messages == [_ROLLING_1_OF_3, _HEALTHY_3_OF_3]

    async def test_identical_event_within_window_is_suppressed(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, clock: FakeClock
    ) -> None:
        await reconciler.process(make_event(replicas=3, ready=1))
        clock.advance(2)
        outcome = await reconciler.process(make_event(replicas=3, ready=1))

        assert outcome == ReconcileOutcome.SUPPRESSED
        assert dispatcher.messages == [_ROLLING_1_OF_3]

    async def test_identical_event_after_window_is_sent_again(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, clock: FakeClock
    ) -> None:
        await reconciler.process(make_event(replicas=3, ready=1))
        clock.advance(5)
        outcome = await reconciler.process(make_event(replicas=3, ready=1))

        assert outcome == ReconcileOutcome.SENT
        assert dispatcher.messages == [_ROLLING_1_OF_3, _ROLLING_1_OF_3]

    async def test_changed_message_within_window_is_sent(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, clock: FakeClock
    ) -> None:
        await reconciler.process(make_event(replicas=3, ready=1, updated=0))
        clock.advance(0.1)
        outcome = await reconciler.process(make_event(replicas=3, ready=2, updated=2))

        assert outcome == ReconcileOutcome.SENT
        assert dispatcher.messages[-1] == "ns/app is rolling out an update, 2 replicas updated out of 3, 2 ready"

    async def test_pod_detail_change_alone_is_sent(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, pod_lookup: FakePodLookup
    ) -> None:
        pod_lookup.pods = [make_pod(phase="Pending", containers=[("app", ContainerState.WAITING, "")])]
        await reconciler.process(make_event(replicas=1, ready=0))
        pod_lookup.pods = [make_pod(phase="Running", containers=[("app", ContainerState.RUNNING, "img@sha256:1")])]
        outcome = await reconciler.process(make_event(replicas=1, ready=0))

        assert outcome == ReconcileOutcome.SENT
        assert len(dispatcher.messages) == 2
        assert "Phase: *Running*" in dispatcher.messages[1]

    async def test_healthy_tracked_resource_keeps_target(
        self, reconciler: Reconciler, clock: FakeClock
    ) -> None:
        await reconciler.process(make_event(replicas=3, ready=1))
        clock.advance(1)
        await reconciler.process(make_event(replicas=3, ready=3))

        target = reconciler.store.get(_APP)
        assert target is not None
        assert target.last_snapshot.is_healthy

    async def test_update_refreshes_the_stored_target_in_place(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, clock: FakeClock
    ) -> None:
        await reconciler.process(make_event(replicas=3, ready=1))
        first = reconciler.store.get(_APP)
        assert first is not None
        sent_at = first.last_notified_at
        clock.advance(1)

        # Identical message: suppressed, but the snapshot is still refreshed.
        await reconciler.process(make_event(replicas=3, ready=1, updated=0))

        target = reconciler.store.get(_APP)
        assert target is first
        assert len(reconciler.store) == 1
        assert target.last_notified_at == sent_at
        assert target.last_message_digest == message_digest(dispatcher.messages[0])

        await reconciler.process(make_event(replicas=3, ready=2, updated=2))
        assert reconciler.store.get(_APP) is first
        assert first.last_snapshot.ready_replicas == 2
        assert first.last_snapshot.updated_replicas == 2

    async def test_regression_after_healthy_is_notified(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, clock: FakeClock
    ) -> None:
        await reconciler.process(make_event(replicas=3, ready=1))
        clock.advance(1)
        await reconciler.process(make_event(replicas=3, ready=3))
        clock.advance(1)
        outcome = await reconciler.process(make_event(replicas=3, ready=2, updated=1))

        assert outcome == ReconcileOutcome.SENT
        assert len(dispatcher.messages) == 3

    async def test_every_tracked_event_renders_once(
        self, reconciler: Reconciler, pod_lookup: FakePodLookup, clock: FakeClock
    ) -> None:
        """Suppressed or not, each event of a tracked resource queries pods exactly once."""
        for _ in range(4):
            await reconciler.process(make_event(replicas=3, ready=1))
            clock.advance(1)
        assert len(pod_lookup.calls) == 4
        assert pod_lookup.calls[0] == ("ns", {"app": "app"})


# ---------------------------------------------------------------------------
# Ordering and identity
# ---------------------------------------------------------------------------


class TestOrderingAndIdentity:
    async def test_target_reflects_latest_event_with_interleaving(
        self, reconciler: Reconciler, clock: FakeClock
    ) -> None:
        events = [
            make_event(name="app", replicas=3, ready=1),
            make_event(name="other", replicas=2, ready=0),
            make_event(name="app", replicas=3, ready=2),
            make_event(name="other", replicas=2, ready=1),
        ]
        for event in events:
            await reconciler.process(event)
            clock.advance(0.5)

        app = reconciler.store.get(_APP)
        other = reconciler.store.get(ResourceIdentity(kind="Deployment", namespace="ns", name="other"))
        assert app is not None and other is not None
        assert app.last_snapshot.ready_replicas == 2
        assert other.last_snapshot.ready_replicas == 1

    async def test_same_name_different_kind_are_separate_targets(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher
    ) -> None:
        await reconciler.process(make_event(kind="Deployment", replicas=2, ready=0))
        await reconciler.process(make_event(kind="StatefulSet", replicas=2, ready=0))

        assert len(reconciler.store) == 2
        assert len(dispatcher.messages) == 2

    async def test_same_name_different_namespace_are_separate_targets(self, reconciler: Reconciler) -> None:
        await reconciler.process(make_event(namespace="a", replicas=2, ready=0))
        await reconciler.process(make_event(namespace="b", replicas=2, ready=0))
        assert len(reconciler.store) == 2


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


class TestErrorHandling:
    async def test_pod_lookup_failure_sends_header_only_and_logs(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, pod_lookup: FakePodLookup
    ) -> None:
        pod_lookup.pods = [make_pod()]
        pod_lookup.error = RuntimeError("apiserver unavailable")

        with capture_logs() as logs:
            outcome = await reconciler.process(make_event(replicas=3, ready=1))

        assert outcome == ReconcileOutcome.SENT
        assert dispatcher.messages == [_ROLLING_1_OF_3]
        failures = [e for e in logs if e["event"] == "pod_lookup_failed"]
        assert len(failures) == 1
        assert failures[0]["log_level"] == "error"
        assert "apiserver unavailable" in failures[0]["error"]

    async def test_dispatch_failure_leaves_dedup_state_untouched(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, clock: FakeClock
    ) -> None:
        await reconciler.process(make_event(replicas=3, ready=1))
        target = reconciler.store.get(_APP)
        assert target is not None
        sent_at = target.last_notified_at

        dispatcher.succeed = False
        clock.advance(1)
        with capture_logs() as logs:
            outcome = await reconciler.process(make_event(replicas=3, ready=2))

        assert outcome == ReconcileOutcome.DISPATCH_FAILED
        assert target.last_notified_at == sent_at
        assert target.last_message_digest == message_digest(_ROLLING_1_OF_3)
        assert any(e["event"] == "dispatch_failed" for e in logs)

        # The same event arriving again is retried, not suppressed.
        dispatcher.succeed = True
        clock.advance(0.1)
        outcome = await reconciler.process(make_event(replicas=3, ready=2))
        assert outcome == ReconcileOutcome.SENT

    async def test_failed_first_notification_is_retried_on_next_event(
        self, dispatcher: RecordingDispatcher, clock: FakeClock
    ) -> None:
        dispatcher.succeed = False
        reconciler = Reconciler(
            dispatcher=dispatcher,
            pod_lookup=FakePodLookup(),
            deduplicator=MessageDeduplicator(clock=clock),
        )
        await reconciler.process(make_event(replicas=3, ready=1))
        assert _APP in reconciler.store

        dispatcher.succeed = True
        outcome = await reconciler.process(make_event(replicas=3, ready=1))
        assert outcome == ReconcileOutcome.SENT
        assert len(dispatcher.messages) == 2

    async def test_unsupported_kind_is_logged_and_ignored(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher
    ) -> None:
        with capture_logs() as logs:
            outcome = await reconciler.process(make_event(kind="DaemonSet", replicas=3, ready=1))

        assert outcome == ReconcileOutcome.IGNORED
        assert dispatcher.messages == []
        assert len(reconciler.store) == 0
        assert any(e["event"] == "unsupported_object_kind" and e["kind"] == "DaemonSet" for e in logs)

    async def test_missing_identity_is_logged_and_dropped(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher
    ) -> None:
        event = WatchEvent(
            obj={"kind": "Deployment", "metadata": {"namespace": "ns"}, "spec": {"replicas": 3}},
            event_type=EventType.ADD,
        )
        with capture_logs() as logs:
            outcome = await reconciler.process(event)

        assert outcome == ReconcileOutcome.IGNORED
        assert dispatcher.messages == []
        assert any(e["event"] == "identity_derivation_failed" for e in logs)

    async def test_dispatcher_exception_does_not_escape(self, pod_lookup: FakePodLookup) -> None:
        class _Exploding:
            async def dispatch(self, message: str) -> bool:
                raise RuntimeError("boom")

        reconciler = Reconciler(dispatcher=_Exploding(), pod_lookup=pod_lookup)
        with capture_logs() as logs:
            outcome = await reconciler.process(make_event(replicas=3, ready=1))

        assert outcome == ReconcileOutcome.ERROR
        assert any(e["event"] == "reconcile_failed" for e in logs)


# ---------------------------------------------------------------------------
# Delete events
# ---------------------------------------------------------------------------


class TestDelete:
    async def test_delete_keeps_target_by_default(
        self, reconciler: Reconciler, dispatcher: RecordingDispatcher, clock: FakeClock
    ) -> None:
        await reconciler.process(make_event(replicas=3, ready=1))
        clock.advance(10)
        outcome = await reconciler.process(make_event(EventType.DELETE, replicas=3, ready=1))

        assert outcome == ReconcileOutcome.SENT
        assert _APP in reconciler.store
        assert len(dispatcher.messages) == 2

    async def test_delete_evicts_target_when_enabled(
        self, dispatcher: RecordingDispatcher, pod_lookup: FakePodLookup
    ) -> None:
        reconciler = Reconciler(dispatcher=dispatcher, pod_lookup=pod_lookup, evict_on_delete=True)
        await reconciler.process(make_event(replicas=3, ready=1))
        outcome = await reconciler.process(make_event(EventType.DELETE, replicas=3, ready=1))

        assert outcome == ReconcileOutcome.EVICTED
        assert _APP not in reconciler.store
        assert len(dispatcher.messages) == 1

    async def test_delete_of_untracked_resource_with_eviction_is_ignored(
        self, dispatcher: RecordingDispatcher, pod_lookup: FakePodLookup
    ) -> None:
        reconciler = Reconciler(dispatcher=dispatcher, pod_lookup=pod_lookup, evict_on_delete=True)
        outcome = await reconciler.process(make_event(EventType.DELETE, replicas=3, ready=1))

        assert outcome == ReconcileOutcome.IGNORED
        assert dispatcher.messages == []
