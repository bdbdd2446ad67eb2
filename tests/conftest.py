"""Shared factories and fakes for kubenotify tests.

Raw objects mirror what the watch stream delivers in ``raw_object``
(camelCase JSON), so tests exercise the same adapters as production.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from kubenotify.models.events import EventType, WatchEvent
from kubenotify.models.resources import ContainerState, ContainerStatus, PodStatus
from kubenotify.reconciler.dedup import MessageDeduplicator
from kubenotify.reconciler.reconciler import Reconciler

# ---------------------------------------------------------------------------
# Raw object factories
# ---------------------------------------------------------------------------


def make_workload(
    kind: str = "Deployment",
    name: str = "app",
    namespace: str = "ns",
    replicas: int | None = 3,
    ready: int | None = 1,
    updated: int | None = 0,
    match_labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build a raw apps/v1 Deployment or StatefulSet."""
    spec: dict[str, Any] = {"selector": {"matchLabels": match_labels or {"app": name}}}
    if replicas is not None:
        spec["replicas"] = replicas
    status: dict[str, Any] = {}
    if ready is not None:
        status["readyReplicas"] = ready
    if updated is not None:
        status["updatedReplicas"] = updated
    return {
        "apiVersion": "apps/v1",
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": "1"},
        "spec": spec,
        "status": status,
    }


def make_event(event_type: EventType = EventType.UPDATE, **kwargs: Any) -> WatchEvent:
    return WatchEvent(obj=make_workload(**kwargs), event_type=event_type)


def make_pod(
    name: str = "app-7d4b9c-x2kj",
    phase: str = "Running",
    containers: Sequence[tuple[str, ContainerState | None, str]] = (
        ("app", ContainerState.RUNNING, "docker-pullable://registry/app@sha256:abc"),
    ),
) -> PodStatus:
    return PodStatus(
        name=name,
        phase=phase,
        containers=tuple(ContainerStatus(name=c, state=s, image_id=i) for c, s, i in containers),
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 10, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingDispatcher:
    """Collects dispatched messages; ``succeed`` controls the return value."""

    def __init__(self, succeed: bool = True) -> None:
        self.messages: list[str] = []
        self.succeed = succeed

    async def dispatch(self, message: str) -> bool:
        self.messages.append(message)
        return self.succeed


class FakePodLookup:
    """Returns fixed pods, or raises ``error`` when set."""

    def __init__(self, pods: Sequence[PodStatus] = (), error: Exception | None = None) -> None:
        self.pods = list(pods)
        self.error = error
        self.calls: list[tuple[str, dict[str, str]]] = []

    async def list_pods(self, namespace: str, selector: dict[str, str]) -> list[PodStatus]:
        self.calls.append((namespace, dict(selector)))
        if self.error is not None:
            raise self.error
        return list(self.pods)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def pod_lookup() -> FakePodLookup:
    return FakePodLookup()


@pytest.fixture
def reconciler(dispatcher: RecordingDispatcher, pod_lookup: FakePodLookup, clock: FakeClock) -> Reconciler:
    return Reconciler(
        dispatcher=dispatcher,
        pod_lookup=pod_lookup,
        deduplicator=MessageDeduplicator(timedelta(seconds=5), clock=clock),
    )
