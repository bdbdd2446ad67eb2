"""Pod lookup backed by the Kubernetes API.

Converts V1Pod objects into PodStatus values for the message renderer. The
order of ``items`` returned by the API is kept.
"""

from __future__ import annotations

from typing import Any

from kubenotify.exceptions import PodLookupError
from kubenotify.models.resources import ContainerState, ContainerStatus, PodStatus
from kubenotify.reconciler.adapters import format_label_selector


class KubernetesPodLookup:
    """Lists pods with ``CoreV1Api.list_namespaced_pod``."""

    def __init__(self, core_v1: Any) -> None:
        self._core_v1 = core_v1

    async def list_pods(self, namespace: str, selector: dict[str, str]) -> list[PodStatus]:
        try:
            pod_list = await self._core_v1.list_namespaced_pod(
                namespace,
                label_selector=format_label_selector(selector),
            )
        except Exception as exc:
            raise PodLookupError(f"Failed to list pods in {namespace or '<default>'}: {exc}") from exc
        return [pod_status_from_v1(pod) for pod in (pod_list.items or [])]


def pod_status_from_v1(pod: Any) -> PodStatus:
    status = pod.status
    container_statuses = (getattr(status, "container_statuses", None) or []) if status is not None else []
    return PodStatus(
        name=str(pod.metadata.name),
        phase=str(getattr(status, "phase", "") or ""),
        containers=tuple(_container_status(c) for c in container_statuses),
    )


def _container_status(container: Any) -> ContainerStatus:
    return ContainerStatus(
        name=str(container.name),
        state=_coarse_state(getattr(container, "state", None)),
        image_id=str(getattr(container, "image_id", "") or ""),
    )


def _coarse_state(state: Any) -> ContainerState | None:
    """Label of whichever state field is populated; waiting wins over running over terminated."""
    if state is None:
        return None
    if getattr(state, "waiting", None) is not None:
        return ContainerState.WAITING
    if getattr(state, "running", None) is not None:
        return ContainerState.RUNNING
    if getattr(state, "terminated", None) is not None:
        return ContainerState.TERMINATED
    return None
