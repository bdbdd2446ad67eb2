"""Notification message rendering.

``render_message`` is a pure function: the same snapshot and pod list always
produce the same bytes, which is what makes digest-based dedup work. Pods are
rendered in the order the lookup returned them.
"""

from __future__ import annotations

from collections.abc import Sequence

from kubenotify.models.resources import PodStatus, ResourceSnapshot


def render_header(snapshot: ResourceSnapshot) -> str:
    key = snapshot.identity.key
    if snapshot.is_healthy:
        return f"{key} is in a healthy state now ({snapshot.ready_replicas}/{snapshot.desired_replicas})"
    return (
        f"{key} is rolling out an update, {snapshot.updated_replicas} replicas updated "
        f"out of {snapshot.desired_replicas}, {snapshot.ready_replicas} ready"
    )


def render_pod(pod: PodStatus) -> str:
    parts = [f"\n\n\tPod: *{pod.name}* Phase: *{pod.phase}*"]
    for container in pod.containers:
        line = f"\n\t\tContainer: *{container.name}*"
        if container.state is not None:
            line += f" Status: *{container.state.value}*"
        parts.append(line)
        parts.append(f"\n\t\t\tImage Id: {container.image_id}")
    return "".join(parts)


def render_message(snapshot: ResourceSnapshot, pods: Sequence[PodStatus] | None) -> str:
    """Render the notification text.

    Args:
        snapshot: Replica status of the workload.
        pods:     Pods selected by the workload, or None when the lookup
                  failed (the message is then header-only).
    """
    header = render_header(snapshot)
    if not pods:
        return header
    return header + "".join(render_pod(pod) for pod in pods)
