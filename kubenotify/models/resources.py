"""Resource snapshot and pod status data structures.

A ResourceSnapshot is the narrow view of a workload the Reconciler needs:
identity, replica counts and the pod selector. There is one subclass per
supported kind; each knows how to read its own raw API object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from kubenotify.exceptions import IdentityError


@dataclass(frozen=True)
class ResourceIdentity:
    """Unique key of a watched resource."""

    kind: str
    namespace: str
    name: str

    @property
    def key(self) -> str:
        """``namespace/name``, or just ``name`` for cluster-scoped objects."""
        return f"{self.namespace}/{self.name}" if self.namespace else self.name

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class ResourceSnapshot:
    """Replica status of one workload at the moment it was observed."""

    kind: ClassVar[str] = ""

    identity: ResourceIdentity
    desired_replicas: int
    ready_replicas: int
    updated_replicas: int
    pod_selector: dict[str, str] = field(default_factory=dict)

    @property
    def namespace(self) -> str:
        return self.identity.namespace

    @property
    def is_healthy(self) -> bool:
        return self.ready_replicas == self.desired_replicas

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> ResourceSnapshot:
        """Build a snapshot from a raw ``apps/v1`` object.

        ``spec.replicas`` defaults to 1 as the API server does; absent status
        counters mean zero.

        Raises:
            IdentityError: if metadata.name is missing.
        """
        metadata = _as_dict(raw.get("metadata"))
        name = metadata.get("name")
        if not name:
            raise IdentityError(f"{cls.kind} object has no metadata.name")
        namespace = str(metadata.get("namespace") or "")

        spec = _as_dict(raw.get("spec"))
        status = _as_dict(raw.get("status"))
        selector = _as_dict(spec.get("selector"))
        match_labels = _as_dict(selector.get("matchLabels"))

        replicas = spec.get("replicas")
        return cls(
            identity=ResourceIdentity(kind=cls.kind, namespace=namespace, name=str(name)),
            desired_replicas=_count(1 if replicas is None else replicas),
            ready_replicas=_count(status.get("readyReplicas")),
            updated_replicas=_count(status.get("updatedReplicas")),
            pod_selector={str(k): str(v) for k, v in match_labels.items()},
        )


@dataclass(frozen=True)
class DeploymentSnapshot(ResourceSnapshot):
    kind: ClassVar[str] = "Deployment"


@dataclass(frozen=True)
class StatefulSetSnapshot(ResourceSnapshot):
    kind: ClassVar[str] = "StatefulSet"


class ContainerState(StrEnum):
    """Coarse container state label."""

    WAITING = "Waiting"
    RUNNING = "Running"
    TERMINATED = "Terminated"


@dataclass(frozen=True)
class ContainerStatus:
    name: str
    state: ContainerState | None
    image_id: str = ""


@dataclass(frozen=True)
class PodStatus:
    """Pod as read from the pod lookup; never persisted."""

    name: str
    phase: str
    containers: tuple[ContainerStatus, ...] = ()


def _as_dict(value: object) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _count(value: object) -> int:
    try:
        return max(int(value or 0), 0)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return 0
