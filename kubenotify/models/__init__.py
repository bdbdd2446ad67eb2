"""Core data structures for kubenotify."""

from kubenotify.models.config import KubeNotifyConfig
from kubenotify.models.events import EventType, WatchEvent
from kubenotify.models.resources import (
    ContainerState,
    ContainerStatus,
    DeploymentSnapshot,
    PodStatus,
    ResourceIdentity,
    ResourceSnapshot,
    StatefulSetSnapshot,
)

__all__ = [
    "ContainerState",
    "ContainerStatus",
    "DeploymentSnapshot",
    "EventType",
    "KubeNotifyConfig",
    "PodStatus",
    "ResourceIdentity",
    "ResourceSnapshot",
    "StatefulSetSnapshot",
    "WatchEvent",
]
