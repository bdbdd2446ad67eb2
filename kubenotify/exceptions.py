"""Exception hierarchy for kubenotify."""

from __future__ import annotations


class KubeNotifyError(Exception):
    """Base class for all kubenotify errors."""


class ConfigError(KubeNotifyError):
    """Raised when configuration cannot be loaded or fails validation."""


class ResourceError(KubeNotifyError):
    """Raised when a watched object cannot be turned into a snapshot."""


class IdentityError(ResourceError):
    """Raised when namespace/name/kind cannot be derived from an object."""


class UnsupportedKindError(ResourceError):
    """Raised for object kinds that have no snapshot adapter."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unsupported object kind: {kind or '<unknown>'}")
        self.kind = kind


class PodLookupError(KubeNotifyError):
    """Raised when the pods owned by a workload cannot be listed."""
