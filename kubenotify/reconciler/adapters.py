"""Raw API object -> ResourceSnapshot.

One adapter per supported kind. Adding a kind means adding a
ResourceSnapshot subclass and registering it here; the Reconciler never
looks at kinds itself.
"""

from __future__ import annotations

from typing import Any

from kubenotify.exceptions import IdentityError, UnsupportedKindError
from kubenotify.models.resources import DeploymentSnapshot, ResourceSnapshot, StatefulSetSnapshot

SNAPSHOT_ADAPTERS: dict[str, type[ResourceSnapshot]] = {
    DeploymentSnapshot.kind: DeploymentSnapshot,
    StatefulSetSnapshot.kind: StatefulSetSnapshot,
}


def snapshot_from_object(obj: Any) -> ResourceSnapshot:
    """Return the snapshot for a raw watched object.

    Raises:
        UnsupportedKindError: if the object's kind has no adapter.
        IdentityError: if the object carries no usable metadata.
    """
    if not isinstance(obj, dict):
        raise UnsupportedKindError(type(obj).__name__)
    kind = str(obj.get("kind") or "")
    adapter = SNAPSHOT_ADAPTERS.get(kind)
    if adapter is None:
        raise UnsupportedKindError(kind)
    if not isinstance(obj.get("metadata"), dict):
        raise IdentityError(f"{kind} object has no metadata")
    return adapter.from_raw(obj)


def format_label_selector(labels: dict[str, str]) -> str:
    """Render matchLabels as a label selector string, keys sorted."""
    return ",".join(f"{key}={labels[key]}" for key in sorted(labels))
