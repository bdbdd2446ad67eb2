"""Target state store.

Process-wide map of identity -> Target. Only the reconciler's consumer task
mutates it, so there is no lock.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime

from kubenotify.models.resources import ResourceIdentity, ResourceSnapshot
from kubenotify.observability.metrics import tracked_targets


@dataclass
class Target:
    """Tracking record for one resource."""

    last_snapshot: ResourceSnapshot
    last_notified_at: datetime | None = None
    last_message_digest: str = ""

    @property
    def identity(self) -> ResourceIdentity:
        return self.last_snapshot.identity


class TargetStore:
    def __init__(self) -> None:
        self._targets: dict[ResourceIdentity, Target] = {}

    def get(self, identity: ResourceIdentity) -> Target | None:
        return self._targets.get(identity)

    def track(self, snapshot: ResourceSnapshot) -> Target:
        """Create the Target for *snapshot*'s identity, or refresh the existing one."""
        target = self._targets.get(snapshot.identity)
        if target is None:
            target = Target(last_snapshot=snapshot)
            self._targets[snapshot.identity] = target
            tracked_targets.set(len(self._targets))
        else:
            target.last_snapshot = snapshot
        return target

    def evict(self, identity: ResourceIdentity) -> Target | None:
        target = self._targets.pop(identity, None)
        tracked_targets.set(len(self._targets))
        return target

    def __contains__(self, identity: object) -> bool:
        return identity in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def __iter__(self) -> Iterator[Target]:
        return iter(list(self._targets.values()))
