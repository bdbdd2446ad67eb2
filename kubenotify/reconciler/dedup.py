"""Duplicate-notification suppression.

A rendered message is suppressed when it is byte-identical (same digest) to
the last message sent for the same Target and that message went out less
than ``window`` ago. State lives on the Target itself.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from kubenotify.reconciler.store import Target

_log = structlog.get_logger(component="reconciler.dedup")

DEFAULT_DEDUP_WINDOW = timedelta(seconds=5)


def message_digest(message: str) -> str:
    """SHA-256 hex digest of a rendered message."""
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class MessageDeduplicator:
    """Decides whether a rendered message should be dispatched for a Target."""

    def __init__(
        self,
        window: timedelta = DEFAULT_DEDUP_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._window = window
        self._clock = clock

    def is_duplicate(self, target: Target, digest: str) -> bool:
        """True if *digest* repeats the last message sent within the window."""
        if not target.last_message_digest or target.last_notified_at is None:
            return False
        if digest != target.last_message_digest:
            return False
        elapsed = self._clock() - target.last_notified_at
        if elapsed < self._window:
            _log.debug(
                "notification_suppressed_by_deduplicator",
                resource=target.identity.key,
                kind=target.identity.kind,
                seconds_remaining=round((self._window - elapsed).total_seconds(), 3),
            )
            return True
        return False

    def record_sent(self, target: Target, digest: str) -> None:
        """Remember a successful dispatch."""
        target.last_notified_at = self._clock()
        target.last_message_digest = digest
