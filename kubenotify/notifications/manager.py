"""Notification channel interface and dispatcher.

NotificationChannel    -- ABC every channel must implement.
NotificationDispatcher -- Delivers a rendered message to every registered
                          channel and reports whether delivery succeeded.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from kubenotify.observability.metrics import notifications_total

_log = structlog.get_logger(component="notifications.manager")


class NotificationChannel(ABC):
    """Abstract base class for all notification channels.

    ``send`` should not raise; return ``False`` instead.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Human-readable channel identifier used in metrics and logs."""

    @abstractmethod
    async def send(self, message: str) -> bool:
        """Deliver *message* via this channel.

        Returns:
            True  -- message accepted by the remote endpoint.
            False -- delivery failed (already logged inside implementation).
        """

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by the channel."""


class NotificationDispatcher:
    """Sends a message to every registered channel, one after another.

    The call is awaited inline by the reconciler, so a slow channel slows
    event processing down. Never raises: an exception escaping a channel is
    logged and counted as a failure.
    """

    def __init__(self, channels: list[NotificationChannel]) -> None:
        self._channels = channels

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    async def dispatch(self, message: str) -> bool:
        """Deliver *message*; True only if every channel accepted it."""
        if not self._channels:
            _log.warning("notification_dropped", reason="no channels configured")
            return False
        results = [await self._send_one(channel, message) for channel in self._channels]
        return all(results)

    async def _send_one(self, channel: NotificationChannel, message: str) -> bool:
        try:
            success = await channel.send(message)
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "notification_channel_unexpected_error",
                channel=channel.channel_name,
                error=str(exc),
            )
            success = False

        label = "true" if success else "false"
        notifications_total.labels(channel=channel.channel_name, success=label).inc()

        if success:
            _log.info("notification_sent", channel=channel.channel_name, length=len(message))
        else:
            _log.warning("notification_failed", channel=channel.channel_name)
        return success

    async def stop(self) -> None:
        for channel in self._channels:
            try:
                await channel.close()
            except Exception as exc:  # noqa: BLE001
                _log.debug("notification_channel_close_error", channel=channel.channel_name, error=str(exc))
