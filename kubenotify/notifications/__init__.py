"""Notification system for kubenotify.

Exports:
    NotificationChannel      -- Abstract base for all channel implementations.
    NotificationDispatcher   -- Delivers a message to all registered channels.
    SlackNotificationChannel -- Slack Web API channel (chat.postMessage).
    build_notification_dispatcher -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from kubenotify.notifications.manager import NotificationChannel, NotificationDispatcher
from kubenotify.notifications.slack import SlackNotificationChannel

if TYPE_CHECKING:
    from kubenotify.models.config import NotificationConfig

_log = structlog.get_logger(component="notifications")

__all__ = [
    "NotificationChannel",
    "NotificationDispatcher",
    "SlackNotificationChannel",
    "build_notification_dispatcher",
]


def build_notification_dispatcher(config: NotificationConfig) -> NotificationDispatcher:
    """Build a NotificationDispatcher from the configured handlers.

    A Slack channel is selected as soon as either its token or its channel is
    set; the channel constructor then insists on both.

    Raises:
        ValueError: if no handler is configured or a configured handler is
            incomplete. Both are fatal at startup.
    """
    channels: list[NotificationChannel] = []

    slack = config.slack
    if slack.token or slack.channel:
        channels.append(
            SlackNotificationChannel(
                token=slack.token,
                channel=slack.channel,
                api_url=slack.api_url,
                timeout=slack.timeout_seconds,
            )
        )
        _log.info("slack_channel_enabled", channel=slack.channel)

    if not channels:
        raise ValueError("No notification handler configured")

    return NotificationDispatcher(channels=channels)
