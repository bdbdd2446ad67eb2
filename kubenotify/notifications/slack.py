"""Slack notification channel.

Posts plain mrkdwn text with the Slack Web API ``chat.postMessage`` method,
authenticated by a bot token. Slack answers HTTP 200 even for rejected
calls, so the ``ok`` field of the JSON body decides success.
"""

from __future__ import annotations

import httpx
import structlog

from kubenotify.notifications.manager import NotificationChannel

_log = structlog.get_logger(component="notifications.slack")

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


class SlackNotificationChannel(NotificationChannel):
    """Delivers messages to a single Slack channel.

    Args:
        token:     Bot or user OAuth token.
        channel:   Channel name or ID, e.g. ``#deploys``.
        api_url:   chat.postMessage endpoint. Overridable for tests/proxies.
        timeout:   HTTP request timeout in seconds. Defaults to 10.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        token: str,
        channel: str,
        api_url: str = SLACK_POST_MESSAGE_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token or not channel:
            raise ValueError("Missing slack token or channel")
        self._token = token
        self._channel = channel
        self._api_url = api_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def channel_name(self) -> str:
        return "slack"

    async def send(self, message: str) -> bool:
        payload = {
            "channel": self._channel,
            "text": message,
            "as_user": True,
        }
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json; charset=utf-8",
        }
        try:
            response = await self._client.post(self._api_url, json=payload, headers=headers)
        except httpx.TimeoutException:
            _log.warning("slack_request_timeout", channel=self._channel)
            return False
        except httpx.HTTPError as exc:
            _log.warning("slack_http_error", channel=self._channel, error=str(exc))
            return False

        if not response.is_success:
            _log.warning(
                "slack_non_2xx_response",
                status_code=response.status_code,
                body=response.text[:200],
            )
            return False

        try:
            body = response.json()
        except ValueError:
            _log.warning("slack_invalid_response", body=response.text[:200])
            return False
        if not body.get("ok", False):
            _log.warning("slack_api_error", channel=self._channel, error=body.get("error", "unknown"))
            return False
        return True

    async def close(self) -> None:
        await self._client.aclose()
