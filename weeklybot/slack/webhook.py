"""Slack incoming-webhook notifier."""

from __future__ import annotations

import httpx
from loguru import logger

from weeklybot.errors import NotifierError


class SlackWebhookNotifier:
    """Posts plain-text messages to a Slack incoming webhook.

    ``send`` returns only when Slack answered 2xx; every other outcome
    (HTTP error status, network failure, timeout) raises NotifierError.
    There are no retries here: an overlapping evaluation pass is the retry.
    """

    def __init__(
        self,
        webhook_url: str,
        test_webhook_url: str = "",
        username: str = "Weekly Notification Bot",
        icon_emoji: str = ":bell:",
        timeout: float = 10.0,
    ):
        self.webhook_url = webhook_url
        self.test_webhook_url = test_webhook_url
        self.username = username
        self.icon_emoji = icon_emoji
        self.timeout = timeout

    def _payload(self, text: str, test: bool) -> dict:
        return {
            "text": text,
            "username": f"{self.username} (TEST)" if test else self.username,
            "icon_emoji": ":test_tube:" if test else self.icon_emoji,
        }

    async def send(self, text: str, *, test: bool = False) -> None:
        """Send ``text``; ``test`` sends to the test webhook only, never production."""
        url = self.test_webhook_url if test else self.webhook_url
        target = "TEST" if test else "PRODUCTION"

        if not url:
            if test:
                raise NotifierError("Slack test webhook URL not configured")
            raise NotifierError("Slack webhook URL not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=self._payload(text, test))
        except httpx.TimeoutException as e:
            raise NotifierError(f"Slack webhook timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise NotifierError(f"Slack webhook request failed: {e}") from e

        if not response.is_success:
            raise NotifierError(
                f"Slack webhook returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        logger.debug(f"[Slack] {target} webhook accepted message ({len(text)} chars)")
