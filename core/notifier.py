"""Fire-and-forget run notifications.

Posts a small JSON document to a webhook (ntfy, Gotify bridges, Slack /
Discord compatible relays, ...) when a run completes or fails. Delivery
problems are logged and never propagate into the run result.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)


class Notifier:
    """Webhook notification sink.

    Attributes:
        enabled: Master switch (``notify`` setting).
        url: Webhook URL (``notify_url`` setting).
        title: Default title (``notify_title`` setting).
    """

    TIMEOUT_SECONDS = 10

    def __init__(
        self,
        enabled: bool,
        url: Optional[str],
        title: str = "mi-points",
    ) -> None:
        self.enabled = enabled
        self.url = url
        self.title = title

    async def notify(self, message: str, title: Optional[str] = None) -> bool:
        """Send *message* to the webhook.

        Args:
            message: Body text.
            title: Overrides the default title.

        Returns:
            ``True`` if the webhook accepted the payload (2xx).
        """
        if not self.enabled:
            return False
        if not self.url:
            logger.warning("Notifications enabled but NOTIFY_URL is not set")
            return False

        title = title or self.title
        payload = {
            "title": title,
            "message": message,
            "text": f"*{title}*\n{message}",
        }
        try:
            timeout = aiohttp.ClientTimeout(total=self.TIMEOUT_SECONDS)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, json=payload) as resp:
                    if 200 <= resp.status < 300:
                        logger.debug("Notification delivered (%s)", resp.status)
                        return True
                    logger.warning(
                        "Notification webhook returned status %s",
                        resp.status,
                    )
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Failed to send notification: %s", e)
            return False
