"""Alert channel — Slack (primary) and Telegram webhooks.

Used once per watchdog lifetime, by the stoppage notifier, to tell the lab
channel that logging stopped (or that the watchdog itself was shut down).
Delivery failures are logged and reported as False, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from labwatch.config import Settings

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}"


class NotificationManager:
    """Central dispatcher for Slack / Telegram notifications."""

    def __init__(
        self,
        slack_webhook: str = "",
        telegram_token: str = "",
        telegram_chat_id: str = "",
        timeout: float = 10,
    ) -> None:
        self.slack_webhook = slack_webhook
        self.telegram_token = telegram_token
        self.telegram_chat_id = telegram_chat_id
        self.timeout = timeout
        self._enabled = bool(self.slack_webhook or (self.telegram_token and self.telegram_chat_id))

    @classmethod
    def from_settings(cls, cfg: Settings) -> NotificationManager:
        """Channel configured from the given settings (and nothing else)."""
        return cls(
            slack_webhook=cfg.slack_webhook_url,
            telegram_token=cfg.telegram_bot_token,
            telegram_chat_id=cfg.telegram_chat_id,
        )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self._enabled,
            "slack_configured": bool(self.slack_webhook),
            "telegram_configured": bool(self.telegram_token and self.telegram_chat_id),
        }

    async def send(self, text: str) -> bool:
        """Dispatch to all configured channels. True if at least one accepted it."""
        if not self._enabled:
            logger.warning("No alert channel configured, message not sent: %s", text)
            return False
        tasks = []
        if self.slack_webhook:
            tasks.append(self._send_slack(text))
        if self.telegram_token and self.telegram_chat_id:
            tasks.append(self._send_telegram(text))
        results = await asyncio.gather(*tasks, return_exceptions=True)
        return any(r is True for r in results)

    async def _send_slack(self, text: str) -> bool:
        """POST to Slack incoming webhook."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.slack_webhook,
                    json={"text": text, "mrkdwn": True},
                )
            if resp.status_code != 200:
                logger.warning("Slack webhook returned %d: %s", resp.status_code, resp.text[:200])
                return False
            return True
        except httpx.HTTPError as exc:
            logger.warning("Slack notification failed: %s", exc)
            return False

    async def _send_telegram(self, text: str) -> bool:
        """POST to Telegram Bot API."""
        url = f"{TELEGRAM_API.format(token=self.telegram_token)}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    url,
                    json={"chat_id": self.telegram_chat_id, "text": text},
                )
            if resp.status_code != 200:
                logger.warning("Telegram API returned %d: %s", resp.status_code, resp.text[:200])
                return False
            return True
        except httpx.HTTPError as exc:
            logger.warning("Telegram notification failed: %s", exc)
            return False
