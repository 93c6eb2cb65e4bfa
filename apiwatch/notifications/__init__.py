"""Notification hooks: log lines plus optional Slack and Telegram webhooks.

Fires on:
- Daily error report (last 24h of recorded request errors)
- Probe cycles with failing endpoints

Every notification is logged. Webhook calls are best-effort (httpx async);
failures are logged and never propagate into the scheduler.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

import httpx

from apiwatch.config import settings

logger = logging.getLogger(__name__)


class NotifyLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


_EMOJI = {
    NotifyLevel.INFO: "ℹ️",
    NotifyLevel.WARNING: "⚠️",
    NotifyLevel.CRITICAL: "🔴",
}

_LOG_LEVEL = {
    NotifyLevel.INFO: logging.INFO,
    NotifyLevel.WARNING: logging.WARNING,
    NotifyLevel.CRITICAL: logging.ERROR,
}


class NotificationManager:
    """Central dispatcher for monitor notifications."""

    def __init__(
        self,
        slack_webhook: str = "",
        telegram_token: str = "",
        telegram_chat_id: str = "",
    ) -> None:
        self.slack_webhook = slack_webhook or settings.slack_webhook_url
        self.telegram_token = telegram_token or settings.telegram_bot_token
        self.telegram_chat_id = telegram_chat_id or settings.telegram_chat_id

    @property
    def is_enabled(self) -> bool:
        return bool(self.slack_webhook or (self.telegram_token and self.telegram_chat_id))

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self.is_enabled,
            "slack_configured": bool(self.slack_webhook),
            "telegram_configured": bool(self.telegram_token and self.telegram_chat_id),
        }

    # -- High-level notification methods ------------------------------------

    async def notify_error_report(
        self, stats: dict[str, Any], channels: dict[str, bool] | None = None,
    ) -> str:
        """Daily digest of request errors. Returns the rendered text."""
        total = stats.get("total_count", 0)
        if not total:
            text = "Daily error report: no errors in the last 24 hours"
            logger.info(text)
            return text

        level = NotifyLevel.WARNING
        lines = [f"{_EMOJI[level]} *Daily error report*: {total} errors in the last {stats.get('timeframe', '24h')}"]
        for code_stat in stats.get("code_stats", []):
            lines.append(f"- {code_stat['code']}: {code_stat['count']} occurrences")
        for ep in stats.get("endpoint_stats", [])[:5]:
            lines.append(f"- {ep['endpoint'] or '(unknown endpoint)'}: {ep['count']}")
        text = "\n".join(lines)

        await self._send(text, level, channels)
        return text

    async def notify_probe_failures(self, summary: Any) -> None:
        """Report failing endpoints after a probe cycle (no-op when all pass)."""
        if not summary.failed:
            return
        level = NotifyLevel.CRITICAL if summary.failed == summary.total else NotifyLevel.WARNING
        lines = [f"{_EMOJI[level]} *Health checks*: {summary.failed}/{summary.total} endpoints failing"]
        for r in summary.results:
            if not r.passed:
                detail = r.error_message or f"status {r.status_code}"
                lines.append(f"- {r.category} {r.endpoint}: {detail}")
        await self._send("\n".join(lines), level)

    # -- Low-level dispatch -------------------------------------------------

    async def _send(
        self, text: str, level: NotifyLevel, channels: dict[str, bool] | None = None,
    ) -> None:
        """Log, then dispatch to configured and enabled channels."""
        logger.log(_LOG_LEVEL[level], "%s", text)
        channels = channels or {}
        tasks = []
        if self.slack_webhook and channels.get("slack", True):
            tasks.append(self._send_slack(text))
        if self.telegram_token and self.telegram_chat_id and channels.get("telegram", True):
            tasks.append(self._send_telegram(text))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _send_slack(self, text: str) -> None:
        """POST to Slack incoming webhook."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    self.slack_webhook,
                    json={"text": text, "mrkdwn": True},
                )
                if resp.status_code != 200:
                    logger.warning("Slack webhook returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Slack notification failed: %s", exc)

    async def _send_telegram(self, text: str) -> None:
        """POST to Telegram Bot API."""
        url = f"https://api.telegram.org/bot{self.telegram_token}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    url,
                    json={
                        "chat_id": self.telegram_chat_id,
                        "text": text,
                        "parse_mode": "Markdown",
                    },
                )
                if resp.status_code != 200:
                    logger.warning("Telegram API returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Telegram notification failed: %s", exc)
