"""Chat webhook notifications (Slack, Discord, Telegram or a plain JSON POST)."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from permission_hook.delivery.reliability import CircuitBreaker, RateLimiter, RetryPolicy, Sleep, deliver
from permission_hook.errors import DeliveryError
from permission_hook.transcript.models import Status
from permission_hook.transcript.summary import status_title

if TYPE_CHECKING:
    from permission_hook.config import WebhookSettings

logger = logging.getLogger(__name__)


class WebhookPreset(str, Enum):
    SLACK = "slack"
    DISCORD = "discord"
    TELEGRAM = "telegram"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str) -> WebhookPreset:
        """Map a config string to a preset; unknown names mean ``custom``."""
        try:
            return cls(value.lower())
        except ValueError:
            return cls.CUSTOM


_SLACK_COLORS: dict[Status, str] = {
    Status.TASK_COMPLETE: "#36a64f",
    Status.REVIEW_COMPLETE: "#36a64f",
    Status.QUESTION: "#ff9900",
    Status.PLAN_READY: "#2196f3",
    Status.SESSION_LIMIT_REACHED: "#ff0000",
    Status.API_ERROR: "#ff0000",
    Status.UNKNOWN: "#808080",
}

_DISCORD_COLORS: dict[Status, int] = {
    Status.TASK_COMPLETE: 3582783,
    Status.REVIEW_COMPLETE: 3582783,
    Status.QUESTION: 16750848,
    Status.PLAN_READY: 2201331,
    Status.SESSION_LIMIT_REACHED: 16711680,
    Status.API_ERROR: 16711680,
    Status.UNKNOWN: 8421504,
}


def format_payload(
    preset: WebhookPreset,
    status: Status,
    summary: str,
    session: str,
    chat_id: str | None = None,
) -> dict[str, Any]:
    """Build the JSON body the *preset* service expects."""
    title = status_title(status)
    if preset is WebhookPreset.SLACK:
        return {
            "attachments": [
                {
                    "color": _SLACK_COLORS[status],
                    "title": title,
                    "text": summary,
                    "footer": session,
                }
            ]
        }
    if preset is WebhookPreset.DISCORD:
        return {
            "embeds": [
                {
                    "title": title,
                    "description": summary,
                    "color": _DISCORD_COLORS[status],
                    "footer": {"text": session},
                }
            ]
        }
    if preset is WebhookPreset.TELEGRAM:
        return {
            "chat_id": chat_id or "",
            "text": f"<b>{title}</b>\n{summary}\n<i>{session}</i>",
            "parse_mode": "HTML",
        }
    return {
        "status": status.value,
        "title": title,
        "message": summary,
        "session": session,
    }


def should_send(settings: WebhookSettings, status: Status) -> bool:
    return settings.enabled and status is not Status.UNKNOWN


class WebhookNotifier:
    """Posts status notifications to the configured webhook.

    Every send goes through :func:`~permission_hook.delivery.reliability.deliver`
    with a rate limiter and circuit breaker owned by this notifier.
    Satisfies the :class:`~permission_hook.notify.Notifier` protocol.
    """

    def __init__(
        self,
        settings: WebhookSettings,
        *,
        rate_limiter: RateLimiter | None = None,
        breaker: CircuitBreaker | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._rate_limiter = rate_limiter or RateLimiter(settings.rate_limit_per_minute)
        self._breaker = breaker or CircuitBreaker(
            settings.circuit_breaker_threshold,
            settings.circuit_breaker_recovery_seconds,
        )
        self._retry = RetryPolicy(settings.retry_max_attempts if settings.retry_enabled else 1)
        self._sleep = sleep

    @property
    def preset(self) -> WebhookPreset:
        return WebhookPreset.parse(self._settings.preset)

    async def notify(self, status: Status, summary: str, session: str) -> bool:
        return await self.send(status, summary, session)

    async def send(self, status: Status, summary: str, session: str) -> bool:
        """Deliver one notification; ``False`` when it was not applicable.

        Raises :class:`DeliveryError` (or a subclass) when delivery failed.
        """
        if not should_send(self._settings, status):
            return False
        if not self._settings.url:
            raise DeliveryError("webhook URL not configured")

        payload = format_payload(
            self.preset, status, summary, session, self._settings.telegram_chat_id
        )
        client = httpx.AsyncClient(timeout=self._settings.timeout)

        async def _post() -> httpx.Response:
            response = await client.post(self._settings.url, json=payload)
            response.raise_for_status()
            return response

        try:
            await deliver(
                _post,
                rate_limiter=self._rate_limiter,
                breaker=self._breaker,
                retry=self._retry,
                sleep=self._sleep,
                channel=f"webhook.{self.preset.value}",
            )
        finally:
            await client.aclose()
        logger.debug("Webhook delivered: %s", status.value)
        return True
