"""Notification collaborator — where day summaries are posted.

    TelegramNotifier  — POST {api_url}/bot<token>/sendMessage
    NullNotifier      — logs the message and returns

A notifier is any async callable taking the message text. Failures raise
NotifyError; the orchestrator catches them and records sent=False.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from hearthwood.errors import TransportError

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class NotifyError(TransportError):
    """Raised when a notification cannot be delivered."""


class Notifier(Protocol):
    async def __call__(self, message: str) -> None: ...


class TelegramNotifier:
    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_url: str = TELEGRAM_API_URL,
        timeout: float = 10.0,
    ) -> None:
        self._url = f"{api_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._chat_id = chat_id
        self._timeout = timeout

    async def __call__(self, message: str) -> None:
        body = {"chat_id": self._chat_id, "text": message, "parse_mode": "Markdown"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=body)
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotifyError(f"Telegram returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise NotifyError(f"Telegram request failed: {e}") from e
        logger.debug("Notification sent to chat %s (%d chars)", self._chat_id, len(message))


class NullNotifier:
    async def __call__(self, message: str) -> None:
        logger.info("Notification (not sent): %s", message)


def build_notifier(bot_token: str, chat_id: str) -> Notifier:
    if bot_token and chat_id:
        return TelegramNotifier(bot_token, chat_id)
    logger.info("No notification channel configured; summaries are only logged")
    return NullNotifier()
