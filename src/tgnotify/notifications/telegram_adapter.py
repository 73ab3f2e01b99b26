"""Telegram Bot API delivery adapter (``sendMessage`` to one fixed chat)."""

from __future__ import annotations

import logging
from typing import Any

from tgnotify.defaults import DELIVERY_TIMEOUT_SECONDS, TELEGRAM_API_BASE
from tgnotify.notifications.port import DeliveryError

log = logging.getLogger("tgnotify.notifications.telegram")

_HTTP_ERROR_THRESHOLD = 400


class TelegramDeliveryAdapter:
    """Sends every message to the configured chat through the Bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: int,
        *,
        api_base: str = TELEGRAM_API_BASE,
        timeout: float = DELIVERY_TIMEOUT_SECONDS,
    ) -> None:
        if not bot_token:
            raise ValueError("bot token is required")
        self._token = bot_token
        self._chat_id = chat_id
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def chat_id(self) -> int:
        return self._chat_id

    def _url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._token}/{method}"

    def _call(self, method: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        import httpx

        try:
            if payload is None:
                resp = httpx.get(self._url(method), timeout=self._timeout)
            else:
                resp = httpx.post(self._url(method), json=payload, timeout=self._timeout)
        except Exception as e:
            # The exception text may embed the URL, which carries the token.
            raise DeliveryError(f"telegram {method} request failed: {type(e).__name__}") from None

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= _HTTP_ERROR_THRESHOLD or not data.get("ok"):
            description = data.get("description") or f"HTTP {resp.status_code}"
            raise DeliveryError(f"telegram {method} rejected: {description}")
        return data

    def deliver(self, message: str) -> None:
        self._call("sendMessage", {
            "chat_id": self._chat_id,
            "text": message,
            "disable_notification": False,
        })
        log.debug("Delivered message to chat %s", self._chat_id)

    def verify(self) -> None:
        """Check the bot credential with ``getMe``; raises ``DeliveryError``."""
        data = self._call("getMe")
        bot = data.get("result") or {}
        log.info("Authorized on telegram account %s", bot.get("username", "?"))
