"""Log-only delivery adapter: dry-run default when sending is disabled."""

from __future__ import annotations

import logging

log = logging.getLogger("tgnotify.notifications.dry_run")


class LogDeliveryAdapter:
    """No-op adapter. Writes the message to the log instead of sending it."""

    @property
    def name(self) -> str:
        return "dry-run"

    def deliver(self, message: str) -> None:
        log.info("Dry-run delivery: %s", message)

    def verify(self) -> None:
        return None
