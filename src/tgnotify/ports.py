"""Storage port interface for tgnotify.

Defines the Protocol any persistence backend must implement.  The relay
and the throttle policy depend on this port, never on a concrete store.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tgnotify.models import NotificationEvent


class StorageError(Exception):
    """Raised when the event store cannot read or write."""


@runtime_checkable
class EventStorePort(Protocol):
    def append(self, event: NotificationEvent) -> NotificationEvent: ...
    def most_recent(self, event_type: str) -> NotificationEvent | None: ...
    def query(
        self,
        *,
        event_type: str | None = None,
        limit: int = 100,
    ) -> list[NotificationEvent]: ...
    def count(self, event_type: str | None = None) -> int: ...
    def close(self) -> None: ...
