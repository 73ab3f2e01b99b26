"""Delivery port: protocol definition for outbound message adapters."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


class DeliveryError(Exception):
    """Raised when a message could not be delivered to the chat destination."""


@runtime_checkable
class DeliveryPort(Protocol):
    """Protocol for outbound delivery adapters.

    ``deliver`` makes exactly one attempt and raises ``DeliveryError`` on
    failure.  The destination is fixed when the adapter is built.
    """

    @property
    def name(self) -> str: ...

    def deliver(self, message: str) -> None: ...

    def verify(self) -> None: ...
