"""Single-attempt, time-bounded notification dispatch. Never raises."""

from __future__ import annotations

import logging

from tgnotify.defaults import DELIVERY_TIMEOUT_SECONDS
from tgnotify.notifications.port import DeliveryError, DeliveryPort
from tgnotify.observability import record_delivery
from tgnotify.resilience import OperationTimeout, call_with_timeout

log = logging.getLogger("tgnotify.notifications")


class Dispatcher:
    """Forwards allowed events to a delivery adapter.

    Exactly one attempt per call.  Failures (adapter errors, timeouts) are
    logged and reported as ``False``; they never reach the caller.
    """

    def __init__(self, adapter: DeliveryPort, timeout: float = DELIVERY_TIMEOUT_SECONDS) -> None:
        self._adapter = adapter
        self._timeout = timeout

    @property
    def adapter(self) -> DeliveryPort:
        return self._adapter

    def deliver(self, message: str, *, event_type: str = "") -> bool:
        try:
            call_with_timeout(self._adapter.deliver, self._timeout, message)
        except (DeliveryError, OperationTimeout) as e:
            log.warning(
                "Delivery via %s failed: %s", self._adapter.name, e,
                extra={"event_type": event_type},
            )
            record_delivery(self._adapter.name, ok=False)
            return False
        except Exception:
            log.exception(
                "Delivery via %s raised unexpectedly", self._adapter.name,
                extra={"event_type": event_type},
            )
            record_delivery(self._adapter.name, ok=False)
            return False

        record_delivery(self._adapter.name, ok=True)
        return True
