"""Notification relay: parse -> authenticate -> throttle -> dispatch -> persist.

One call to :meth:`NotificationRelay.process` walks a single request through
the pipeline and returns a :class:`RelayResult` describing the terminal
state.  HTTP rendering is left to the API layer so the pipeline can be
driven directly in tests.

Concurrency: the throttle check, the dispatch and the append for one event
type run under a per-type lock, so two concurrent requests of the same type
can never both observe "no recent event".  Requests of different types do
not contend.
"""

from __future__ import annotations

import hmac
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterable, Iterator

from pydantic import BaseModel, Field, ValidationError

from tgnotify.defaults import INVALID_TOKEN_MESSAGE, STATUS_NOTIFIED, STATUS_THROTTLED
from tgnotify.models import NotificationEvent, Outcome, RelayResult, utc_now
from tgnotify.notifications.dispatcher import Dispatcher
from tgnotify.observability import record_outcome
from tgnotify.ports import EventStorePort, StorageError
from tgnotify.throttle import ThrottlePolicy

log = logging.getLogger("tgnotify.relay")

_HTTP_OK = 200
_HTTP_CREATED = 201
_HTTP_BAD_REQUEST = 400
_HTTP_FORBIDDEN = 403

# Status for "accepted but suppressed by cooldown".
THROTTLED_STATUS_CODE = _HTTP_OK


# ---------------------------------------------------------------------------
# Request schema
# ---------------------------------------------------------------------------

class NotifyRequest(BaseModel):
    type: str = Field(..., min_length=1)
    message: str = ""
    token: str

    model_config = {"extra": "forbid", "strict": True}


class BadRequest(Exception):
    """The request body could not be decoded into a NotifyRequest."""


def parse_request(body: bytes | str) -> NotifyRequest:
    try:
        return NotifyRequest.model_validate_json(body)
    except ValidationError as e:
        raise BadRequest(_first_error(e)) from e


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid JSON body"
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    msg = first.get("msg", "Invalid input")
    return f"{loc}: {msg}" if loc else msg


def token_is_valid(token: str, valid_tokens: Iterable[str]) -> bool:
    """Exact membership test that does not short-circuit on the first match."""
    candidate = token.encode("utf-8")
    found = False
    for valid in valid_tokens:
        if hmac.compare_digest(candidate, valid.encode("utf-8")):
            found = True
    return found


# ---------------------------------------------------------------------------
# Per-type locking
# ---------------------------------------------------------------------------

class TypeLocks:
    """Registry of one lock per key; entries are dropped when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------

class NotificationRelay:
    """Orchestrates one notify request at a time per event type."""

    def __init__(
        self,
        *,
        tokens: Iterable[str],
        policy: ThrottlePolicy,
        dispatcher: Dispatcher,
        store: EventStorePort,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._tokens = frozenset(tokens)
        self._policy = policy
        self._dispatcher = dispatcher
        self._store = store
        self._clock = clock
        self._locks = TypeLocks()

    @property
    def store(self) -> EventStorePort:
        return self._store

    @property
    def policy(self) -> ThrottlePolicy:
        return self._policy

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def is_authorized(self, token: str) -> bool:
        return token_is_valid(token, self._tokens)

    def process(self, body: bytes | str) -> RelayResult:
        """Run the full pipeline for a raw request body.

        Raises ``StorageError`` when the store fails; every other outcome,
        including delivery failure, is reported in the result.
        """
        try:
            req = parse_request(body)
        except BadRequest as e:
            log.debug("Rejected malformed notify request: %s", e)
            record_outcome(Outcome.BAD_REQUEST.value)
            return RelayResult(Outcome.BAD_REQUEST, _HTTP_BAD_REQUEST, str(e))
        return self.handle(req)

    def handle(self, req: NotifyRequest) -> RelayResult:
        if not self.is_authorized(req.token):
            log.debug("Rejected notify request with invalid token", extra={"event_type": req.type})
            record_outcome(Outcome.FORBIDDEN.value)
            return RelayResult(Outcome.FORBIDDEN, _HTTP_FORBIDDEN, INVALID_TOKEN_MESSAGE)

        with self._locks.hold(req.type):
            now = self._clock()
            decision = self._policy.evaluate(req.type, now)
            if not decision.allowed:
                log.info(
                    "Suppressed %s: %.1fs left of %.1fs cooldown",
                    req.type, decision.remaining, decision.rule.cooldown,
                    extra={"event_type": req.type, "outcome": Outcome.THROTTLED.value},
                )
                record_outcome(Outcome.THROTTLED.value, req.type)
                return RelayResult(
                    Outcome.THROTTLED, THROTTLED_STATUS_CODE, {"status": STATUS_THROTTLED},
                )

            delivered = self._dispatcher.deliver(req.message, event_type=req.type)

            try:
                event = self._store.append(
                    NotificationEvent(type=req.type, timestamp=now, message=req.message)
                )
            except StorageError:
                log.error(
                    "Event %s (delivered=%s) could not be persisted; cooldown state is stale",
                    req.type, delivered,
                    extra={"event_type": req.type},
                )
                raise

        log.info(
            "Notified %s (id=%s, delivered=%s)", req.type, event.id, delivered,
            extra={"event_type": req.type, "outcome": Outcome.CREATED.value},
        )
        record_outcome(Outcome.CREATED.value, req.type)
        return RelayResult(
            Outcome.CREATED, _HTTP_CREATED, {"status": STATUS_NOTIFIED},
            event=event, delivered=delivered,
        )
