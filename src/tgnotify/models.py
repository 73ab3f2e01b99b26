"""Core data types for tgnotify."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utc_now().isoformat()


def format_timestamp(ts: datetime) -> str:
    """Render *ts* as fixed-width ISO-8601 UTC text.

    Fixed width (always microseconds, always ``+00:00``) keeps lexical
    order equal to chronological order in the database.
    """
    if ts.tzinfo is None:
        raise ValueError("timestamp must be timezone-aware")
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(raw: str) -> datetime:
    ts = datetime.fromisoformat(raw)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Outcome(str, Enum):
    """Terminal state of one relay request."""

    BAD_REQUEST = "bad_request"
    FORBIDDEN = "forbidden"
    THROTTLED = "throttled"
    CREATED = "created"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NotificationEvent:
    """One accepted notification. Immutable once stored."""

    type: str
    timestamp: datetime
    message: str = ""
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "time": format_timestamp(self.timestamp),
            "message": self.message,
        }


@dataclass(frozen=True)
class CooldownRule:
    type: str
    cooldown: float  # seconds, >= 0

    def __post_init__(self) -> None:
        if self.cooldown < 0:
            raise ValueError(f"cooldown for {self.type!r} must be >= 0, got {self.cooldown}")


@dataclass(frozen=True)
class ThrottleDecision:
    """Verdict of the throttle policy, with the data it was based on."""

    allowed: bool
    rule: CooldownRule | None = None
    last_seen: datetime | None = None
    elapsed: float | None = None

    @property
    def remaining(self) -> float:
        """Seconds until the next event of this type would be allowed."""
        if self.allowed or self.rule is None or self.elapsed is None:
            return 0.0
        return max(self.rule.cooldown - self.elapsed, 0.0)


@dataclass
class RelayResult:
    """What the relay decided for one request; rendered to HTTP by the API."""

    outcome: Outcome
    status_code: int
    body: dict[str, Any] | str
    event: NotificationEvent | None = None
    delivered: bool | None = None
