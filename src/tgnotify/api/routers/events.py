"""Event history endpoint (read-only, token protected)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from tgnotify.api.auth import require_token
from tgnotify.defaults import QUERY_LIMIT_MAX, QUERY_LIMIT_SMALL

router = APIRouter(tags=["events"])


@router.get("/events")
def query_events(
    request: Request,
    type: str | None = None,
    limit: int = Query(default=QUERY_LIMIT_SMALL, ge=1, le=QUERY_LIMIT_MAX),
    _token: str = Depends(require_token),
):
    store = request.app.state.relay.store
    return [e.to_dict() for e in store.query(event_type=type, limit=limit)]


@router.get("/events/latest/{event_type}")
def latest_event(
    request: Request,
    event_type: str,
    _token: str = Depends(require_token),
):
    """Most recent event of a type plus its cooldown state."""
    relay = request.app.state.relay
    event = relay.store.most_recent(event_type)
    rule = relay.policy.rule_for(event_type)
    return {
        "type": event_type,
        "cooldown": rule.cooldown if rule else None,
        "event": event.to_dict() if event else None,
    }
