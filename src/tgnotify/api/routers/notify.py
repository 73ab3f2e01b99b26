"""Notify endpoint: the single write path of the relay."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from tgnotify.relay import NotificationRelay

router = APIRouter(tags=["notify"])


@router.post("/notify/", status_code=201)
@router.post("/notify", status_code=201, include_in_schema=False)
async def notify(request: Request) -> Response:
    """Relay one event: 201 notified, 200 throttled, 400 bad body, 403 bad token."""
    relay: NotificationRelay = request.app.state.relay
    body = await request.body()
    # The relay blocks on its per-type lock, the store and the delivery call.
    result = await run_in_threadpool(relay.process, body)
    if isinstance(result.body, str):
        return PlainTextResponse(result.body, status_code=result.status_code)
    return JSONResponse(result.body, status_code=result.status_code)
