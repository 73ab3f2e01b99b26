"""Caller authentication for read endpoints.

The notify endpoint carries its token in the JSON body and is checked by
the relay itself; read endpoints take it from the ``X-Notify-Token``
header through the ``require_token`` dependency.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from tgnotify.defaults import INVALID_TOKEN_MESSAGE, TOKEN_HEADER

log = logging.getLogger("tgnotify.auth")

_KEY_PREFIX_LEN = 4  # characters of a token shown in logs


def require_token(request: Request) -> str:
    """FastAPI dependency: 403 unless the header holds a configured token."""
    token = request.headers.get(TOKEN_HEADER, "")
    if not token or not request.app.state.relay.is_authorized(token):
        log.warning(
            "Rejected %s %s with token %s...",
            request.method, request.url.path, token[:_KEY_PREFIX_LEN] or "<none>",
        )
        raise HTTPException(status_code=403, detail=INVALID_TOKEN_MESSAGE)
    return token
