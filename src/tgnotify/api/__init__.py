"""FastAPI application factory for tgnotify."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tgnotify.adapters.sqlite_store import SqliteStore
from tgnotify.api.routers import events, health, notify
from tgnotify.config import Settings, StartupError
from tgnotify.models import utc_now
from tgnotify.notifications.dispatcher import Dispatcher
from tgnotify.notifications.log_adapter import LogDeliveryAdapter
from tgnotify.notifications.port import DeliveryError, DeliveryPort
from tgnotify.notifications.telegram_adapter import TelegramDeliveryAdapter
from tgnotify.observability import add_observability_middleware
from tgnotify.ports import EventStorePort, StorageError
from tgnotify.relay import NotificationRelay
from tgnotify.throttle import ThrottlePolicy

log = logging.getLogger("tgnotify.api")


def build_delivery(settings: Settings) -> DeliveryPort:
    if settings.dry_run:
        return LogDeliveryAdapter()
    return TelegramDeliveryAdapter(
        settings.bot_token, settings.chat_id, timeout=settings.delivery_timeout,
    )


def build_relay(
    settings: Settings,
    *,
    store: EventStorePort | None = None,
    delivery: DeliveryPort | None = None,
    clock: Callable[[], datetime] = utc_now,
    verify_delivery: bool = True,
) -> NotificationRelay:
    """Wire store, policy, dispatcher and relay. Raises ``StartupError``."""
    if store is None:
        try:
            store = SqliteStore(settings.db_path)
        except StorageError as e:
            raise StartupError(str(e)) from e

    if delivery is None:
        delivery = build_delivery(settings)
    if verify_delivery:
        try:
            delivery.verify()
        except DeliveryError as e:
            raise StartupError(f"delivery channel {delivery.name} unusable: {e}") from e

    return NotificationRelay(
        tokens=settings.tokens,
        policy=ThrottlePolicy(settings.rules, store),
        dispatcher=Dispatcher(delivery, timeout=settings.delivery_timeout),
        store=store,
        clock=clock,
    )


def create_app(
    settings: Settings,
    *,
    store: EventStorePort | None = None,
    delivery: DeliveryPort | None = None,
    clock: Callable[[], datetime] = utc_now,
    verify_delivery: bool = True,
) -> FastAPI:
    """Build and return a configured FastAPI application."""
    relay = build_relay(
        settings, store=store, delivery=delivery, clock=clock,
        verify_delivery=verify_delivery,
    )

    app = FastAPI(
        title="tgnotify",
        description="Token-authenticated, per-type throttled notification relay",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.relay = relay

    log.info(
        "Relay ready: %d token(s), %d cooldown rule(s), delivery=%s",
        len(settings.tokens), len(settings.rules), relay.dispatcher.adapter.name,
    )

    # ---------------------------------------------------------------
    # Exception handlers: {"error": "..."} format
    # ---------------------------------------------------------------

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            loc = ".".join(str(l) for l in first.get("loc", []))
            msg = first.get("msg", "Invalid input")
            detail = f"{loc}: {msg}" if loc else msg
        else:
            detail = "Invalid request"
        return JSONResponse(
            status_code=400,
            content={"error": detail},
        )

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        log.exception("Event store failure on %s %s", request.method, request.url.path,
                      exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"error": "event store unavailable"},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        log.exception("Unhandled exception on %s %s", request.method, request.url.path,
                      exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"error": str(exc)},
        )

    # ---------------------------------------------------------------
    # Middleware
    # ---------------------------------------------------------------

    add_observability_middleware(app)

    # ---------------------------------------------------------------
    # Routers
    # ---------------------------------------------------------------

    app.include_router(notify.router)
    app.include_router(events.router)
    app.include_router(health.router)

    return app