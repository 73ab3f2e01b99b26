"""Health check and metrics endpoints (no auth required)."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from tgnotify.models import now_iso
from tgnotify.observability import generate_metrics
from tgnotify.ports import StorageError

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok", "timestamp": now_iso()}


@router.get("/health/ready")
def health_ready(request: Request):
    """Readiness probe: verifies the event store is readable."""
    store = request.app.state.relay.store
    try:
        store.count()
        return {"status": "ok", "timestamp": now_iso()}
    except StorageError as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "error": str(e), "timestamp": now_iso()},
        )


@router.get("/health/live")
def health_live():
    """Liveness probe: process is alive."""
    return {"status": "ok"}


@router.get("/metrics")
def metrics():
    """Prometheus-compatible metrics endpoint."""
    return Response(content=generate_metrics(), media_type="text/plain; charset=utf-8")
