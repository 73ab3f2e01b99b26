"""Run the relay under uvicorn."""

from __future__ import annotations

import json

from tgnotify.config import Settings
from tgnotify.models import now_iso


def serve(
    settings: Settings,
    host: str,
    port: int,
    *,
    log_level: str = "info",
) -> None:
    """Start the HTTP API server. Raises ``StartupError`` before listening."""
    import uvicorn

    from tgnotify.api import create_app

    app = create_app(settings)
    print(json.dumps({"event": "server_started", "host": host, "port": port, "timestamp": now_iso()}))
    uvicorn.run(app, host=host, port=port, log_level=log_level.lower(), log_config=None)
