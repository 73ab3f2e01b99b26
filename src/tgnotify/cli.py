"""CLI for tgnotify.

Commands:
  tgnotify serve          start the HTTP relay
  tgnotify check-config   validate the configuration file and print a summary
  tgnotify events         list stored notification events
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any

from tgnotify.defaults import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    ENV_HOST,
    ENV_LOG_LEVEL,
    ENV_PORT,
    QUERY_LIMIT_SMALL,
)


def _out(data: Any) -> int:
    print(json.dumps(data, indent=2, default=str))
    if isinstance(data, dict) and "error" in data:
        return 1
    return 0


def _env_port() -> int:
    from tgnotify.config import ConfigError

    raw = os.environ.get(ENV_PORT, "")
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PORT} must be an integer, got {raw!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tgnotify",
        description="Token-authenticated, per-type throttled Telegram notification relay",
    )
    parser.add_argument("--config", default=None,
                        help="JSON configuration file (default: $TGNOTIFY_CONFIG or ./config.json)")
    parser.add_argument("--log-level", default=os.environ.get(ENV_LOG_LEVEL, "INFO"))
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("serve", help="Start the HTTP relay")
    p.add_argument("--host", default=os.environ.get(ENV_HOST, DEFAULT_HOST))
    p.add_argument("--port", type=int, default=None, help="Listen port (default: $TGNOTIFY_PORT or 8080)")

    sub.add_parser("check-config", help="Validate configuration and print a redacted summary")

    p = sub.add_parser("events", help="List stored notification events, newest first")
    p.add_argument("--type", dest="event_type", default=None)
    p.add_argument("--limit", type=int, default=QUERY_LIMIT_SMALL)

    return parser


# ===================================================================
# Commands
# ===================================================================

def cmd_serve(args: argparse.Namespace, settings) -> int:
    from tgnotify import server

    port = args.port if args.port is not None else _env_port()
    server.serve(settings, host=args.host, port=port, log_level=args.log_level)
    return 0


def cmd_check_config(args: argparse.Namespace, settings) -> int:
    return _out({"status": "ok", **settings.redacted()})


def cmd_events(args: argparse.Namespace, settings) -> int:
    from tgnotify.adapters.sqlite_store import SqliteStore

    store = SqliteStore(settings.db_path)
    try:
        events = store.query(event_type=args.event_type, limit=args.limit)
    finally:
        store.close()
    return _out([e.to_dict() for e in events])


_DISPATCH = {
    "serve": cmd_serve,
    "check-config": cmd_check_config,
    "events": cmd_events,
}


def main(argv: list[str] | None = None) -> int:
    from tgnotify.config import StartupError, load_settings
    from tgnotify.observability import setup_logging
    from tgnotify.ports import StorageError

    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    handler = _DISPATCH.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    setup_logging(args.log_level)
    try:
        settings = load_settings(args.config)
        return handler(args, settings)
    except (StartupError, StorageError) as e:
        return _out({"error": str(e)})


if __name__ == "__main__":
    sys.exit(main())
