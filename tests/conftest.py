"""Shared fixtures for tgnotify tests."""

import socket
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from tgnotify.adapters.sqlite_store import SqliteStore
from tgnotify.api import build_relay, create_app
from tgnotify.config import settings_from_dict
from tgnotify.notifications.port import DeliveryError


VALID_TOKENS = ["valid1", "valid2"]
T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)

    def set(self, seconds_after_start: float) -> None:
        self.now = T0 + timedelta(seconds=seconds_after_start)


class FakeDelivery:
    """Records delivered messages; can be told to fail or to hang."""

    def __init__(self, *, fail: bool = False, hang: float = 0.0, verify_ok: bool = True) -> None:
        self.sent: list[str] = []
        self.attempts = 0
        self.fail = fail
        self.hang = hang
        self.verify_ok = verify_ok
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "fake"

    def deliver(self, message: str) -> None:
        with self._lock:
            self.attempts += 1
        if self.hang:
            time.sleep(self.hang)
        if self.fail:
            raise DeliveryError("chat unreachable")
        with self._lock:
            self.sent.append(message)

    def verify(self) -> None:
        if not self.verify_ok:
            raise DeliveryError("Unauthorized")


# ---------------------------------------------------------------------------
# Auto-use fixtures: cleanup global state between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    """Reset metric counters after every test."""
    yield
    from tgnotify.observability import reset_metrics
    reset_metrics()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("TGNOTIFY_CONFIG", "TGNOTIFY_DB_PATH", "TGNOTIFY_DRY_RUN", "TGNOTIFY_PORT"):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

@pytest.fixture
def db_path(tmp_path):
    """Path for a fresh SQLite database."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(db_path):
    """Return a fresh SqliteStore."""
    s = SqliteStore(db_path)
    yield s
    s.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def delivery():
    return FakeDelivery()


def make_config(**overrides):
    """Config file contents in the on-disk camelCase layout."""
    data = {
        "botToken": "123456:TEST-TOKEN",
        "chatId": -100200300,
        "tokens": list(VALID_TOKENS),
        "durationTimeout": [
            {"type": "disk-full", "timeoutSecond": 60},
            {"type": "heartbeat", "timeoutSecond": 0},
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def settings(db_path):
    return settings_from_dict(make_config(databasePath=str(db_path)), source="test", env={})


@pytest.fixture
def relay(settings, store, delivery, clock):
    return build_relay(settings, store=store, delivery=delivery, clock=clock)


@pytest.fixture
def app(settings, store, delivery, clock):
    return create_app(settings, store=store, delivery=delivery, clock=clock)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Live server
# ---------------------------------------------------------------------------

@pytest.fixture
def live_server(app):
    """Start the app under uvicorn on a random port."""
    import uvicorn

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]

    config = uvicorn.Config(app, host="127.0.0.1", port=port, log_level="error")
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()

    deadline = time.time() + 10
    while not server.started and time.time() < deadline:
        time.sleep(0.05)

    yield f"http://127.0.0.1:{port}"

    server.should_exit = True
    thread.join(timeout=5)


# ---------------------------------------------------------------------------
# Marker registration and auto-tagging
# ---------------------------------------------------------------------------

def pytest_collection_modifyitems(items):
    """Auto-mark tests that use the live_server fixture as integration."""
    for item in items:
        if "live_server" in item.fixturenames:
            item.add_marker(pytest.mark.integration)
