"""HTTP tests for the FastAPI app."""

import json
from urllib.request import Request, urlopen

import pytest
from fastapi.testclient import TestClient

from conftest import FakeDelivery
from tgnotify.api import create_app
from tgnotify.config import StartupError
from tgnotify.ports import StorageError


def _payload(**kw):
    data = {"type": "disk-full", "message": "disk / is 99% full", "token": "valid1"}
    data.update(kw)
    return data


class TestNotify:
    def test_created(self, client, store):
        resp = client.post("/notify/", json=_payload())
        assert resp.status_code == 201
        assert resp.json() == {"status": "notified"}
        assert resp.headers["content-type"].startswith("application/json")
        assert store.count("disk-full") == 1

    def test_without_trailing_slash(self, client, store):
        resp = client.post("/notify", json=_payload(type="cpu-hot"))
        assert resp.status_code == 201
        assert store.count("cpu-hot") == 1

    def test_throttled(self, client, store, clock):
        client.post("/notify/", json=_payload())
        clock.advance(30)
        resp = client.post("/notify/", json=_payload())
        assert resp.status_code == 200
        assert resp.json() == {"status": "notification timeout"}
        assert store.count("disk-full") == 1

    def test_extra_field_is_bad_request(self, client, store):
        resp = client.post("/notify/", json=_payload(extra="x"))
        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("text/plain")
        assert "extra" in resp.text
        assert store.count() == 0

    def test_malformed_json_is_bad_request(self, client, store):
        resp = client.post("/notify/", content=b"{oops", headers={"content-type": "application/json"})
        assert resp.status_code == 400
        assert store.count() == 0

    def test_invalid_token_is_forbidden(self, client, store, delivery):
        resp = client.post("/notify/", json=_payload(token="abc"))
        assert resp.status_code == 403
        assert resp.text == "Invalid token"
        assert store.count() == 0
        assert delivery.attempts == 0

    def test_delivery_failure_still_created(self, settings, store, clock):
        app = create_app(settings, store=store, delivery=FakeDelivery(fail=True), clock=clock)
        with TestClient(app) as client:
            resp = client.post("/notify/", json=_payload())
        assert resp.status_code == 201
        assert store.count("disk-full") == 1

    def test_storage_error_is_server_error(self, settings, clock):
        class BrokenStore:
            def most_recent(self, event_type):
                raise StorageError("disk I/O error")

            def append(self, event):
                raise StorageError("disk I/O error")

            def count(self, event_type=None):
                raise StorageError("disk I/O error")

        app = create_app(settings, store=BrokenStore(), delivery=FakeDelivery(), clock=clock)
        with TestClient(app) as client:
            resp = client.post("/notify/", json=_payload())
            assert resp.status_code == 500
            assert resp.json() == {"error": "event store unavailable"}
            # The process keeps serving.
            assert client.get("/health/live").status_code == 200
            assert client.get("/health/ready").status_code == 503


class TestStartup:
    def test_bad_credential_prevents_startup(self, settings, store):
        with pytest.raises(StartupError, match="Unauthorized"):
            create_app(settings, store=store, delivery=FakeDelivery(verify_ok=False))

    def test_unopenable_database_prevents_startup(self, tmp_path):
        from conftest import make_config
        from tgnotify.config import settings_from_dict

        blocker = tmp_path / "file"
        blocker.write_text("")
        settings = settings_from_dict(
            make_config(databasePath=str(blocker / "db.sqlite3")), env={},
        )
        with pytest.raises(StartupError):
            create_app(settings, delivery=FakeDelivery())

    def test_dry_run_builds_log_adapter(self, db_path):
        from conftest import make_config
        from tgnotify.config import settings_from_dict

        settings = settings_from_dict(make_config(dryRun=True, databasePath=str(db_path)), env={})
        app = create_app(settings)
        assert app.state.relay.dispatcher.adapter.name == "dry-run"


class TestEvents:
    def test_requires_token(self, client):
        assert client.get("/events").status_code == 403
        resp = client.get("/events", headers={"X-Notify-Token": "nope"})
        assert resp.status_code == 403
        assert resp.json() == {"error": "Invalid token"}

    def test_lists_events_newest_first(self, client, clock):
        client.post("/notify/", json=_payload(type="a", message="first"))
        clock.advance(1)
        client.post("/notify/", json=_payload(type="b", message="second"))

        resp = client.get("/events", headers={"X-Notify-Token": "valid2"})
        assert resp.status_code == 200
        assert [e["message"] for e in resp.json()] == ["second", "first"]

        resp = client.get("/events", params={"type": "a"}, headers={"X-Notify-Token": "valid2"})
        assert [e["type"] for e in resp.json()] == ["a"]

    def test_limit_is_validated(self, client):
        resp = client.get("/events", params={"limit": 0}, headers={"X-Notify-Token": "valid1"})
        assert resp.status_code == 400

    def test_latest_reports_cooldown(self, client):
        client.post("/notify/", json=_payload())
        resp = client.get("/events/latest/disk-full", headers={"X-Notify-Token": "valid1"})
        data = resp.json()
        assert data["cooldown"] == 60.0
        assert data["event"]["message"] == "disk / is 99% full"

        resp = client.get("/events/latest/unknown", headers={"X-Notify-Token": "valid1"})
        assert resp.json() == {"type": "unknown", "cooldown": None, "event": None}


class TestHealth:
    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert "timestamp" in data

    def test_ready(self, client):
        assert client.get("/health/ready").json()["status"] == "ok"

    def test_metrics_count_outcomes(self, client, clock):
        client.post("/notify/", json=_payload())
        client.post("/notify/", json=_payload())
        client.post("/notify/", json=_payload(token="abc"))
        text = client.get("/metrics").text
        assert 'tgnotify_notifications_total{outcome="created",type="disk-full"} 1' in text
        assert 'tgnotify_notifications_total{outcome="throttled",type="disk-full"} 1' in text
        assert 'tgnotify_notifications_total{outcome="forbidden"} 1' in text
        assert 'tgnotify_http_requests_total{method="POST",path="/notify/",status="201"} 1' in text

    def test_rejected_types_do_not_add_metric_series(self, client):
        for i in range(50):
            resp = client.post("/notify/", json=_payload(type=f"junk-{i}", token="abc"))
            assert resp.status_code == 403
        text = client.get("/metrics").text
        forbidden = [l for l in text.splitlines() if 'outcome="forbidden"' in l]
        assert forbidden == ['tgnotify_notifications_total{outcome="forbidden"} 50']
        assert "junk-" not in text


class TestLiveServer:
    def test_notify_over_http(self, live_server, store):
        body = json.dumps(_payload()).encode()
        req = Request(f"{live_server}/notify/", data=body, method="POST",
                      headers={"Content-Type": "application/json"})
        resp = urlopen(req)
        assert resp.status == 201
        assert json.loads(resp.read()) == {"status": "notified"}
        assert store.count("disk-full") == 1
