from __future__ import annotations

import importlib
import os
import sys

from fastapi.testclient import TestClient

from lane_core.audit_export import replay_events, to_csv, to_json
from lane_core.state import rebuild_lane_ratings_from_history
from lane_core.types import HistoryEntry


_DEF_MODULES = [
    "lane_core.config",
    "api.storage",
    "api.app",
]


def _reload_app(tmp_path) -> tuple[object, object]:
    os.environ["DATA_DIR"] = str(tmp_path)
    for name in _DEF_MODULES:
        if name in sys.modules:
            importlib.reload(sys.modules[name])
        else:
            __import__(name)
    storage = sys.modules["api.storage"]
    app_module = sys.modules["api.app"]
    return storage, app_module


def _history():
    return [
        HistoryEntry("partnerships_s0", "partnerships", "yes", "2025-01-01T00:00:00Z"),
        HistoryEntry("content_s0", "content", "no", "2025-01-01T00:00:02Z"),
        HistoryEntry("growth_s0", "growth", "skip", "2025-01-01T00:00:04Z"),
        HistoryEntry("partnerships_s1", "partnerships", "yes", "2025-01-01T00:00:06Z"),
    ]


def test_replay_tracks_lane_ratings():
    events = replay_events(_history())

    assert [e["round"] for e in events] == [1, 2, 3, 4]
    assert events[0]["rating_before"] == 1000
    assert events[0]["rating_after"] == 1012
    assert events[0]["delta"] == 12
    assert events[1]["delta"] == -12
    assert events[2]["delta"] == 0
    assert events[3]["rating_before"] == 1012
    assert events[3]["delta"] > 0

    final = rebuild_lane_ratings_from_history(_history())
    assert events[3]["rating_after"] == final["partnerships"]


def test_csv_and_json_exports_share_fields():
    events = replay_events(_history())
    payload = to_json(events)
    assert len(payload["events"]) == 4
    assert set(payload["events"][0]) == {
        "t", "round", "statement_id", "lane_id", "answer", "rating_before", "rating_after", "delta",
    }

    lines = [line for line in to_csv(events).strip().splitlines() if line]
    assert len(lines) == len(events) + 1
    header = lines[0].split(",")
    assert header[0] == "t"
    assert header[-1] == "delta"


def test_malformed_events_are_normalized():
    payload = to_json([{"round": "x", "delta": None}, None])
    first = payload["events"][0]
    assert first["round"] == 0
    assert first["delta"] == 0.0
    assert first["statement_id"] == ""


def test_audit_exports_available(tmp_path, monkeypatch):
    monkeypatch.setenv("SETTLE_MS", "0")
    _storage, app_module = _reload_app(tmp_path / "enabled")
    client = TestClient(app_module.app)

    start = client.post("/session/start", json={"seed": 5})
    assert start.status_code == 200
    sid = start.json()["session_id"]

    for ans in ("yes", "no", "skip"):
        resp = client.post(f"/session/{sid}/answer", json={"answer": ans})
        assert resp.json()["accepted"]

    json_resp = client.get(f"/session/{sid}/audit.json")
    assert json_resp.status_code == 200
    body = json_resp.json()
    assert body["session_id"] == sid
    assert [e["answer"] for e in body["events"]] == ["yes", "no", "skip"]

    csv_resp = client.get(f"/session/{sid}/audit.csv")
    assert csv_resp.status_code == 200
    assert csv_resp.headers["content-type"].startswith("text/csv")
    csv_lines = [line for line in csv_resp.text.strip().splitlines() if line]
    assert len(csv_lines) == 4


def test_audit_exports_disabled(tmp_path, monkeypatch):
    monkeypatch.setenv("AUDIT_EXPORT_ENABLED", "0")
    _storage, app_module = _reload_app(tmp_path / "disabled")
    client = TestClient(app_module.app)

    sid = client.post("/session/start", json={}).json()["session_id"]

    assert client.get(f"/session/{sid}/audit.json").status_code == 404
    assert client.get(f"/session/{sid}/audit.csv").status_code == 404
