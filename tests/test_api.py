from __future__ import annotations

import importlib
import json
import os
import sys

from fastapi.testclient import TestClient


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


def _client(tmp_path, monkeypatch, settle_ms: str = "0"):
    monkeypatch.setenv("SETTLE_MS", settle_ms)
    monkeypatch.setenv("EARLY_FINISH_ENABLED", "0")
    storage, app_module = _reload_app(tmp_path)
    return storage, app_module, TestClient(app_module.app)


def test_health_and_start(tmp_path, monkeypatch):
    _storage, _app, client = _client(tmp_path, monkeypatch)

    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["statements"] >= health["max_rounds"]

    body = client.post("/session/start", json={"seed": 3}).json()
    assert body["phase"] == "active"
    assert body["round"] == 1
    assert body["statement"]["id"]
    assert body["can_undo"] is False
    assert body["answer_counts"] == {"yes": 0, "no": 0, "skip": 0}


def test_answer_undo_and_stale_statement(tmp_path, monkeypatch):
    _storage, _app, client = _client(tmp_path, monkeypatch)
    start = client.post("/session/start", json={"seed": 11}).json()
    sid = start["session_id"]
    first_id = start["statement"]["id"]

    resp = client.post(f"/session/{sid}/answer", json={"answer": "yes", "statement_id": first_id}).json()
    assert resp["accepted"] is True
    assert resp["round"] == 2
    assert resp["statement"]["id"] != first_id

    stale = client.post(f"/session/{sid}/answer", json={"answer": "no", "statement_id": first_id}).json()
    assert stale["accepted"] is False
    assert stale["reason"] == "stale"
    assert stale["round"] == 2

    undone = client.post(f"/session/{sid}/undo").json()
    assert undone["undone"] is True
    assert undone["round"] == 1
    assert undone["statement"]["id"] == first_id

    again = client.post(f"/session/{sid}/undo").json()
    assert again["undone"] is False


def test_unknown_answer_rejected(tmp_path, monkeypatch):
    _storage, _app, client = _client(tmp_path, monkeypatch)
    sid = client.post("/session/start", json={}).json()["session_id"]
    resp = client.post(f"/session/{sid}/answer", json={"answer": "maybe"})
    assert resp.status_code == 422


def test_settling_drops_double_swipe(tmp_path, monkeypatch):
    _storage, _app, client = _client(tmp_path, monkeypatch, settle_ms="60000")
    sid = client.post("/session/start", json={}).json()["session_id"]

    first = client.post(f"/session/{sid}/answer", json={"answer": "yes"}).json()
    assert first["accepted"] is True
    assert first["settling"] is True

    second = client.post(f"/session/{sid}/answer", json={"answer": "no"}).json()
    assert second["accepted"] is False
    assert second["reason"] == "settling"

    settled = client.post(f"/session/{sid}/settle").json()
    assert settled["settling"] is False
    third = client.post(f"/session/{sid}/answer", json={"answer": "no"}).json()
    assert third["accepted"] is True
    assert third["answer_counts"] == {"yes": 1, "no": 1, "skip": 0}


def test_full_run_produces_one_report(tmp_path, monkeypatch):
    storage, _app, client = _client(tmp_path, monkeypatch)
    sid = client.post("/session/start", json={"seed": 2}).json()["session_id"]

    view = {}
    for step in range(64):
        view = client.post(f"/session/{sid}/answer", json={"answer": "yes" if step % 3 else "skip"}).json()
        if view["phase"] == "finished":
            break
    assert view["phase"] == "finished"
    assert view["finish_reason"] == "max_rounds"
    assert view["statement"] is None

    report = client.get(f"/session/{sid}/results").json()
    assert report["finished"] is True
    assert report["top_lane"]["id"]
    assert report["meta"]["sessionId"] == sid
    assert (storage.REPORTS_DIR / f"{report['id']}.json").exists()

    again = client.get(f"/session/{sid}/results").json()
    assert again["id"] == report["id"]

    fetched = client.get(f"/reports/{report['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["top_lane"] == report["top_lane"]

    reset = client.post(f"/session/{sid}/reset").json()
    assert reset["phase"] == "active"
    assert reset["round"] == 1
    assert client.get(f"/reports/{report['id']}").status_code == 404


def test_undo_after_finish_replaces_stored_report(tmp_path, monkeypatch):
    _storage, _app, client = _client(tmp_path, monkeypatch)
    sid = client.post("/session/start", json={"seed": 4}).json()["session_id"]

    view = {}
    for _ in range(64):
        view = client.post(f"/session/{sid}/answer", json={"answer": "yes"}).json()
        if view["phase"] == "finished":
            break
    assert view["phase"] == "finished"
    first = client.get(f"/session/{sid}/results").json()
    assert first["answer_counts"] == {"yes": 32, "no": 0, "skip": 0}

    assert client.post(f"/session/{sid}/undo").json()["undone"] is True
    assert client.get(f"/reports/{first['id']}").status_code == 404
    redo = client.post(f"/session/{sid}/answer", json={"answer": "no"}).json()
    assert redo["phase"] == "finished"

    second = client.get(f"/session/{sid}/results").json()
    assert second["id"] != first["id"]
    assert second["answer_counts"] == {"yes": 31, "no": 1, "skip": 0}


def test_results_before_finish_are_not_stored(tmp_path, monkeypatch):
    storage, _app, client = _client(tmp_path, monkeypatch)
    sid = client.post("/session/start", json={}).json()["session_id"]
    client.post(f"/session/{sid}/answer", json={"answer": "yes"})

    body = client.get(f"/session/{sid}/results").json()
    assert body["finished"] is False
    assert body["rounds_answered"] == 1
    assert "id" not in body
    assert not storage.REPORT_INDEX_PATH.exists()


def test_session_survives_restart(tmp_path, monkeypatch):
    _storage, app_module, client = _client(tmp_path, monkeypatch)
    sid = client.post("/session/start", json={"seed": 8}).json()["session_id"]
    client.post(f"/session/{sid}/answer", json={"answer": "yes"})
    before = client.get(f"/session/{sid}").json()

    app_module.SESS.clear()
    after = client.get(f"/session/{sid}").json()

    assert after["round"] == before["round"]
    assert after["statement"] == before["statement"]
    assert client.get(f"/session/{sid}/invariants").json()["ok"] is True


def test_corrupt_run_file_recovers(tmp_path, monkeypatch):
    storage, app_module, client = _client(tmp_path, monkeypatch)
    sid = client.post("/session/start", json={}).json()["session_id"]
    app_module.SESS.clear()
    (storage.RUNS_DIR / f"{sid}.json").write_text("{broken", encoding="utf-8")

    view = client.get(f"/session/{sid}").json()
    assert view["phase"] == "active"
    assert view["round"] == 1
    assert view["statement"] is not None

    saved = json.loads((storage.RUNS_DIR / f"{sid}.json").read_text(encoding="utf-8"))
    assert saved["current_statement_id"] == view["statement"]["id"]

    events = client.get("/metrics/recent").json()["events"]
    assert any(e["event"] == "state_recovered" and e["stage"] == "reset" for e in events)


def test_legacy_run_file_is_migrated(tmp_path, monkeypatch):
    storage, _app, client = _client(tmp_path, monkeypatch)
    sid = "legacy-run"
    storage.LEGACY_RUNS_DIR.mkdir(parents=True, exist_ok=True)
    (storage.LEGACY_RUNS_DIR / f"{sid}.json").write_text(json.dumps({
        "round": 2,
        "current_statement_id": "stmt-content-1",
        "history": [{
            "statement_id": "stmt-growth-1",
            "lane_id": "growth",
            "answer": "yes",
            "timestamp_iso": "2024-02-02T00:00:00Z",
        }],
    }), encoding="utf-8")

    view = client.get(f"/session/{sid}").json()
    assert view["round"] == 2
    assert view["answer_counts"]["yes"] == 1
    assert view["statement"]["id"] == "stmt-content-1"
    assert (storage.RUNS_DIR / f"{sid}.json").exists()


def test_unknown_and_unsafe_ids(tmp_path, monkeypatch):
    _storage, _app, client = _client(tmp_path, monkeypatch)
    assert client.get("/session/does-not-exist").status_code == 404
    assert client.get("/session/..%2Fetc").status_code == 404
    assert client.get("/reports/nope").status_code == 404
