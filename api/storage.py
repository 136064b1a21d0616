"""Utility helpers for persisting run states and finished reports.

Run state lives in one JSON file per session under ``DATA_DIR/runs`` so a
restarted API can pick a run back up through the recovery pipeline.  Reports
are written once a run finishes and indexed for shareable links.
"""

from __future__ import annotations

import json
import os
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from lane_core.persistence import FilePersistence


DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
RUNS_DIR = DATA_ROOT / "runs"
LEGACY_RUNS_DIR = DATA_ROOT / "legacy_runs"
REPORTS_DIR = DATA_ROOT / "reports"
REPORT_INDEX_PATH = DATA_ROOT / "reports_index.json"

_LOCK = threading.Lock()
_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _ensure_dirs() -> None:
    REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    RUNS_DIR.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_safe_id(value: str) -> bool:
    return bool(_SAFE_ID.match(value or ""))


def run_persistence(session_id: str) -> FilePersistence:
    """File-backed provider for one session; the legacy file is read-only."""

    _ensure_dirs()
    return FilePersistence(
        RUNS_DIR / f"{session_id}.json",
        legacy_path=LEGACY_RUNS_DIR / f"{session_id}.json",
    )


def run_exists(session_id: str) -> bool:
    return (RUNS_DIR / f"{session_id}.json").exists() or (LEGACY_RUNS_DIR / f"{session_id}.json").exists()


def save_report(report_id: str, report: Dict[str, Any], metadata: Dict[str, Any]) -> None:
    """Persist the rendered report JSON and its index metadata."""

    _ensure_dirs()
    report_path = REPORTS_DIR / f"{report_id}.json"

    with _LOCK:
        index: Dict[str, Dict[str, Any]] = _read_json(REPORT_INDEX_PATH, {})
        index[report_id] = metadata
        _write_json(REPORT_INDEX_PATH, index)

    _write_json(report_path, report)


def load_report(report_id: str) -> Optional[Dict[str, Any]]:
    path = REPORTS_DIR / f"{report_id}.json"
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return None


def find_report_by_session(session_id: str) -> Optional[Dict[str, Any]]:
    index: Dict[str, Dict[str, Any]] = _read_json(REPORT_INDEX_PATH, {})
    for rid, meta in index.items():
        if meta.get("sessionId") == session_id:
            report = load_report(rid)
            if report:
                return report
    return None


def drop_reports_for_session(session_id: str) -> int:
    """Forget reports of a session that was reset; returns how many went."""

    removed: List[str] = []
    with _LOCK:
        index: Dict[str, Dict[str, Any]] = _read_json(REPORT_INDEX_PATH, {})
        for rid, meta in list(index.items()):
            if meta.get("sessionId") == session_id:
                index.pop(rid, None)
                removed.append(rid)
        if removed:
            _write_json(REPORT_INDEX_PATH, index)
    for rid in removed:
        path = REPORTS_DIR / f"{rid}.json"
        if path.exists():
            try:
                path.unlink()
            except Exception:
                pass
    return len(removed)
