"""Replay a run's history into per-answer audit rows and export them as JSON/CSV."""
from __future__ import annotations

from typing import Iterable, List, Dict, Any
import csv
import io

from .catalog import LANE_IDS
from .elo import rating_after_answer
from .state import initial_lane_ratings
from .types import HistoryEntry

_FIELDS: tuple[str, ...] = (
    "t",
    "round",
    "statement_id",
    "lane_id",
    "answer",
    "rating_before",
    "rating_after",
    "delta",
)


def replay_events(history: Iterable[HistoryEntry]) -> List[Dict[str, Any]]:
    """One event per history entry, with the lane rating before and after it."""

    ratings = initial_lane_ratings()
    events: List[Dict[str, Any]] = []
    for idx, entry in enumerate(history, start=1):
        before = ratings.get(entry.lane_id)
        after = before
        if entry.lane_id in LANE_IDS and before is not None:
            after = rating_after_answer(before, entry.answer)
            ratings[entry.lane_id] = after
        events.append({
            "t": entry.timestamp,
            "round": idx,
            "statement_id": entry.statement_id,
            "lane_id": entry.lane_id,
            "answer": entry.answer,
            "rating_before": before,
            "rating_after": after,
            "delta": (after - before) if before is not None and after is not None else 0,
        })
    return events


def _normalize_event(event: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in _FIELDS:
        val = event.get(key)
        if key == "round":
            try:
                out[key] = int(val)
            except (TypeError, ValueError):
                out[key] = 0
        elif key in {"rating_before", "rating_after", "delta"}:
            try:
                out[key] = float(val)
            except (TypeError, ValueError):
                out[key] = 0.0
        else:
            out[key] = "" if val is None else str(val)
    return out


def to_json(events: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a JSON-safe payload for audit export."""

    normalized: List[Dict[str, Any]] = [_normalize_event(evt or {}) for evt in events]
    return {"events": normalized}


def to_csv(events: Iterable[Dict[str, Any]]) -> str:
    """Render audit events as CSV with a fixed header."""

    normalized = [_normalize_event(evt or {}) for evt in events]
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_FIELDS)
    writer.writeheader()
    for row in normalized:
        writer.writerow(row)
    return buf.getvalue()


__all__ = ["replay_events", "to_json", "to_csv"]
