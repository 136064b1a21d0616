"""Run state construction, replay and legacy migration.

Everything derived (seen ids, per-lane shown counts, answer tallies and the
lane ratings themselves) can be recomputed from ``history`` alone, so replay
is the single source of truth for undo, healing and migration.
"""
from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import config
from .catalog import LANE_IDS, StatementCatalog
from .elo import rating_after_answer
from .types import ANSWERS, AnswerCounts, HistoryEntry, RunState

log = logging.getLogger(__name__)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def initial_lane_ratings() -> Dict[str, float]:
    return {lane: config.BASELINE_RATING for lane in LANE_IDS}


def fresh_run_state() -> RunState:
    return RunState(
        round=1,
        max_rounds=config.MAX_ROUNDS,
        lane_ratings=initial_lane_ratings(),
        schema_version=config.SCHEMA_VERSION,
    )


def normalize_answer(raw: object) -> Optional[str]:
    """Map a stored answer onto yes/no/skip/meh, case-insensitively."""

    if not isinstance(raw, str):
        return None
    val = raw.strip().lower()
    return val if val in ANSWERS else None


def answer_bucket(answer: Optional[str]) -> Optional[str]:
    if answer in ("skip", "meh"):
        return "skip"
    if answer in ("yes", "no"):
        return answer
    return None


def seen_ids_from_history(history: Iterable[HistoryEntry]) -> List[str]:
    out: List[str] = []
    for entry in history:
        if entry.statement_id not in out:
            out.append(entry.statement_id)
    return out


def lane_counts_from_history(history: Iterable[HistoryEntry]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for entry in history:
        counts[entry.lane_id] = counts.get(entry.lane_id, 0) + 1
    return counts


def answer_counts_from_history(history: Iterable[HistoryEntry]) -> AnswerCounts:
    counts = AnswerCounts()
    for entry in history:
        bucket = answer_bucket(entry.answer)
        if bucket is not None:
            setattr(counts, bucket, getattr(counts, bucket) + 1)
    return counts


def rebuild_derived_fields(state: RunState) -> RunState:
    """Return a copy whose tallies are a replay of ``state.history``."""

    out = state.copy()
    out.seen_statement_ids = seen_ids_from_history(out.history)
    out.lane_counts_shown = lane_counts_from_history(out.history)
    out.answer_counts = answer_counts_from_history(out.history)
    return out


def rebuild_lane_ratings_from_history(history: Iterable[HistoryEntry]) -> Dict[str, float]:
    ratings = initial_lane_ratings()
    for entry in history:
        if entry.lane_id not in ratings:
            continue
        ratings[entry.lane_id] = rating_after_answer(ratings[entry.lane_id], entry.answer)
    return ratings


def expected_presented(history: Iterable[HistoryEntry], current: Optional[str]) -> List[str]:
    """Presented stack implied by answered ids plus the pending one."""

    stack = seen_ids_from_history(history)
    if current is not None and current not in stack:
        stack.append(current)
    return stack


def serialize_state(state: RunState) -> bytes:
    return json.dumps(state.to_dict(), indent=2, sort_keys=True).encode("utf-8")


# ---------------------------------------------------------------- migration --

def _is_finite_number(val: object) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool) and math.isfinite(val)


def _migrate_ratings(raw: object, notes: List[str]) -> Dict[str, float]:
    ratings = initial_lane_ratings()
    src = raw if isinstance(raw, dict) else {}
    if not isinstance(raw, dict):
        notes.append("lane_ratings missing; reset all lanes to baseline")
    missing = [lane for lane in LANE_IDS if lane not in src]
    if missing and isinstance(raw, dict):
        notes.append(f"filled missing lanes with baseline: {', '.join(missing)}")
    unknown = sorted(str(k) for k in src if k not in LANE_IDS)
    if unknown:
        notes.append(f"dropped unknown lanes: {', '.join(unknown)}")
    for lane in LANE_IDS:
        if lane not in src:
            continue
        val = src[lane]
        if _is_finite_number(val):
            ratings[lane] = val
        else:
            notes.append(f"replaced non-finite rating for {lane}")
    return ratings


def _migrate_history(raw: object, catalog: StatementCatalog, now: str, notes: List[str]) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        if raw is not None:
            notes.append("history was not a list; cleared")
        return []
    out: List[Dict[str, Any]] = []
    dropped = 0
    backfilled = 0
    for entry in raw:
        if not isinstance(entry, dict):
            dropped += 1
            continue
        sid = entry.get("statement_id")
        if not catalog.is_valid_id(sid):
            # legacy card entries carry card_id/picked and no statement
            dropped += 1
            continue
        lane = catalog.lane_of(sid)
        if entry.get("lane_id") != lane:
            notes.append(f"corrected lane for {sid} to {lane}")
        ts = entry.get("timestamp") or entry.get("timestamp_iso")
        if not isinstance(ts, str) or not ts:
            ts = now
            backfilled += 1
        raw_answer = entry.get("answer")
        answer = normalize_answer(raw_answer)
        if raw_answer is not None and answer != raw_answer:
            if answer is None:
                notes.append(f"dropped unrecognised answer {raw_answer!r} for {sid}")
            else:
                notes.append(f"normalized answer {raw_answer!r} to {answer!r} for {sid}")
        out.append({"statement_id": sid, "lane_id": lane, "answer": answer, "timestamp": ts})
    if dropped:
        notes.append(f"dropped {dropped} history entries without a known statement")
    if backfilled:
        notes.append(f"backfilled {backfilled} missing timestamps")
    return out


def migrate_run_state(
    raw: object,
    catalog: StatementCatalog,
    now: Optional[str] = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """Coerce a legacy or partially written payload into the current shape.

    Returns the migrated dict plus notes describing each change.  The result
    is not guaranteed valid; callers re-validate and may heal afterwards.
    """

    now = now or utcnow_iso()
    notes: List[str] = []
    src: Dict[str, Any] = dict(raw) if isinstance(raw, dict) else {}
    if not isinstance(raw, dict):
        notes.append("payload was not an object; starting from defaults")

    history_dicts = _migrate_history(src.get("history"), catalog, now, notes)
    history = [HistoryEntry.from_dict(h) for h in history_dicts]
    seen = seen_ids_from_history(history)

    current = src.get("current_statement_id")
    if current is not None and not isinstance(current, str):
        notes.append("current_statement_id was not a string; cleared")
        current = None

    presented_raw = src.get("presented_statement_ids")
    if not isinstance(presented_raw, list) or not presented_raw:
        presented = expected_presented(history, current if catalog.is_valid_id(current) else None)
        notes.append("rebuilt presented_statement_ids from history")
    else:
        presented = [p for p in presented_raw if catalog.is_valid_id(p)]
        if len(presented) != len(presented_raw):
            notes.append("dropped unknown ids from presented_statement_ids")

    if catalog.is_valid_id(current) and current not in seen:
        if not presented or presented[-1] != current:
            presented = [p for p in presented if p != current] + [current]
    elif presented and presented[-1] not in seen:
        if current is not None:
            notes.append(f"restored current_statement_id to {presented[-1]}")
        current = presented[-1]
    elif catalog.is_valid_id(current):
        notes.append(f"cleared current_statement_id {current!r}; it was already answered")
        current = None
    # an unknown current id is left for heal to replace

    round_raw = src.get("round")
    if isinstance(round_raw, int) and not isinstance(round_raw, bool) and round_raw >= 1:
        rnd = round_raw
    else:
        rnd = len(history) + 1
        notes.append(f"derived round {rnd} from history")

    max_rounds = src.get("max_rounds")
    if max_rounds != config.MAX_ROUNDS:
        notes.append(f"max_rounds set to {config.MAX_ROUNDS}")

    version = src.get("schema_version")
    if version != config.SCHEMA_VERSION:
        notes.append(f"schema_version {version!r} -> {config.SCHEMA_VERSION}")

    state = RunState(
        round=rnd,
        max_rounds=config.MAX_ROUNDS,
        lane_ratings=_migrate_ratings(src.get("lane_ratings"), notes),
        history=history,
        current_statement_id=current,
        presented_statement_ids=presented,
        schema_version=config.SCHEMA_VERSION,
    )
    state = rebuild_derived_fields(state)
    return state.to_dict(), notes
