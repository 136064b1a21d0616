from __future__ import annotations

from typing import Dict, List

from .catalog import StatementCatalog
from .state import answer_bucket
from .types import RunState

_SIGNAL_SCORE = {"yes": 1, "no": -1, "skip": 0}


def top_signals(state: RunState, catalog: StatementCatalog, lane_id: str, n: int = 3) -> List[Dict[str, object]]:
    """Answers that most shaped ``lane_id``: YES first, then NO, then SKIP, newest first."""

    rows = []
    for idx, entry in enumerate(state.history):
        if entry.lane_id != lane_id:
            continue
        bucket = answer_bucket(entry.answer)
        if bucket is None:
            continue
        st = catalog.by_id(entry.statement_id)
        rows.append({
            "statement_id": entry.statement_id,
            "text": st.text if st else entry.statement_id,
            "answer": entry.answer,
            "score": _SIGNAL_SCORE[bucket],
            "timestamp": entry.timestamp,
            "_idx": idx,
        })
    # newest first within a score band
    rows.sort(key=lambda r: (r["timestamp"], r["_idx"]), reverse=True)
    rows.sort(key=lambda r: -r["score"])
    for r in rows:
        r.pop("_idx", None)
    return rows[:n]


def lane_support_summary(state: RunState, lane_id: str) -> Dict[str, int]:
    out = {"yes": 0, "no": 0, "skip": 0, "total": 0}
    for entry in state.history:
        if entry.lane_id != lane_id:
            continue
        bucket = answer_bucket(entry.answer)
        if bucket is None:
            continue
        out[bucket] += 1
        out["total"] += 1
    return out
