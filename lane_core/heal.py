from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .catalog import LANE_IDS, StatementCatalog
from .state import (
    answer_counts_from_history,
    expected_presented,
    lane_counts_from_history,
    rebuild_lane_ratings_from_history,
    seen_ids_from_history,
)
from .types import HistoryEntry

log = logging.getLogger(__name__)


@dataclass
class HealResult:
    state: Dict[str, Any]
    healed: bool = False
    notes: List[str] = field(default_factory=list)


def _first_unseen(catalog: StatementCatalog, seen: List[str]):
    seen_set = set(seen)
    for st in catalog:
        if st.id not in seen_set:
            return st
    return None


def heal_run_state(data: Dict[str, Any], catalog: StatementCatalog) -> HealResult:
    """Apply safe, referential repairs to an already migrated payload.

    Repairs run in a fixed order and each one appends a note.  Healing is
    deterministic: the first-unseen rule replaces an invalid current statement,
    so the same input always heals to the same output.
    """

    out = dict(data)
    notes: List[str] = []
    history = [HistoryEntry.from_dict(h) for h in out.get("history") or []]
    seen = seen_ids_from_history(history)

    ratings = out.get("lane_ratings") or {}
    if sorted(ratings) != sorted(LANE_IDS):
        out["lane_ratings"] = rebuild_lane_ratings_from_history(history)
        missing = [lane for lane in LANE_IDS if lane not in ratings]
        notes.append(f"rebuilt lane_ratings from history (missing: {', '.join(missing) or 'none'})")

    presented = list(out.get("presented_statement_ids") or [])
    deduped = list(dict.fromkeys(presented))
    if deduped != presented:
        notes.append(f"removed {len(presented) - len(deduped)} duplicate presented ids")
        presented = deduped

    current = out.get("current_statement_id")
    top = presented[-1] if presented else None
    pending_top = (
        top is not None
        and catalog.is_valid_id(top)
        and top not in seen
        and presented[:-1] == seen
    )
    if pending_top and current != top:
        notes.append(f"set current_statement_id to top of stack {top}")
        current = top

    if current is not None and not catalog.is_valid_id(current):
        replacement = _first_unseen(catalog, seen)
        if replacement is not None:
            notes.append(f"replaced invalid current_statement_id {current!r} with first unseen {replacement.id}")
            current = replacement.id
        else:
            notes.append(f"no unseen statements left; cleared invalid current_statement_id {current!r}")
            current = None
    elif current is not None and current in seen:
        notes.append(f"cleared current_statement_id {current!r}; it was already answered")
        current = None

    rnd = out.get("round")
    max_rounds = out.get("max_rounds")
    if isinstance(rnd, int) and isinstance(max_rounds, int):
        clamped = max(1, min(rnd, max_rounds + 1))
        if clamped != rnd:
            notes.append(f"clamped round {rnd} to {clamped}")
            out["round"] = clamped
            rnd = clamped
        if current is not None and rnd > max_rounds:
            notes.append("cleared pending statement past max_rounds")
            current = None

    expected = expected_presented(history, current)
    if presented != expected:
        notes.append("rebuilt presented_statement_ids from history and current")
        presented = expected
    out["presented_statement_ids"] = presented
    out["current_statement_id"] = current

    stored_seen = list(out.get("seen_statement_ids") or [])
    unknown_seen = [s for s in stored_seen if not catalog.is_valid_id(s)]
    if unknown_seen:
        notes.append(f"dropped unknown seen ids: {', '.join(map(str, unknown_seen))}")
    counts = out.get("answer_counts") or {}
    if (
        stored_seen != seen
        or out.get("lane_counts_shown") != lane_counts_from_history(history)
        or counts != answer_counts_from_history(history).to_dict()
    ):
        notes.append("rebuilt derived fields (seen_statement_ids, lane_counts_shown, answer_counts)")
    out["seen_statement_ids"] = seen
    out["lane_counts_shown"] = lane_counts_from_history(history)
    out["answer_counts"] = answer_counts_from_history(history).to_dict()

    for note in notes:
        log.warning("heal: %s", note)
    return HealResult(state=out, healed=bool(notes), notes=notes)
