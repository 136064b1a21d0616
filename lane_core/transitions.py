"""Pure run transitions: priming, commit, undo and finalize.

None of these mutate their input.  Guarding against double commits is the
session's job; these functions only refuse commits the state itself forbids.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from . import config
from .catalog import StatementCatalog
from .convergence import can_finish_early
from .elo import rating_after_answer
from .selector import StatementSelector
from .state import (
    answer_bucket,
    normalize_answer,
    rebuild_derived_fields,
    rebuild_lane_ratings_from_history,
    utcnow_iso,
)
from .types import Active, Finished, HistoryEntry, RunPhase, RunState

log = logging.getLogger(__name__)


@dataclass
class CommitOutcome:
    state: RunState
    accepted: bool
    reason: Optional[str] = None
    entry: Optional[HistoryEntry] = None
    rating_before: Optional[float] = None
    rating_after: Optional[float] = None
    ended: bool = False
    can_finish_early: bool = False
    next_statement_id: Optional[str] = None


@dataclass
class UndoOutcome:
    state: RunState
    undone: Optional[HistoryEntry] = None


def run_phase(state: RunState, catalog: StatementCatalog) -> RunPhase:
    if state.current_statement_id is not None and state.round <= state.max_rounds:
        return Active(state.current_statement_id)
    if state.round > state.max_rounds:
        return Finished("max_rounds")
    if len(set(state.seen_statement_ids)) >= len(catalog):
        return Finished("exhausted")
    return Finished("stopped")


def present_statement(state: RunState, statement_id: str) -> RunState:
    out = state.copy()
    if not out.presented_statement_ids or out.presented_statement_ids[-1] != statement_id:
        out.presented_statement_ids = [s for s in out.presented_statement_ids if s != statement_id]
        out.presented_statement_ids.append(statement_id)
    out.current_statement_id = statement_id
    return out


def ensure_current_statement(
    state: RunState,
    catalog: StatementCatalog,
    selector: StatementSelector,
) -> Tuple[RunState, bool]:
    """Make sure an active run has a statement to show.

    A valid unanswered id on top of the presented stack is restored as is, so
    a reload never re-rolls the selector.  Returns ``(state, changed)``.
    """

    if state.round > state.max_rounds:
        return state, False
    current = state.current_statement_id
    if catalog.is_valid_id(current) and current not in state.seen_statement_ids:
        return state, False
    stack = state.presented_statement_ids
    if stack and catalog.is_valid_id(stack[-1]) and stack[-1] not in state.seen_statement_ids:
        return present_statement(state, stack[-1]), True
    nxt = selector.next_statement(state)
    if nxt is None:
        return state, False
    return present_statement(state, nxt.id), True


def finalize(state: RunState) -> RunState:
    """End the run: clear the pending statement and drop it from the stack."""

    out = state.copy()
    pending = out.current_statement_id
    if pending is not None and pending not in out.seen_statement_ids:
        if out.presented_statement_ids and out.presented_statement_ids[-1] == pending:
            out.presented_statement_ids = out.presented_statement_ids[:-1]
    out.current_statement_id = None
    return out


def commit_answer(
    state: RunState,
    answer: str,
    catalog: StatementCatalog,
    selector: StatementSelector,
    *,
    now: Optional[str] = None,
    stop_on_convergence: bool = True,
) -> CommitOutcome:
    normalized = normalize_answer(answer)
    if normalized is None:
        raise ValueError(f"unknown answer {answer!r}; expected yes/no/skip/meh")

    if state.round > state.max_rounds or state.current_statement_id is None:
        return CommitOutcome(state=state, accepted=False, reason="finished")
    statement = catalog.by_id(state.current_statement_id)
    if statement is None:
        return CommitOutcome(state=state, accepted=False, reason="invalid_current")

    out = state.copy()
    lane = statement.lane_id
    before = out.lane_ratings.get(lane, config.BASELINE_RATING)
    after = rating_after_answer(before, normalized)
    out.lane_ratings[lane] = after

    entry = HistoryEntry(
        statement_id=statement.id,
        lane_id=lane,
        answer=normalized,  # type: ignore[arg-type]
        timestamp=now or utcnow_iso(),
    )
    out.history.append(entry)
    if statement.id not in out.seen_statement_ids:
        out.seen_statement_ids.append(statement.id)
    out.lane_counts_shown[lane] = out.lane_counts_shown.get(lane, 0) + 1
    bucket = answer_bucket(normalized)
    setattr(out.answer_counts, bucket, getattr(out.answer_counts, bucket) + 1)  # type: ignore[arg-type]
    out.round += 1

    outcome = CommitOutcome(
        state=out,
        accepted=True,
        entry=entry,
        rating_before=before,
        rating_after=after,
    )

    if out.round > out.max_rounds:
        outcome.state = finalize(out)
        outcome.ended, outcome.reason = True, "max_rounds"
        return outcome

    outcome.can_finish_early = can_finish_early(out)
    if stop_on_convergence and outcome.can_finish_early:
        outcome.state = finalize(out)
        outcome.ended, outcome.reason = True, "stopped"
        return outcome

    nxt = selector.next_statement(out)
    if nxt is None:
        outcome.state = finalize(out)
        outcome.ended, outcome.reason = True, "exhausted"
        return outcome

    outcome.state = present_statement(out, nxt.id)
    outcome.next_statement_id = nxt.id
    return outcome


def undo_last(state: RunState, catalog: StatementCatalog) -> UndoOutcome:
    """Step back one answer and rebuild everything by replay.

    The last answered statement becomes current again.  When a statement is
    pending it is popped first; a finished run has nothing pending to pop.
    """

    if not state.history:
        return UndoOutcome(state=state)

    out = state.copy()
    undone = out.history[-1]
    stack = list(out.presented_statement_ids)
    pending = out.current_statement_id
    if pending is not None and pending not in out.seen_statement_ids and stack and stack[-1] == pending:
        stack.pop()
    if not stack or stack[-1] != undone.statement_id:
        stack = [s for s in stack if s != undone.statement_id] + [undone.statement_id]

    out.history = out.history[:-1]
    out.presented_statement_ids = stack
    out.current_statement_id = stack[-1]
    out.round = max(1, out.round - 1)
    out.lane_ratings = rebuild_lane_ratings_from_history(out.history)
    out = rebuild_derived_fields(out)
    log.debug("undo %s -> round %d", undone.statement_id, out.round)
    return UndoOutcome(state=out, undone=undone)
